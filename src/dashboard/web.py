"""FastAPI surface exposing the live book and simulator to renderers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from fastapi import FastAPI, Request, status
from fastapi.responses import HTMLResponse, JSONResponse
from jinja2 import Environment, select_autoescape

from common.errors import OrderValidationError
from common.models import ConnectionState, Venue
from feed import FeedSessionManager
from simulator import OrderSide, OrderSimulator

logger = logging.getLogger(__name__)

_PAGE_TEMPLATE = """\
<!doctype html>
<html lang=\"en\">
  <head>
    <meta charset=\"utf-8\" />
    <title>Orderbook Impact Terminal</title>
    <style>
      body { font-family: sans-serif; margin: 2rem auto; max-width: 960px; color: #222; }
      table { border-collapse: collapse; width: 100%; }
      td, th { padding: 0.2rem 0.5rem; text-align: right; font-family: monospace; }
      .ladders { display: flex; gap: 2rem; }
      .bid { color: #1b7f3b; }
      .ask { color: #b3261e; }
      .highlight { outline: 2px solid #e0b000; }
      .badge { padding: 0.2rem 0.6rem; border-radius: 0.3rem; color: #fff; }
      .badge.open { background: #1b7f3b; }
      .badge.other { background: #b3261e; }
      .warning { background: #fff4cc; border: 1px solid #e0b000; padding: 0.75rem; }
    </style>
  </head>
  <body>
    <h1>Orderbook Impact Terminal</h1>
    <p>
      {{ venue or "No venue" }} {{ symbol or "" }}
      <span class=\"badge {{ 'open' if state == 'open' else 'other' }}\">{{ state }}</span>
    </p>
    <div class=\"ladders\">
      {% for side in sides %}
        <table>
          <thead><tr><th>{{ side.title }}</th><th>Size</th><th>Total</th></tr></thead>
          <tbody>
            {% for row in side.rows %}
              <tr class=\"{{ side.css }}{{ ' highlight' if row.highlight else '' }}\">
                <td>{{ row.price }}</td><td>{{ row.size }}</td><td>{{ row.total }}</td>
              </tr>
            {% else %}
              <tr><td colspan=\"3\">Waiting for data</td></tr>
            {% endfor %}
          </tbody>
        </table>
      {% endfor %}
    </div>
    <h2>Order Impact Metrics</h2>
    {% if report %}
      <p>{{ report.order.order_type.value }} {{ report.order.side.value }} {{ report.order.quantity }}</p>
      <ul>
        <li>Est. fill: {{ '%.2f' | format(report.result.fill_percent) }}%</li>
        <li>Slippage: {{ '%.4f' | format(report.result.slippage_percent) }}%</li>
        <li>Market impact: ${{ '%.2f' | format(report.result.price_impact) }}</li>
      </ul>
      {% if report.result.warning %}
        <div class=\"warning\">{{ report.result.warning }}</div>
      {% else %}
        <p>Order size has minimal expected market impact.</p>
      {% endif %}
    {% elif pending %}
      <p>Simulation pending.</p>
    {% else %}
      <p>Submit an order simulation to see impact metrics.</p>
    {% endif %}
  </body>
</html>
"""


def _rows(levels: Any, highlight_index: int) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    total = 0
    for index, level in enumerate(levels):
        total += level.size
        rows.append(
            {
                "price": f"{level.price:,.2f}",
                "size": f"{level.size:.4f}",
                "total": f"{total:.4f}",
                "highlight": index == highlight_index,
            }
        )
    return rows


@dataclass
class DashboardPanel:
    """Build the FastAPI app around a feed manager and an order simulator.

    Renderers only change core state through ``/activate``, ``/deactivate``
    and ``/orders``.
    """

    manager: FeedSessionManager
    simulator: OrderSimulator
    depth: int = 15

    def __post_init__(self) -> None:
        self._template = Environment(autoescape=select_autoescape(["html", "xml"])).from_string(
            _PAGE_TEMPLATE
        )
        self.app = FastAPI(title="Orderbook Impact Terminal")
        self.app.add_api_route("/", self.index, methods=["GET"], response_class=HTMLResponse)
        self.app.add_api_route("/health", self.health, methods=["GET"])
        self.app.add_api_route("/state", self.state, methods=["GET"])
        self.app.add_api_route("/activate", self.activate, methods=["POST"])
        self.app.add_api_route("/deactivate", self.deactivate, methods=["POST"])
        self.app.add_api_route("/orders", self.submit_order, methods=["POST"])
        self.app.add_api_route("/simulation", self.simulation, methods=["GET"])

    async def index(self) -> HTMLResponse:
        update = self.manager.snapshot()
        book = update.book.depth(self.depth)
        report = self.simulator.last_report

        bid_highlight = ask_highlight = -1
        if report is not None:
            if report.order.side is OrderSide.BUY:
                ask_highlight = report.result.book_locator_index
            else:
                bid_highlight = report.result.book_locator_index

        html = self._template.render(
            venue=update.venue.value if update.venue else None,
            symbol=update.symbol,
            state=update.connection_state.value,
            sides=[
                {"title": "Bids", "css": "bid", "rows": _rows(book.bids, bid_highlight)},
                {"title": "Asks", "css": "ask", "rows": _rows(book.asks, ask_highlight)},
            ],
            report=report,
            pending=self.simulator.pending is not None,
        )
        return HTMLResponse(html)

    async def health(self) -> JSONResponse:
        update = self.manager.snapshot()
        return JSONResponse(
            {
                "status": "ok",
                "venue": update.venue.value if update.venue else None,
                "connection_state": update.connection_state.value,
            }
        )

    async def state(self) -> JSONResponse:
        update = self.manager.snapshot()
        update = update.model_copy(update={"book": update.book.depth(self.depth)})
        return JSONResponse(update.model_dump(mode="json"))

    async def activate(self, request: Request) -> JSONResponse:
        body = await self._json_body(request)
        if body is None:
            return self._error("Request body must be a JSON object")
        try:
            venue = Venue.parse(str(body.get("venue", "")))
            await self.manager.activate(venue, str(body.get("symbol", "")))
        except ValueError as exc:
            return self._error(str(exc))
        return JSONResponse(self.manager.snapshot().model_dump(mode="json"))

    async def deactivate(self) -> JSONResponse:
        await self.manager.deactivate()
        return JSONResponse({"connection_state": ConnectionState.IDLE.value})

    async def submit_order(self, request: Request) -> JSONResponse:
        body = await self._json_body(request)
        if body is None:
            return self._error("Request body must be a JSON object")
        fields = {
            key: body[key]
            for key in ("side", "order_type", "quantity", "limit_price", "delay_seconds")
            if body.get(key) not in (None, "")
        }
        fields["symbol"] = self.manager.current.symbol if self.manager.current else None
        try:
            order = await self.simulator.submit(**fields)
        except OrderValidationError as exc:
            logger.info("Rejected simulated order: %s", exc)
            return JSONResponse(
                {"status": "rejected", "message": str(exc)},
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            )

        if self.simulator.pending is order:
            return JSONResponse(
                {"status": "pending", "order": order.model_dump(mode="json")},
                status_code=status.HTTP_202_ACCEPTED,
            )
        report = self.simulator.last_report
        assert report is not None
        return JSONResponse({"status": "done", "report": report.model_dump(mode="json")})

    async def simulation(self) -> JSONResponse:
        report = self.simulator.last_report
        pending = self.simulator.pending
        return JSONResponse(
            {
                "pending": pending.model_dump(mode="json") if pending else None,
                "report": report.model_dump(mode="json") if report else None,
            }
        )

    @staticmethod
    async def _json_body(request: Request) -> Mapping[str, Any] | None:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        return body if isinstance(body, Mapping) else None

    @staticmethod
    def _error(message: str) -> JSONResponse:
        return JSONResponse(
            {"status": "error", "message": message}, status_code=status.HTTP_400_BAD_REQUEST
        )


def create_dashboard_app(
    manager: FeedSessionManager, simulator: OrderSimulator, depth: int = 15
) -> FastAPI:
    """Convenience helper to build the FastAPI app."""

    return DashboardPanel(manager, simulator, depth=depth).app

