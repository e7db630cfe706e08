"""Async runtime harness that ties the feed, simulator and dashboard together."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from contextlib import suppress
from pathlib import Path
from typing import Any, Iterable

from dotenv import load_dotenv

from common import (
    EventBus,
    FeedUpdate,
    Settings,
    Venue,
    build_settings,
    load_config,
    setup_logging,
)
from dashboard import DashboardPanel
from feed import FeedSessionManager
from simulator import OrderSimulator, SimulationReport

logger = logging.getLogger(__name__)


def _load_settings(config_path: Path) -> Settings:
    if not config_path.exists():
        return build_settings({})
    return build_settings(load_config(config_path))


class TerminalRuntime:
    """Run one live venue session with the simulator and optional dashboard."""

    def __init__(
        self,
        config_path: Path,
        venue: str | None = None,
        symbol: str | None = None,
        serve_dashboard: bool = True,
    ) -> None:
        self.config_path = config_path
        self.venue = venue
        self.symbol = symbol
        self.serve_dashboard = serve_dashboard
        self._stop_event = asyncio.Event()

    async def run(self) -> None:
        load_dotenv()
        settings = _load_settings(self.config_path)
        setup_logging(settings.logging.level, settings.logging.file)
        if not self.config_path.exists():
            logger.warning("Config file %s missing; using defaults", self.config_path)
        logger.info("Starting terminal runtime", extra={"config": str(self.config_path)})

        feed_bus: EventBus[FeedUpdate] = EventBus()
        report_bus: EventBus[SimulationReport] = EventBus()
        manager = FeedSessionManager(
            feed_bus,
            urls=settings.feed.urls,
            connect_timeout=settings.feed.connect_timeout,
        )
        simulator = OrderSimulator(
            lambda: manager.book,
            report_bus,
            default_delay_seconds=settings.simulator.default_delay_seconds,
            warning_threshold=settings.simulator.slippage_warning_percent,
        )

        venue = Venue.parse(self.venue) if self.venue else settings.feed.default_venue
        symbol = self.symbol or settings.feed.symbols[venue]

        tasks: list[asyncio.Task[Any]] = [
            asyncio.create_task(
                self._log_updates(feed_bus.subscribe(maxsize=100)), name="feed-logger"
            ),
            asyncio.create_task(
                self._log_reports(report_bus.subscribe()), name="report-logger"
            ),
        ]

        server = None
        if self.serve_dashboard and settings.dashboard.enabled:
            import uvicorn

            panel = DashboardPanel(manager, simulator, depth=settings.dashboard.depth)
            server = uvicorn.Server(
                uvicorn.Config(
                    panel.app,
                    host=settings.dashboard.host,
                    port=settings.dashboard.port,
                    log_level=logging.getLevelName(settings.logging.level).lower(),
                )
            )
            tasks.append(asyncio.create_task(server.serve(), name="dashboard"))

        await manager.activate(venue, symbol)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError):
                loop.add_signal_handler(sig, self._stop_event.set)

        stop_waiter = asyncio.create_task(self._stop_event.wait(), name="stop-waiter")
        try:
            await asyncio.wait({stop_waiter, *tasks}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if server is not None:
                server.should_exit = True
            await simulator.close()
            await manager.deactivate()

            for task in (stop_waiter, *tasks):
                task.cancel()
            for task in (stop_waiter, *tasks):
                with suppress(asyncio.CancelledError):
                    await task

            await feed_bus.close()
            await report_bus.close()
            logger.info("Terminal runtime stopped")

    def stop(self) -> None:
        self._stop_event.set()

    async def _log_updates(self, queue: asyncio.Queue[FeedUpdate]) -> None:
        last_state = None
        while True:
            update = await queue.get()
            try:
                if update.connection_state is not last_state:
                    logger.info(
                        "%s %s is %s",
                        update.venue.value if update.venue else "-",
                        update.symbol or "-",
                        update.connection_state.value,
                    )
                    last_state = update.connection_state
                best_bid, best_ask = update.book.best_bid, update.book.best_ask
                if best_bid and best_ask:
                    logger.debug(
                        "%s top of book %s x %s / %s x %s",
                        update.symbol,
                        best_bid.size,
                        best_bid.price,
                        best_ask.price,
                        best_ask.size,
                    )
            finally:
                queue.task_done()

    async def _log_reports(self, queue: asyncio.Queue[SimulationReport]) -> None:
        while True:
            report = await queue.get()
            try:
                logger.info(
                    "Simulation report: %s",
                    report.result.model_dump_json(exclude_none=True),
                )
            finally:
                queue.task_done()


async def run_terminal(
    config_path: str,
    venue: str | None = None,
    symbol: str | None = None,
    serve_dashboard: bool = True,
) -> None:
    runtime = TerminalRuntime(
        Path(config_path), venue=venue, symbol=symbol, serve_dashboard=serve_dashboard
    )
    await runtime.run()


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the real-time orderbook impact terminal")
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--venue",
        choices=[venue.value for venue in Venue],
        type=str.upper,
        help="Venue to stream (defaults to feed.default_venue)",
    )
    parser.add_argument(
        "--symbol",
        help="Venue instrument id, e.g. BTC-USD-SWAP, BTCUSDT or BTC-PERPETUAL",
    )
    parser.add_argument(
        "--no-dashboard",
        action="store_true",
        help="Only log book updates; do not serve the HTTP dashboard",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    asyncio.run(
        run_terminal(
            args.config,
            venue=args.venue,
            symbol=args.symbol,
            serve_dashboard=not args.no_dashboard,
        )
    )


if __name__ == "__main__":  # pragma: no cover - CLI execution path
    main()
