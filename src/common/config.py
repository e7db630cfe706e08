"""Configuration helpers for loading YAML files with environment expansion."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Optional

import yaml

from .logging import parse_log_level
from .models import Venue

logger = logging.getLogger(__name__)

DEFAULT_SYMBOLS: dict[Venue, str] = {
    Venue.OKX: "BTC-USD-SWAP",
    Venue.BYBIT: "BTCUSDT",
    Venue.DERIBIT: "BTC-PERPETUAL",
}


def load_config(path: str | os.PathLike[str]) -> dict[str, Any]:
    """Load a YAML configuration file and expand environment variables.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Parsed configuration dictionary. Returns an empty dict if the file is
        empty.
    """

    config_path = Path(path)
    raw_text = config_path.read_text()
    expanded = os.path.expandvars(raw_text)
    data = yaml.safe_load(expanded) or {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Config root must be a mapping, got {type(data)!r}")
    return dict(data)


@dataclass
class FeedSettings:
    default_venue: Venue = Venue.OKX
    symbols: dict[Venue, str] = field(default_factory=lambda: dict(DEFAULT_SYMBOLS))
    urls: dict[Venue, str] = field(default_factory=dict)
    connect_timeout: float = 10.0


@dataclass
class SimulatorSettings:
    default_delay_seconds: float = 0.0
    slippage_warning_percent: Decimal = Decimal("0.5")


@dataclass
class DashboardSettings:
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8000
    depth: int = 15


@dataclass
class LoggingSettings:
    level: int = logging.INFO
    file: Optional[Path] = None


@dataclass
class Settings:
    """Typed view over the YAML configuration."""

    feed: FeedSettings = field(default_factory=FeedSettings)
    simulator: SimulatorSettings = field(default_factory=SimulatorSettings)
    dashboard: DashboardSettings = field(default_factory=DashboardSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def _as_mapping(value: object) -> MutableMapping[str, Any]:
    if isinstance(value, MutableMapping):
        return value
    return {}


def _as_float(value: object, default: float) -> float:
    try:
        if value is None:
            return default
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value: object, default: int) -> int:
    try:
        if value is None:
            return default
        return int(value)
    except (TypeError, ValueError):
        return default


def _build_feed(raw: Mapping[str, Any]) -> FeedSettings:
    settings = FeedSettings()
    default_venue = raw.get("default_venue")
    if default_venue:
        try:
            settings.default_venue = Venue.parse(default_venue)
        except ValueError:
            logger.warning(
                "Unknown default venue %s; using %s", default_venue, settings.default_venue.value
            )

    venues_cfg = _as_mapping(raw.get("venues"))
    for key, venue_raw in venues_cfg.items():
        try:
            venue = Venue.parse(key)
        except ValueError:
            logger.warning("Ignoring configuration for unknown venue %s", key)
            continue
        venue_cfg = _as_mapping(venue_raw)
        symbol = str(venue_cfg.get("symbol") or "").strip()
        if symbol:
            settings.symbols[venue] = symbol
        url = str(venue_cfg.get("url") or "").strip()
        if url:
            settings.urls[venue] = url

    settings.connect_timeout = _as_float(raw.get("connect_timeout"), settings.connect_timeout)
    return settings


def _build_simulator(raw: Mapping[str, Any]) -> SimulatorSettings:
    settings = SimulatorSettings()
    settings.default_delay_seconds = max(
        0.0, _as_float(raw.get("default_delay_seconds"), settings.default_delay_seconds)
    )
    threshold = _as_float(
        raw.get("slippage_warning_percent"), float(settings.slippage_warning_percent)
    )
    settings.slippage_warning_percent = Decimal(str(threshold))
    return settings


def _build_dashboard(raw: Mapping[str, Any]) -> DashboardSettings:
    settings = DashboardSettings()
    settings.enabled = bool(raw.get("enabled", settings.enabled))
    settings.host = str(raw.get("host") or settings.host)
    settings.port = _as_int(raw.get("port"), settings.port)
    settings.depth = max(1, _as_int(raw.get("depth"), settings.depth))
    return settings


def _build_logging(raw: Mapping[str, Any]) -> LoggingSettings:
    file_value = raw.get("file")
    return LoggingSettings(
        level=parse_log_level(raw.get("level", "INFO")),
        file=Path(file_value) if isinstance(file_value, (str, Path)) and file_value else None,
    )


def build_settings(config: Mapping[str, Any]) -> Settings:
    """Turn a loaded configuration mapping into :class:`Settings`.

    Missing or malformed values fall back to their defaults.
    """

    return Settings(
        feed=_build_feed(_as_mapping(config.get("feed"))),
        simulator=_build_simulator(_as_mapping(config.get("simulator"))),
        dashboard=_build_dashboard(_as_mapping(config.get("dashboard"))),
        logging=_build_logging(_as_mapping(config.get("logging"))),
    )


__all__ = [
    "DEFAULT_SYMBOLS",
    "DashboardSettings",
    "FeedSettings",
    "LoggingSettings",
    "Settings",
    "SimulatorSettings",
    "build_settings",
    "load_config",
]
