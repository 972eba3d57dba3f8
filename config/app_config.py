"""Centralised application settings (dotenv + env overrides)."""
from __future__ import annotations
import os
from pathlib import Path
from dotenv import load_dotenv

ROOT = Path(__file__).parents[1]
load_dotenv(ROOT / ".env", override=False)


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class settings:                            # pylint: disable=too-few-public-methods
    HA_TOKEN         = os.getenv("HA_TOKEN")
    HA_URL           = os.getenv("HA_URL")
    VERBOSE          = _flag("VERBOSE")
    CONFIG_PATH      = Path(os.getenv("CONFIG_PATH", ROOT / "multiclick.config.py"))
    LOG_LEVEL        = os.getenv("LOG_LEVEL", "INFO").upper()

    # connection lifecycle
    FULL_REINIT               = _flag("FULL_REINIT", "true")
    CONNECT_RETRY_DELAY       = float(os.getenv("CONNECT_RETRY_DELAY", 5))
    PROBE_TIMEOUT             = float(os.getenv("PROBE_TIMEOUT", 2))
    RECONNECT_GRACE           = float(os.getenv("RECONNECT_GRACE", 30))
    FORCED_RECONNECT_INTERVAL = float(os.getenv("FORCED_RECONNECT_INTERVAL", 600))
    COMMAND_TIMEOUT           = float(os.getenv("COMMAND_TIMEOUT", 10))
    RECONNECT_ATTEMPTS        = int(os.getenv("RECONNECT_ATTEMPTS", 10))

    # config hot reload
    RELOAD_DEBOUNCE  = float(os.getenv("RELOAD_DEBOUNCE", 0.2))
