from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class ClientSettings:
    """Client configuration with environment variable overrides."""
    api_url: str = "http://127.0.0.1:5001"
    cache_dir: str = os.path.join(os.path.expanduser("~"), ".shopledger")

    # Timeouts
    request_timeout: float = 30.0

    # Change feed polling interval (seconds)
    poll_interval: float = 2.0

    # Window used by coalesced dispatches; 0 sends immediately
    debounce_seconds: float = 0.3

    recent_sales_limit: int = 50

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientSettings":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            api_url=env.get("SHOPLEDGER_API_URL", defaults.api_url).rstrip("/"),
            cache_dir=env.get("SHOPLEDGER_CACHE_DIR", defaults.cache_dir),
            request_timeout=float(env.get("SHOPLEDGER_REQUEST_TIMEOUT", defaults.request_timeout)),
            poll_interval=float(env.get("SHOPLEDGER_POLL_INTERVAL", defaults.poll_interval)),
            debounce_seconds=float(env.get("SHOPLEDGER_DEBOUNCE_SECONDS", defaults.debounce_seconds)),
            recent_sales_limit=int(env.get("SHOPLEDGER_SALES_LIMIT", defaults.recent_sales_limit)),
        )
