"""
Runtime settings read from the environment.

Setting VERCEL (any non-empty value) switches every default to the tighter
serverless profile so a request fits the platform's execution limit.
"""
import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    # 0 falls back to the default, like an unset variable
    return value or default


@dataclass(frozen=True)
class Settings:
    serverless: bool = False
    fetch_timeout_ms: int = 30000
    fetch_timeout_ms_long: int = 45000
    fetch_delay_ms: int = 4000
    fetch_delay_ms_long: int = 6000
    retry_backoff_ms: int = 1000
    batch_pacing_ms: int = 100
    runtime_max_urls: int = 50
    runtime_nav_timeout_ms: int = 30000
    port: int = 3000

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        serverless = bool(env.get("VERCEL"))
        return cls(
            serverless=serverless,
            fetch_timeout_ms=_int_env(env, "FETCH_TIMEOUT_MS", 8000 if serverless else 30000),
            fetch_timeout_ms_long=_int_env(env, "FETCH_TIMEOUT_MS_LONG", 9000 if serverless else 45000),
            fetch_delay_ms=_int_env(env, "FETCH_DELAY_MS", 200 if serverless else 4000),
            fetch_delay_ms_long=_int_env(env, "FETCH_DELAY_MS_LONG", 300 if serverless else 6000),
            retry_backoff_ms=50 if serverless else 1000,
            batch_pacing_ms=_int_env(env, "BATCH_PACING_MS", 100),
            runtime_max_urls=_int_env(env, "RUNTIME_MAX_URLS", 5 if serverless else 50),
            runtime_nav_timeout_ms=_int_env(env, "RUNTIME_NAV_TIMEOUT_MS", 8000 if serverless else 30000),
            port=_int_env(env, "PORT", 3000),
        )

    def with_overrides(self, **changes) -> "Settings":
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
