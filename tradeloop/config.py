"""Runtime configuration loaded from environment variables.

All values have defaults so the bot starts against a local OpenAI-compatible
server (e.g. LM Studio) without any setup. API keys come from the environment
only and are never logged.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping

logger = logging.getLogger(__name__)


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s=%r, using default %d", name, raw, default)
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid number for %s=%r, using default %s", name, raw, default)
        return default


@dataclass(frozen=True)
class AppConfig:
    """Configuration for one bot deployment."""

    openai_base_url: str = "http://localhost:1234"
    openai_api_key: str = field(default="noop", repr=False)
    openai_model: str = "openai/gpt-oss-20b"
    allowed_pairs: str = "BTC_USDC"  # comma separated BASE_QUOTE
    trading_interval: str = "5m"
    bot_max_turns: int = 30
    state_file: str = "data/trading_state.json"
    cache_ttl_seconds: float = 60.0
    model_timeout_seconds: float = 90.0
    market_data_timeout_seconds: float = 20.0
    binance_base_url: str = "https://api.binance.com"
    analysis_concurrency: int = 1
    history_window: int = 5

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> AppConfig:
        """Build config from ``env`` (defaults to ``os.environ``)."""
        env = os.environ if env is None else env
        defaults = cls()
        return cls(
            openai_base_url=env.get("OPENAI_BASE_URL", defaults.openai_base_url),
            openai_api_key=env.get("OPENAI_API_KEY", defaults.openai_api_key),
            openai_model=env.get("OPENAI_MODEL", defaults.openai_model),
            allowed_pairs=env.get("ALLOWED_PAIRS", defaults.allowed_pairs),
            trading_interval=env.get("TRADING_INTERVAL", defaults.trading_interval),
            bot_max_turns=_env_int(env, "BOT_MAX_TURNS", defaults.bot_max_turns),
            state_file=env.get("STATE_FILE", defaults.state_file),
            cache_ttl_seconds=_env_float(env, "CACHE_TTL_SECONDS", defaults.cache_ttl_seconds),
            model_timeout_seconds=_env_float(env, "MODEL_TIMEOUT_SECONDS", defaults.model_timeout_seconds),
            market_data_timeout_seconds=_env_float(
                env, "MARKET_DATA_TIMEOUT_SECONDS", defaults.market_data_timeout_seconds
            ),
            binance_base_url=env.get("BINANCE_BASE_URL", defaults.binance_base_url),
            analysis_concurrency=max(1, _env_int(env, "ANALYSIS_CONCURRENCY", defaults.analysis_concurrency)),
            history_window=max(1, _env_int(env, "HISTORY_WINDOW", defaults.history_window)),
        )

    def pairs_parts(self) -> list[tuple[str, str]]:
        """Return configured pairs as (base, quote) tuples, e.g. ("BTC", "USDC")."""
        parts: list[tuple[str, str]] = []
        for raw in self.allowed_pairs.split(","):
            pair = raw.strip().upper()
            if not pair:
                continue
            base, sep, quote = pair.partition("_")
            if not sep or not base or not quote:
                logger.warning("Skipping malformed pair %r (expected BASE_QUOTE)", raw)
                continue
            parts.append((base, quote))
        return parts

    def pairs(self) -> list[str]:
        """Exchange symbols for the configured pairs, e.g. "BTCUSDC"."""
        return [f"{base}{quote}" for base, quote in self.pairs_parts()]

    def assets(self) -> list[str]:
        """Distinct assets across all pairs, sorted."""
        seen: set[str] = set()
        for base, quote in self.pairs_parts():
            seen.add(base)
            seen.add(quote)
        return sorted(seen)
