"""
Centralized configuration with environment variable overrides.

All marketplace-specific values, thresholds, rates and model settings are
configurable here. Nothing is hardcoded in node, ranker or calculator logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from carinsight.logging_context import LOG_FORMAT, install_session_filter

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    raw = os.getenv(env_var, default).strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


def _csv(env_var: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(env_var, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class BusinessConfig:
    """Marketplace-specific settings loaded from environment or defaults."""

    name: str = os.getenv("BUSINESS_NAME", "CarInsight")
    consultant_response_minutes: int = _safe_int("CONSULTANT_RESPONSE_MINUTES", "30")
    # Whether a customer-selected starting vehicle seeds budget and body type.
    seed_profile_from_vehicle: bool = _safe_bool("SEED_PROFILE_FROM_VEHICLE", "true")
    seed_budget_headroom: float = _safe_float("SEED_BUDGET_HEADROOM", "1.2")


@dataclass(frozen=True)
class ModelConfig:
    """LLM and embedding model settings."""

    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
    llm_temperature: float = _safe_float("LLM_TEMPERATURE", "0.7")
    llm_max_tokens: int = _safe_int("LLM_MAX_TOKENS", "1024")
    embedding_model: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    embedding_dimensions: int = _safe_int("EMBEDDING_DIMENSIONS", "1536")
    request_timeout_sec: float = _safe_float("REQUEST_TIMEOUT_SEC", "20.0")


@dataclass(frozen=True)
class RouterConfig:
    """Circuit breaker settings for the chat-completion router."""

    failure_threshold: int = _safe_int("CIRCUIT_FAILURE_THRESHOLD", "3")
    reset_timeout_sec: float = _safe_float("CIRCUIT_RESET_TIMEOUT_SEC", "60.0")
    provider_order: tuple[str, ...] = _csv("LLM_PROVIDER_ORDER", "openai,gemini")


@dataclass(frozen=True)
class SearchConfig:
    """Retrieval and ranking thresholds."""

    similarity_threshold: float = _safe_float("SIMILARITY_THRESHOLD", "0.3")
    budget_flexibility: float = _safe_float("BUDGET_FLEXIBILITY", "1.1")
    keyword_score: float = _safe_float("KEYWORD_MATCH_SCORE", "0.7")
    filter_fallback_score: float = _safe_float("FILTER_FALLBACK_SCORE", "0.8")
    filter_search_score: float = _safe_float("FILTER_SEARCH_SCORE", "1.0")
    result_limit: int = _safe_int("RECOMMENDATION_LIMIT", "3")
    candidate_limit: int = _safe_int("SEARCH_CANDIDATE_LIMIT", "10")
    scan_limit: int = _safe_int("SEARCH_SCAN_LIMIT", "500")


@dataclass(frozen=True)
class FinanceConfig:
    """Financing simulation defaults."""

    monthly_rate: float = _safe_float("FINANCING_MONTHLY_RATE", "0.0179")
    default_down_payment_pct: float = _safe_float("FINANCING_DOWN_PAYMENT_PCT", "0.2")
    default_months: int = _safe_int("FINANCING_DEFAULT_MONTHS", "48")
    alternative_months: tuple[int, ...] = (36, 60)


@dataclass(frozen=True)
class TradeInConfig:
    """Trade-in estimation parameters."""

    base_value: float = _safe_float("TRADE_IN_BASE_VALUE", "50000")
    annual_depreciation: float = _safe_float("TRADE_IN_DEPRECIATION", "0.12")
    km_per_year: int = _safe_int("TRADE_IN_KM_PER_YEAR", "15000")
    min_mileage_factor: float = 0.7
    max_mileage_factor: float = 1.1
    low_band: float = 0.85
    high_band: float = 1.05


@dataclass(frozen=True)
class GuardrailConfig:
    """Thresholds for escalation and guardrail triggers."""

    confusion_threshold: int = _safe_int("CONFUSION_THRESHOLD", "3")
    max_turn_steps: int = _safe_int("MAX_TURN_STEPS", "8")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    business: BusinessConfig = field(default_factory=BusinessConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    router: RouterConfig = field(default_factory=RouterConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    finance: FinanceConfig = field(default_factory=FinanceConfig)
    trade_in: TradeInConfig = field(default_factory=TradeInConfig)
    guardrails: GuardrailConfig = field(default_factory=GuardrailConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if not 0.0 <= config.model.llm_temperature <= 2.0:
        raise ValueError(
            f"LLM_TEMPERATURE must be between 0.0 and 2.0, got {config.model.llm_temperature}"
        )
    if config.model.request_timeout_sec <= 0:
        raise ValueError(
            f"REQUEST_TIMEOUT_SEC must be > 0, got {config.model.request_timeout_sec}"
        )
    if config.router.failure_threshold < 1:
        raise ValueError(
            f"CIRCUIT_FAILURE_THRESHOLD must be >= 1, got {config.router.failure_threshold}"
        )
    if config.router.reset_timeout_sec <= 0:
        raise ValueError(
            f"CIRCUIT_RESET_TIMEOUT_SEC must be > 0, got {config.router.reset_timeout_sec}"
        )
    if not -1.0 <= config.search.similarity_threshold <= 1.0:
        raise ValueError(
            "SIMILARITY_THRESHOLD must be between -1.0 and 1.0, "
            f"got {config.search.similarity_threshold}"
        )
    if config.search.budget_flexibility < 1.0:
        raise ValueError(
            f"BUDGET_FLEXIBILITY must be >= 1.0, got {config.search.budget_flexibility}"
        )
    if config.search.result_limit < 1:
        raise ValueError(
            f"RECOMMENDATION_LIMIT must be >= 1, got {config.search.result_limit}"
        )
    if not 0.0 < config.finance.monthly_rate < 1.0:
        raise ValueError(
            f"FINANCING_MONTHLY_RATE must be between 0 and 1, got {config.finance.monthly_rate}"
        )
    if not 0.0 <= config.finance.default_down_payment_pct < 1.0:
        raise ValueError(
            "FINANCING_DOWN_PAYMENT_PCT must be between 0.0 and 1.0, "
            f"got {config.finance.default_down_payment_pct}"
        )
    if config.finance.default_months < 1:
        raise ValueError(
            f"FINANCING_DEFAULT_MONTHS must be >= 1, got {config.finance.default_months}"
        )
    if not 0.0 <= config.trade_in.annual_depreciation < 1.0:
        raise ValueError(
            "TRADE_IN_DEPRECIATION must be between 0.0 and 1.0, "
            f"got {config.trade_in.annual_depreciation}"
        )
    if config.guardrails.confusion_threshold < 1:
        raise ValueError(
            f"CONFUSION_THRESHOLD must be >= 1, got {config.guardrails.confusion_threshold}"
        )
    if config.guardrails.max_turn_steps < 2:
        raise ValueError(
            f"MAX_TURN_STEPS must be >= 2, got {config.guardrails.max_turn_steps}"
        )
    if config.business.consultant_response_minutes < 1:
        raise ValueError(
            "CONSULTANT_RESPONSE_MINUTES must be >= 1, "
            f"got {config.business.consultant_response_minutes}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    install_session_filter()
    logger.info("Configuration loaded for '%s'", config.business.name)
    return config


# Singleton instance
settings = load_config()
