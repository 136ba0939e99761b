"""
Centralized configuration with environment variable overrides.

Matching radius, interview hours, tenant fallbacks and model settings are
all configurable here. Nothing is hardcoded in engine or tool logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from recruit_engine.logging_context import TraceIdFilter

load_dotenv()

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s [%(trace_id)s]: %(message)s"


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
    return os.getenv(env_var, default).strip().lower() in ("1", "true", "yes", "on")


def _int_list(env_var: str, default: str) -> tuple[int, ...]:
    raw = os.getenv(env_var, default)
    try:
        return tuple(int(part) for part in raw.split(",") if part.strip())
    except ValueError:
        raise ValueError(f"Invalid integer list for {env_var}: {raw!r}") from None


def _mapping(env_var: str, default: str) -> dict[str, str]:
    """Parse ``key=value,key=value`` pairs."""
    raw = os.getenv(env_var, default)
    pairs: dict[str, str] = {}
    for item in raw.split(","):
        if not item.strip():
            continue
        key, sep, value = item.partition("=")
        if not sep:
            raise ValueError(f"Invalid mapping entry for {env_var}: {item!r}")
        pairs[key.strip()] = value.strip()
    return pairs


@dataclass(frozen=True)
class ModelConfig:
    """Language model settings."""

    llm_model: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    llm_temperature: float = _safe_float("LLM_TEMPERATURE", "0.3")
    llm_timeout_sec: float = _safe_float("LLM_TIMEOUT_SEC", "20")
    llm_max_retries: int = _safe_int("LLM_MAX_RETRIES", "2")
    api_key: str = os.getenv("OPENAI_API_KEY", "")


@dataclass(frozen=True)
class MatchingConfig:
    """Store matching thresholds."""

    max_distance_km: float = _safe_float("MAX_DISTANCE_KM", "7")
    distance_tie_km: float = _safe_float("DISTANCE_TIE_KM", "0.5")
    max_results: int = _safe_int("MAX_STORE_RESULTS", "3")


@dataclass(frozen=True)
class SchedulingConfig:
    """Interview slot generation and calendar settings."""

    interview_hours: tuple[int, ...] = _int_list("INTERVIEW_HOURS", "9,10,11,14,15,16,17")
    days_ahead: int = _safe_int("INTERVIEW_DAYS_AHEAD", "7")
    duration_minutes: int = _safe_int("INTERVIEW_DURATION_MIN", "60")
    # Python weekday numbering, 6 = Sunday
    non_working_weekday: int = _safe_int("NON_WORKING_WEEKDAY", "6")
    slots_offered: int = _safe_int("SLOTS_OFFERED", "5")
    calendar_timeout_sec: float = _safe_float("CALENDAR_TIMEOUT_SEC", "10")
    default_calendar_id: str = os.getenv("DEFAULT_CALENDAR_ID", "seleccion@example.com")
    timezone: str = os.getenv("TIMEZONE", "America/Lima")
    calendar_backend: str = os.getenv("CALENDAR_BACKEND", "fake")
    service_account_file: str = os.getenv("GOOGLE_SERVICE_ACCOUNT_FILE", "")


@dataclass(frozen=True)
class TenantConfig:
    """Origin-to-tenant resolution policy."""

    default_tenant_id: str = os.getenv("DEFAULT_TENANT_ID", "demo")
    allow_default: bool = _safe_bool("ALLOW_DEFAULT_TENANT", "true")
    fallbacks: dict[str, str] = field(
        default_factory=lambda: _mapping(
            "TENANT_FALLBACKS", "demo-whatsapp=demo,demo-web=demo,test-whatsapp=demo"
        )
    )
    cache_ttl_sec: float = _safe_float("TENANT_CACHE_TTL_SEC", "300")


@dataclass(frozen=True)
class ScreeningConfig:
    """Candidate screening rules and conversation bookkeeping."""

    min_age: int = _safe_int("MIN_AGE", "18")
    history_limit: int = _safe_int("HISTORY_LIMIT", "20")
    save_retries: int = _safe_int("SAVE_RETRIES", "3")
    language: str = os.getenv("REPLY_LANGUAGE", "Spanish")


@dataclass(frozen=True)
class MessagingConfig:
    """WhatsApp Cloud API credentials."""

    token: str = os.getenv("WHATSAPP_TOKEN", "")
    phone_number_id: str = os.getenv("WHATSAPP_PHONE_NUMBER_ID", "")
    verify_token: str = os.getenv("WHATSAPP_VERIFY_TOKEN", "")
    api_version: str = os.getenv("WHATSAPP_API_VERSION", "v21.0")
    origin_id: str = os.getenv("WHATSAPP_ORIGIN_ID", "demo-whatsapp")
    timeout_sec: float = _safe_float("WHATSAPP_TIMEOUT_SEC", "15")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    model: ModelConfig = field(default_factory=ModelConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    tenants: TenantConfig = field(default_factory=TenantConfig)
    screening: ScreeningConfig = field(default_factory=ScreeningConfig)
    messaging: MessagingConfig = field(default_factory=MessagingConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    environment: str = os.getenv("ENVIRONMENT", "development")
    storage_backend: str = os.getenv("STORAGE_BACKEND", "memory")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if not 0.0 <= config.model.llm_temperature <= 2.0:
        raise ValueError(
            f"LLM_TEMPERATURE must be between 0.0 and 2.0, got {config.model.llm_temperature}"
        )
    if config.model.llm_timeout_sec <= 0:
        raise ValueError(f"LLM_TIMEOUT_SEC must be > 0, got {config.model.llm_timeout_sec}")
    if config.matching.max_distance_km <= 0:
        raise ValueError(
            f"MAX_DISTANCE_KM must be > 0, got {config.matching.max_distance_km}"
        )
    if config.matching.distance_tie_km < 0:
        raise ValueError(
            f"DISTANCE_TIE_KM must be >= 0, got {config.matching.distance_tie_km}"
        )
    if config.matching.max_results < 1:
        raise ValueError(f"MAX_STORE_RESULTS must be >= 1, got {config.matching.max_results}")

    hours = config.scheduling.interview_hours
    if not hours or any(not 0 <= h <= 23 for h in hours):
        raise ValueError(f"INTERVIEW_HOURS must be hours in 0-23, got {hours}")
    if config.scheduling.days_ahead < 1:
        raise ValueError(
            f"INTERVIEW_DAYS_AHEAD must be >= 1, got {config.scheduling.days_ahead}"
        )
    if config.scheduling.duration_minutes < 1:
        raise ValueError(
            f"INTERVIEW_DURATION_MIN must be >= 1, got {config.scheduling.duration_minutes}"
        )
    if not 0 <= config.scheduling.non_working_weekday <= 6:
        raise ValueError(
            "NON_WORKING_WEEKDAY must be between 0 and 6, "
            f"got {config.scheduling.non_working_weekday}"
        )
    if config.scheduling.calendar_timeout_sec <= 0:
        raise ValueError(
            "CALENDAR_TIMEOUT_SEC must be > 0, "
            f"got {config.scheduling.calendar_timeout_sec}"
        )
    if config.scheduling.calendar_backend not in ("fake", "google"):
        raise ValueError(
            "CALENDAR_BACKEND must be 'fake' or 'google', "
            f"got {config.scheduling.calendar_backend!r}"
        )
    if config.screening.save_retries < 1:
        raise ValueError(f"SAVE_RETRIES must be >= 1, got {config.screening.save_retries}")
    if config.storage_backend not in ("memory", "firestore"):
        raise ValueError(
            f"STORAGE_BACKEND must be 'memory' or 'firestore', got {config.storage_backend!r}"
        )
    if config.environment == "production" and config.tenants.allow_default:
        raise ValueError("ALLOW_DEFAULT_TENANT must be false when ENVIRONMENT=production")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Records from plain module loggers need trace_id too
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, TraceIdFilter) for f in handler.filters):
            handler.addFilter(TraceIdFilter())
    logger.info("Configuration loaded (environment=%s)", config.environment)
    return config


# Singleton instance
settings = load_config()
