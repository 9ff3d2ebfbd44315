from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from newsrelay.models.errors import ConfigError

logger = logging.getLogger(__name__)

REASONING_EFFORTS = ("xhigh", "high", "medium", "low", "minimal", "none")

TEXT_PROVIDERS = ("openrouter", "perplexity", "gemini")
IMAGE_PROVIDERS = ("openrouter", "gemini")

STAGE_NAMES = ("download", "scrape", "translate", "rewrite", "illustrate", "publish")


def _to_int(v: str | None, default: int) -> int:
    if v is None or not v.strip():
        return default
    return int(v.strip())

def _to_float(v: str | None, default: float) -> float:
    if v is None or not v.strip():
        return default
    return float(v.strip())

def _to_str(v: str | None, default: str = "") -> str:
    if v is None:
        return default
    return v.strip()


def parse_optional_bool(value: str | None, name: str = "") -> bool | None:
    """Tri-state flag: empty or '-' means unset, garbage is ignored with a warning."""
    if value is None:
        return None
    v = value.strip()
    if not v or v == "-":
        return None
    lowered = v.lower()
    if lowered in {"1", "true", "yes", "y", "on"}:
        return True
    if lowered in {"0", "false", "no", "n", "off"}:
        return False
    logger.warning("%s has invalid value '%s'. Ignoring.", name or "flag", v)
    return None


def parse_optional_effort(value: str | None, name: str = "") -> str | None:
    if value is None:
        return None
    v = value.strip()
    if not v or v == "-":
        return None
    lowered = v.lower()
    if lowered in REASONING_EFFORTS:
        return lowered
    logger.warning(
        "%s has invalid value '%s'. Allowed: %s. Ignoring.",
        name or "reasoning effort", v, "|".join(REASONING_EFFORTS),
    )
    return None


class ReasoningConfig(BaseModel):
    enabled: bool | None = None
    effort: str | None = None


class ProviderConfig(BaseModel):
    provider: str
    model: str
    api_key: str
    prompt: str
    reasoning: ReasoningConfig | None = None


def read_reasoning(prefix: str, env: dict[str, str]) -> ReasoningConfig | None:
    enabled = parse_optional_bool(env.get(f"{prefix}_REASONING_ENABLED"), f"{prefix}_REASONING_ENABLED")
    effort = parse_optional_effort(env.get(f"{prefix}_REASONING_EFFORT"), f"{prefix}_REASONING_EFFORT")

    # an effort without an explicit flag implies the flag
    if enabled is None and effort is not None:
        enabled = effort != "none"

    if enabled is None and effort is None:
        return None
    return ReasoningConfig(enabled=enabled, effort=effort)


def read_provider(role: str, env: dict[str, str]) -> ProviderConfig | None:
    """
    Reads AI_PROVIDER_<ROLE>_* variables. Returns None when the role is not
    configured at all; raises ConfigError when it is configured partially.
    """
    prefix = f"AI_PROVIDER_{role.upper()}"
    keys = ("TYPE", "MODEL", "PROMPT", "API_KEY")
    values = {k: _to_str(env.get(f"{prefix}_{k}")) for k in keys}

    if not any(values.values()):
        return None

    missing = [f"{prefix}_{k}" for k, v in values.items() if not v]
    if missing:
        raise ConfigError(f"Missing environment variables: {', '.join(missing)}")

    return ProviderConfig(
        provider=values["TYPE"].lower(),
        model=values["MODEL"],
        prompt=values["PROMPT"],
        api_key=values["API_KEY"],
        reasoning=read_reasoning(prefix, env),
    )


class Settings(BaseModel):
    database_url: str = Field(default="sqlite:///data/news.db")
    data_dir: str = Field(default="data")

    log_level: str = Field(default="INFO")
    log_file: str = Field(default="logs/pipeline.log")

    download_interval_seconds: int = Field(default=60)
    scrape_interval_seconds: int = Field(default=60)
    translate_interval_seconds: int = Field(default=60)
    rewrite_interval_seconds: int = Field(default=60)
    illustrate_interval_seconds: int = Field(default=60)
    publish_interval_seconds: int = Field(default=60)

    http_timeout_seconds: float = Field(default=30.0)
    provider_timeout_seconds: float = Field(default=120.0)

    translator: ProviderConfig | None = None
    rewriter: ProviderConfig | None = None
    illustrator: ProviderConfig | None = None

    telegram_bot_token: str = Field(default="")
    telegram_chat_id: str = Field(default="")
    telegram_text_limit: int = Field(default=4096)

    telegraph_access_token: str = Field(default="")
    telegraph_short_name: str = Field(default="newsrelay")
    telegraph_author_name: str = Field(default="")
    telegraph_content_budget: int = Field(default=65536)

    rate_limit_default_retry_seconds: int = Field(default=60)

    publish_date_label: str = Field(default="Published")
    publish_source_label: str = Field(default="Read original")
    publish_read_more_label: str = Field(default="Read the full article")

    def interval_for(self, stage: str) -> int:
        if stage not in STAGE_NAMES:
            raise ConfigError(f"Unknown stage '{stage}'")
        return getattr(self, f"{stage}_interval_seconds")

    def require_provider(self, role: str, allowed: tuple[str, ...]) -> ProviderConfig:
        cfg: ProviderConfig | None = getattr(self, role)
        if cfg is None:
            raise ConfigError(f"AI_PROVIDER_{role.upper()}_TYPE environment variable not set")
        if cfg.provider not in allowed:
            raise ConfigError(
                f"AI_PROVIDER_{role.upper()}_TYPE must be one of {', '.join(allowed)} (got '{cfg.provider}')"
            )
        return cfg

    def require_telegram(self) -> None:
        missing = []
        if not self.telegram_bot_token:
            missing.append("TELEGRAM_BOT_TOKEN")
        if not self.telegram_chat_id:
            missing.append("TELEGRAM_CHAT_ID")
        if missing:
            raise ConfigError(f"Missing environment variables: {', '.join(missing)}")


def load_settings(env: dict[str, str] | None = None) -> Settings:
    """Build settings from the process environment (after loading .env) or from `env`."""
    if env is None:
        load_dotenv()
        env = dict(os.environ)

    try:
        return Settings(
            database_url=env.get("DATABASE_URL", "sqlite:///data/news.db"),
            data_dir=env.get("DATA_DIR", "data"),
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_file=env.get("LOG_FILE", "logs/pipeline.log"),

            download_interval_seconds=_to_int(env.get("DOWNLOAD_INTERVAL_SECONDS"), 60),
            scrape_interval_seconds=_to_int(env.get("SCRAPE_INTERVAL_SECONDS"), 60),
            translate_interval_seconds=_to_int(env.get("TRANSLATE_INTERVAL_SECONDS"), 60),
            rewrite_interval_seconds=_to_int(env.get("REWRITE_INTERVAL_SECONDS"), 60),
            illustrate_interval_seconds=_to_int(env.get("ILLUSTRATE_INTERVAL_SECONDS"), 60),
            publish_interval_seconds=_to_int(env.get("PUBLISH_INTERVAL_SECONDS"), 60),

            http_timeout_seconds=_to_float(env.get("HTTP_TIMEOUT_SECONDS"), 30.0),
            provider_timeout_seconds=_to_float(env.get("PROVIDER_TIMEOUT_SECONDS"), 120.0),

            translator=read_provider("translator", env),
            rewriter=read_provider("rewriter", env),
            illustrator=read_provider("illustrator", env),

            telegram_bot_token=_to_str(env.get("TELEGRAM_BOT_TOKEN")),
            telegram_chat_id=_to_str(env.get("TELEGRAM_CHAT_ID")),
            telegram_text_limit=_to_int(env.get("TELEGRAM_TEXT_LIMIT"), 4096),

            telegraph_access_token=_to_str(env.get("TELEGRAPH_ACCESS_TOKEN")),
            telegraph_short_name=_to_str(env.get("TELEGRAPH_SHORT_NAME"), "newsrelay"),
            telegraph_author_name=_to_str(env.get("TELEGRAPH_AUTHOR_NAME")),
            telegraph_content_budget=_to_int(env.get("TELEGRAPH_CONTENT_BUDGET"), 65536),

            rate_limit_default_retry_seconds=_to_int(env.get("RATE_LIMIT_DEFAULT_RETRY_SECONDS"), 60),

            publish_date_label=env.get("PUBLISH_DATE_LABEL", "Published"),
            publish_source_label=env.get("PUBLISH_SOURCE_LABEL", "Read original"),
            publish_read_more_label=env.get("PUBLISH_READ_MORE_LABEL", "Read the full article"),
        )
    except ValueError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
