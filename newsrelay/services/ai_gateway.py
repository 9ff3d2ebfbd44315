from __future__ import annotations

import base64
import binascii
import logging
from abc import ABC, abstractmethod
from enum import Enum

import requests

from newsrelay.config.settings import (
    IMAGE_PROVIDERS,
    TEXT_PROVIDERS,
    ProviderConfig,
    ReasoningConfig,
)
from newsrelay.models.errors import ConfigError
from newsrelay.models.outcomes import ProviderOutcome

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

DEFAULT_TIMEOUT_SECONDS = 120.0


class GenerationKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"


def truncate_for_log(s: str, max_len: int = 2000) -> str:
    if len(s) <= max_len:
        return s
    return f"{s[:max_len]}... [truncated, total_len={len(s)}]"


def looks_like_png(data: bytes) -> bool:
    return data[: len(PNG_SIGNATURE)] == PNG_SIGNATURE


def base64_from_data_url(url: str) -> str | None:
    """The base64 part of a data:image/...;base64,... url, or None for anything else."""
    lower = url.lower()
    if not lower.startswith("data:image/"):
        return None
    for marker in (";base64,", ",base64,"):
        idx = lower.find(marker)
        if idx != -1:
            return url[idx + len(marker):]
    return None


def decode_base64(data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid base64 image payload: {e}") from e


def map_effort(reasoning: ReasoningConfig | None, table: dict[str, str | None], provider: str) -> str | None:
    """
    Translate a normalized effort into a provider's own vocabulary using `table`.
    Unknown values are dropped with a warning rather than failing the request.
    """
    if reasoning is None or reasoning.enabled is False or reasoning.effort is None:
        return None
    effort = reasoning.effort
    if effort not in table:
        logger.warning("Reasoning effort '%s' is not supported for %s. Omitting it.", effort, provider)
        return None
    return table[effort]


class Provider(ABC):
    """
    One backend behind the uniform generate() contract.
    Transport and protocol problems are returned as outcomes, never raised.
    """

    name = "provider"
    kind = GenerationKind.TEXT

    def __init__(
        self,
        config: ProviderConfig,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def model(self) -> str:
        return self.config.model

    @abstractmethod
    def generate(self, system_prompt: str, user_content: str) -> ProviderOutcome:
        ...

    def _post(self, url: str, payload: dict, headers: dict[str, str]) -> requests.Response:
        headers = {"Content-Type": "application/json", **headers}
        return self.session.post(url, json=payload, headers=headers, timeout=self.timeout)


def build_provider(
    kind: GenerationKind,
    config: ProviderConfig,
    session: requests.Session | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> Provider:
    """Pick the concrete provider once, at startup."""
    from newsrelay.services.image_providers import IMAGE_PROVIDER_CLASSES
    from newsrelay.services.text_providers import TEXT_PROVIDER_CLASSES

    if kind is GenerationKind.TEXT:
        registry, allowed = TEXT_PROVIDER_CLASSES, TEXT_PROVIDERS
    else:
        registry, allowed = IMAGE_PROVIDER_CLASSES, IMAGE_PROVIDERS

    cls = registry.get(config.provider.lower())
    if cls is None:
        raise ConfigError(
            f"Provider '{config.provider}' cannot generate {kind.value}; expected one of {', '.join(allowed)}"
        )
    return cls(config, session=session, timeout=timeout)
