from __future__ import annotations

import json
import logging

import requests

from newsrelay.models.outcomes import (
    FAILED_FINISH_REASONS,
    HardFailure,
    ProviderOutcome,
    SoftFailure,
    Success,
)
from newsrelay.services.ai_gateway import (
    GenerationKind,
    Provider,
    map_effort,
    truncate_for_log,
)
from newsrelay.services.html_extract import extract_html, looks_like_html

logger = logging.getLogger(__name__)

OPENROUTER_CHAT_URL = "https://openrouter.ai/api/v1/chat/completions"
PERPLEXITY_CHAT_URL = "https://api.perplexity.ai/chat/completions"
# https://ai.google.dev/gemini-api/docs/openai
GEMINI_CHAT_URL = "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions"


def parse_chat_response(status_code: int, body: str) -> ProviderOutcome:
    """
    Classify a chat-completions response carrying an HTML document.

    Soft failures keep the best-effort extracted document as payload.
    """
    try:
        data = json.loads(body)
        choices = data["choices"]
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        logger.error(
            "Failed to parse AI provider response JSON. Status: %s. Body: %s",
            status_code, truncate_for_log(body),
        )
        return HardFailure(f"unparseable response (status {status_code}): {e}")

    if not choices:
        logger.error("AI provider returned empty choices array.")
        return HardFailure("AI provider returned empty choices")

    try:
        choice = choices[0]
        content = choice["message"].get("content") or ""
        finish_reason = choice.get("finish_reason")
    except (KeyError, TypeError, AttributeError) as e:
        return HardFailure(f"malformed choice in response: {e}")

    if not isinstance(content, str):
        logger.error("AI provider returned non-text message content: %s", type(content).__name__)
        return HardFailure(f"message content is not text ({type(content).__name__})")

    cleaned = extract_html(content)
    ok = 200 <= status_code < 300

    if not ok:
        logger.warning(
            "AI provider returned non-success status %s (finish_reason=%s), %d bytes of content.",
            status_code, finish_reason, len(cleaned),
        )
        return SoftFailure(
            finish_reason="error",
            payload=cleaned,
            message=f"HTTP {status_code}",
        )

    if finish_reason in FAILED_FINISH_REASONS:
        logger.warning("AI provider returned status %s but finish_reason is '%s'.", status_code, finish_reason)
        return SoftFailure(finish_reason=finish_reason, payload=cleaned, message="completion not finished")

    if not looks_like_html(cleaned):
        logger.warning("AI provider content does not look like HTML. Forcing finish_reason='error'.")
        return SoftFailure(finish_reason="error", payload=cleaned, message="response is not an HTML document")

    return Success(cleaned, finish_reason)


class ChatCompletionsProvider(Provider):
    """OpenAI-style /chat/completions endpoint returning one HTML document."""

    kind = GenerationKind.TEXT
    endpoint = ""

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.config.api_key}"}

    def _reasoning_fields(self) -> dict:
        return {}

    def build_request(self, system_prompt: str, user_content: str) -> dict:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
        }
        payload.update(self._reasoning_fields())
        return payload

    def generate(self, system_prompt: str, user_content: str) -> ProviderOutcome:
        payload = self.build_request(system_prompt, user_content)
        logger.debug("Sending request to %s with model: %s", self.name, self.model)
        try:
            response = self._post(self.endpoint, payload, self._auth_headers())
            body = response.text
        except requests.RequestException as e:
            logger.error("%s request failed: %s", self.name, e)
            return HardFailure(f"{self.name} request failed: {e}")
        return parse_chat_response(response.status_code, body)


class OpenRouterTextProvider(ChatCompletionsProvider):
    name = "openrouter"
    endpoint = OPENROUTER_CHAT_URL

    def _reasoning_fields(self) -> dict:
        reasoning = self.config.reasoning
        if reasoning is None:
            return {}
        # OpenRouter takes the normalized vocabulary as-is
        logger.debug("OpenRouter reasoning config applied: enabled=%s, effort=%s", reasoning.enabled, reasoning.effort)
        return {"reasoning": reasoning.model_dump(exclude_none=True)}


PERPLEXITY_EFFORTS: dict[str, str | None] = {
    "xhigh": "high",
    "high": "high",
    "medium": "medium",
    "low": "low",
    "minimal": "low",
    "none": None,
}

GEMINI_EFFORTS: dict[str, str | None] = {
    "xhigh": "high",
    "high": "high",
    "medium": "medium",
    "low": "low",
    "minimal": "minimal",
    "none": None,
}


class PerplexityTextProvider(ChatCompletionsProvider):
    name = "perplexity"
    endpoint = PERPLEXITY_CHAT_URL
    efforts = PERPLEXITY_EFFORTS

    def _reasoning_fields(self) -> dict:
        effort = map_effort(self.config.reasoning, self.efforts, self.name)
        if effort is None:
            return {}
        logger.debug("%s reasoning_effort applied: %s", self.name, effort)
        return {"reasoning_effort": effort}


class GeminiTextProvider(PerplexityTextProvider):
    name = "gemini"
    endpoint = GEMINI_CHAT_URL
    efforts = GEMINI_EFFORTS


TEXT_PROVIDER_CLASSES: dict[str, type[ChatCompletionsProvider]] = {
    "openrouter": OpenRouterTextProvider,
    "perplexity": PerplexityTextProvider,
    "gemini": GeminiTextProvider,
}
