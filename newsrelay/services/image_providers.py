from __future__ import annotations

import json
import logging

import requests

from newsrelay.models.outcomes import HardFailure, ProviderOutcome, SoftFailure, Success
from newsrelay.services.ai_gateway import (
    GenerationKind,
    Provider,
    base64_from_data_url,
    decode_base64,
    looks_like_png,
    truncate_for_log,
)

logger = logging.getLogger(__name__)

OPENROUTER_CHAT_URL = "https://openrouter.ai/api/v1/chat/completions"
GEMINI_GENERATE_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


def _check_png(image: bytes, provider: str) -> ProviderOutcome:
    logger.debug("Image bytes received: %d", len(image))
    if not looks_like_png(image):
        # some backends answer 200 with a placeholder or an error picture
        logger.warning("%s returned image bytes that do not look like a PNG. Forcing finish_reason='error'.", provider)
        return SoftFailure(finish_reason="error", message="image bytes are not a valid PNG")
    return Success(image)


def _non_success(status_code: int, body: str, provider: str) -> SoftFailure:
    logger.warning("%s returned non-success status: %s. Body: %s", provider, status_code, truncate_for_log(body))
    return SoftFailure(finish_reason="error", message=f"HTTP {status_code}: {truncate_for_log(body, 500)}")


class ImageProvider(Provider):
    kind = GenerationKind.IMAGE

    @staticmethod
    def compose_prompt(system_prompt: str, user_content: str) -> str:
        # image models may ignore system messages, so the prompt rides in the user turn
        return f"{system_prompt}\n\n{user_content}"


class OpenRouterImageProvider(ImageProvider):
    """
    Chat completions with image output:
    choices[0].message.images[0].image_url.url is a base64 data url or a plain url.
    """

    name = "openrouter"

    def build_request(self, system_prompt: str, user_content: str) -> dict:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": self.compose_prompt(system_prompt, user_content)}],
            "modalities": ["image", "text"],
        }
        if self.config.reasoning is not None:
            payload["reasoning"] = self.config.reasoning.model_dump(exclude_none=True)
        return payload

    def generate(self, system_prompt: str, user_content: str) -> ProviderOutcome:
        payload = self.build_request(system_prompt, user_content)
        logger.debug(
            "Request summary: model='%s', prompt_len=%d, html_len=%d",
            self.model, len(system_prompt), len(user_content),
        )
        try:
            response = self._post(OPENROUTER_CHAT_URL, payload, {"Authorization": f"Bearer {self.config.api_key}"})
            body = response.text
        except requests.RequestException as e:
            logger.error("openrouter image request failed: %s", e)
            return HardFailure(f"openrouter request failed: {e}")

        if not 200 <= response.status_code < 300:
            return _non_success(response.status_code, body, self.name)

        try:
            data = json.loads(body)
            choices = data["choices"]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.error("Failed to parse image response JSON. Body: %s", truncate_for_log(body))
            return HardFailure(f"unparseable image response: {e}")

        try:
            url = choices[0]["message"]["images"][0]["image_url"]["url"]
        except (IndexError, KeyError, TypeError):
            return HardFailure("AI provider returned empty image data")

        b64 = base64_from_data_url(url)
        try:
            if b64 is not None:
                logger.debug("Decoding base64 image payload (chars=%d)", len(b64))
                image = decode_base64(b64)
            else:
                logger.debug("Downloading image from URL: %s", url)
                img_resp = self.session.get(url, timeout=self.timeout)
                img_resp.raise_for_status()
                image = img_resp.content
        except ValueError as e:
            return HardFailure(str(e))
        except requests.RequestException as e:
            return HardFailure(f"image download failed: {e}")

        return _check_png(image, self.name)


class GeminiImageProvider(ImageProvider):
    """
    models/{model}:generateContent with TEXT+IMAGE response modalities;
    the picture comes back as base64 inlineData in the first candidate.
    """

    name = "gemini"

    def build_request(self, system_prompt: str, user_content: str) -> dict:
        return {
            "contents": [{"parts": [{"text": self.compose_prompt(system_prompt, user_content)}]}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }

    def generate(self, system_prompt: str, user_content: str) -> ProviderOutcome:
        payload = self.build_request(system_prompt, user_content)
        url = GEMINI_GENERATE_URL.format(model=self.model)
        try:
            response = self._post(url, payload, {"x-goog-api-key": self.config.api_key})
            body = response.text
        except requests.RequestException as e:
            logger.error("gemini image request failed: %s", e)
            return HardFailure(f"gemini request failed: {e}")

        if not 200 <= response.status_code < 300:
            return _non_success(response.status_code, body, self.name)

        try:
            data = json.loads(body)
            candidates = data.get("candidates") or []
        except (json.JSONDecodeError, AttributeError) as e:
            logger.error("Failed to parse Gemini generateContent JSON. Body: %s", truncate_for_log(body))
            return HardFailure(f"unparseable image response: {e}")

        logger.debug("Gemini response summary: candidates=%d", len(candidates))
        if not candidates:
            return HardFailure("AI provider returned empty image data")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        inline = None
        for part in parts:
            inline = part.get("inlineData") or part.get("inline_data")
            if inline:
                break
        if not inline or not inline.get("data"):
            return HardFailure("AI provider returned empty image data")

        mime = inline.get("mimeType") or inline.get("mime_type")
        if mime:
            logger.debug("Gemini inlineData mime_type=%s", mime)

        try:
            image = decode_base64(inline["data"])
        except ValueError as e:
            return HardFailure(str(e))
        return _check_png(image, self.name)


IMAGE_PROVIDER_CLASSES: dict[str, type[ImageProvider]] = {
    "openrouter": OpenRouterImageProvider,
    "gemini": GeminiImageProvider,
}
