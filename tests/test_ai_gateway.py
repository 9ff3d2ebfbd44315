"""Provider gateway: extraction chain, outcome classification, reasoning mapping."""
from __future__ import annotations

import base64
import json

import pytest
import requests

from conftest import PNG_BYTES, chat_body, fake_response
from newsrelay.config.settings import ProviderConfig, ReasoningConfig
from newsrelay.models.errors import ConfigError
from newsrelay.models.outcomes import HardFailure, SoftFailure, Success
from newsrelay.services.ai_gateway import (
    GenerationKind,
    base64_from_data_url,
    build_provider,
    looks_like_png,
    truncate_for_log,
)
from newsrelay.services.html_extract import (
    extract_any_fenced_block,
    extract_fenced_block,
    extract_html,
    extract_html_document_block,
    looks_like_html,
)
from newsrelay.services.image_providers import GeminiImageProvider, OpenRouterImageProvider
from newsrelay.services.text_providers import (
    GeminiTextProvider,
    OpenRouterTextProvider,
    PerplexityTextProvider,
    parse_chat_response,
)

DOC = "<!DOCTYPE html><html><body><p>Hello</p></body></html>"


def config(provider: str = "openrouter", reasoning: ReasoningConfig | None = None) -> ProviderConfig:
    return ProviderConfig(provider=provider, model="some/model", api_key="key", prompt="Rewrite", reasoning=reasoning)


# ===================================================================
# HTML extraction
# ===================================================================

class TestExtraction:
    def test_document_block_inside_commentary(self):
        text = f"Sure, here it is:\n{DOC}\nHope that helps!"
        assert extract_html_document_block(text) == DOC

    def test_document_block_uses_last_closing_tag(self):
        text = "<html><body>a</body></html> and <html>b</html> done"
        assert extract_html_document_block(text) == "<html><body>a</body></html> and <html>b</html>"

    def test_document_block_is_case_insensitive(self):
        assert extract_html_document_block("x <HTML><BODY></BODY></HTML> y") == "<HTML><BODY></BODY></HTML>"

    def test_document_block_with_case_folding_text_drops_trailing_note(self):
        doc = "<html><body><p>" + "İstanbul " * 5 + "</p></body></html>"
        assert extract_html(doc + "\nNOTE: I rewrote this") == doc

    def test_document_block_missing(self):
        assert extract_html_document_block("<p>no document</p>") is None

    def test_html_fence(self):
        text = "Intro\n```html\n<body>a</body>\n```\nOutro"
        assert extract_fenced_block(text) == "<body>a</body>"

    def test_any_fence(self):
        text = "```xml\n<body>a</body>\n```"
        assert extract_fenced_block(text) is None
        assert extract_any_fenced_block(text) == "<body>a</body>"

    def test_chain_prefers_document_over_fence(self):
        text = f"```html\n<p>fragment</p>\n```\n{DOC}"
        assert extract_html(text) == DOC

    def test_chain_falls_back_to_trimmed_text(self):
        assert extract_html("   just words  ") == "just words"

    def test_looks_like_html(self):
        assert looks_like_html(DOC)
        assert looks_like_html("<body>x</body>")
        assert not looks_like_html("<p>only a paragraph</p>")
        assert not looks_like_html("I cannot help with that.")


# ===================================================================
# Chat response classification
# ===================================================================

class TestParseChatResponse:
    def test_success(self):
        outcome = parse_chat_response(200, chat_body(f"```html\n{DOC}\n```"))
        assert outcome == Success(DOC, "stop")

    @pytest.mark.parametrize("reason", ["length", "error"])
    def test_unfinished_completion_is_soft_with_payload(self, reason):
        outcome = parse_chat_response(200, chat_body(DOC, finish_reason=reason))
        assert isinstance(outcome, SoftFailure)
        assert outcome.finish_reason == reason
        assert outcome.payload == DOC

    def test_error_status_with_content_is_soft(self):
        outcome = parse_chat_response(502, chat_body(DOC))
        assert isinstance(outcome, SoftFailure)
        assert outcome.finish_reason == "error"
        assert outcome.payload == DOC

    def test_commentary_is_soft_failure(self):
        outcome = parse_chat_response(200, chat_body("I'm sorry, I can't rewrite this article."))
        assert isinstance(outcome, SoftFailure)
        assert outcome.finish_reason == "error"

    def test_unparseable_body_is_hard(self):
        assert isinstance(parse_chat_response(200, "<html>gateway error</html>"), HardFailure)

    def test_error_status_without_json_is_hard(self):
        assert isinstance(parse_chat_response(500, "Internal Server Error"), HardFailure)

    def test_empty_choices_is_hard(self):
        assert isinstance(parse_chat_response(200, json.dumps({"choices": []})), HardFailure)

    def test_non_text_content_is_hard(self):
        body = json.dumps({
            "choices": [{"message": {"content": [{"type": "text", "text": DOC}]}, "finish_reason": "stop"}],
        })
        outcome = parse_chat_response(200, body)
        assert isinstance(outcome, HardFailure)
        assert "not text" in outcome.cause

    def test_missing_choices_is_hard(self):
        assert isinstance(parse_chat_response(200, json.dumps({"error": "quota"})), HardFailure)


class TestTextProviders:
    def test_generate_posts_chat_request(self, session):
        session.post.return_value = fake_response(200, text=chat_body(DOC))
        provider = OpenRouterTextProvider(config(), session=session, timeout=5)

        outcome = provider.generate("Rewrite", "<html>src</html>")

        assert outcome == Success(DOC, "stop")
        args, kwargs = session.post.call_args
        assert args[0].endswith("/chat/completions")
        assert kwargs["timeout"] == 5
        assert kwargs["headers"]["Authorization"] == "Bearer key"
        messages = kwargs["json"]["messages"]
        assert messages[0] == {"role": "system", "content": "Rewrite"}
        assert messages[1] == {"role": "user", "content": "<html>src</html>"}

    @pytest.mark.parametrize("exc", [requests.ConnectionError("down"), requests.Timeout("slow")])
    def test_transport_errors_are_hard(self, session, exc):
        session.post.side_effect = exc
        outcome = PerplexityTextProvider(config("perplexity"), session=session).generate("p", "c")
        assert isinstance(outcome, HardFailure)


class TestReasoningMapping:
    def test_openrouter_passes_effort_through(self):
        provider = OpenRouterTextProvider(config(reasoning=ReasoningConfig(enabled=True, effort="xhigh")))
        payload = provider.build_request("p", "c")
        assert payload["reasoning"] == {"enabled": True, "effort": "xhigh"}

    def test_openrouter_without_reasoning(self):
        assert "reasoning" not in OpenRouterTextProvider(config()).build_request("p", "c")

    @pytest.mark.parametrize("effort,expected", [
        ("xhigh", "high"),
        ("high", "high"),
        ("medium", "medium"),
        ("low", "low"),
        ("minimal", "low"),
    ])
    def test_perplexity_vocabulary(self, effort, expected):
        provider = PerplexityTextProvider(config("perplexity", ReasoningConfig(enabled=True, effort=effort)))
        assert provider.build_request("p", "c")["reasoning_effort"] == expected

    def test_gemini_keeps_minimal(self):
        provider = GeminiTextProvider(config("gemini", ReasoningConfig(enabled=True, effort="minimal")))
        assert provider.build_request("p", "c")["reasoning_effort"] == "minimal"

    def test_none_effort_is_omitted(self):
        provider = PerplexityTextProvider(config("perplexity", ReasoningConfig(enabled=False, effort="none")))
        assert "reasoning_effort" not in provider.build_request("p", "c")

    def test_disabled_reasoning_drops_effort(self):
        provider = GeminiTextProvider(config("gemini", ReasoningConfig(enabled=False, effort="high")))
        assert "reasoning_effort" not in provider.build_request("p", "c")

    def test_unsupported_effort_is_dropped_not_fatal(self):
        provider = PerplexityTextProvider(config("perplexity", ReasoningConfig(enabled=True, effort="turbo")))
        assert "reasoning_effort" not in provider.build_request("p", "c")


# ===================================================================
# Image providers
# ===================================================================

def openrouter_image_body(url: str) -> dict:
    return {"choices": [{"message": {"images": [{"image_url": {"url": url}}]}, "finish_reason": "stop"}]}


class TestOpenRouterImage:
    def test_data_url_png(self, session):
        b64 = base64.b64encode(PNG_BYTES).decode()
        session.post.return_value = fake_response(200, openrouter_image_body(f"data:image/png;base64,{b64}"))

        outcome = OpenRouterImageProvider(config(), session=session).generate("Draw", "<html></html>")

        assert outcome == Success(PNG_BYTES)
        sent = session.post.call_args.kwargs["json"]
        assert sent["modalities"] == ["image", "text"]
        assert sent["messages"][0]["content"] == "Draw\n\n<html></html>"

    def test_plain_url_is_downloaded(self, session):
        session.post.return_value = fake_response(200, openrouter_image_body("https://cdn.example/img.png"))
        session.get.return_value = fake_response(200, content=PNG_BYTES)

        outcome = OpenRouterImageProvider(config(), session=session).generate("Draw", "x")

        assert outcome == Success(PNG_BYTES)
        assert session.get.call_args.args[0] == "https://cdn.example/img.png"

    def test_non_png_bytes_force_soft_failure(self, session):
        b64 = base64.b64encode(b"GIF89a not a png").decode()
        session.post.return_value = fake_response(200, openrouter_image_body(f"data:image/png;base64,{b64}"))

        outcome = OpenRouterImageProvider(config(), session=session).generate("Draw", "x")

        assert isinstance(outcome, SoftFailure)
        assert outcome.finish_reason == "error"

    def test_no_images_is_hard(self, session):
        body = {"choices": [{"message": {"content": "no picture today"}}]}
        session.post.return_value = fake_response(200, body)
        assert isinstance(OpenRouterImageProvider(config(), session=session).generate("D", "x"), HardFailure)

    def test_error_status_is_soft(self, session):
        session.post.return_value = fake_response(503, text="overloaded")
        outcome = OpenRouterImageProvider(config(), session=session).generate("D", "x")
        assert isinstance(outcome, SoftFailure)
        assert "503" in outcome.message


class TestGeminiImage:
    def test_inline_data(self, session):
        body = {"candidates": [{"content": {"parts": [
            {"text": "here you go"},
            {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(PNG_BYTES).decode()}},
        ]}}]}
        session.post.return_value = fake_response(200, body)

        outcome = GeminiImageProvider(config("gemini"), session=session).generate("Draw", "x")

        assert outcome == Success(PNG_BYTES)
        args, kwargs = session.post.call_args
        assert "some/model:generateContent" in args[0]
        assert kwargs["headers"]["x-goog-api-key"] == "key"
        assert kwargs["json"]["generationConfig"]["responseModalities"] == ["TEXT", "IMAGE"]

    def test_no_candidates_is_hard(self, session):
        session.post.return_value = fake_response(200, {"candidates": []})
        assert isinstance(GeminiImageProvider(config("gemini"), session=session).generate("D", "x"), HardFailure)


# ===================================================================
# Helpers and selection
# ===================================================================

class TestHelpers:
    def test_png_signature(self):
        assert looks_like_png(PNG_BYTES)
        assert not looks_like_png(b"\xff\xd8\xff\xe0jpeg")
        assert not looks_like_png(b"")

    def test_data_url(self):
        assert base64_from_data_url("data:image/png;base64,AAAA") == "AAAA"
        assert base64_from_data_url("https://example.com/a.png") is None

    def test_truncate_for_log(self):
        assert truncate_for_log("short") == "short"
        assert truncate_for_log("x" * 50, 10).startswith("x" * 10 + "... [truncated, total_len=50]")


class TestBuildProvider:
    def test_case_insensitive_type(self):
        provider = build_provider(GenerationKind.TEXT, config("OpenRouter"))
        assert isinstance(provider, OpenRouterTextProvider)

    def test_image_provider(self):
        assert isinstance(build_provider(GenerationKind.IMAGE, config("gemini")), GeminiImageProvider)

    def test_unsupported_combination(self):
        with pytest.raises(ConfigError):
            build_provider(GenerationKind.IMAGE, config("perplexity"))
