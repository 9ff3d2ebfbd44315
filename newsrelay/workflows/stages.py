"""
Per-stage processing logic.

Each logic object is called with a claimed item and the blob store and returns
a ProviderOutcome. It may raise; the runner turns exceptions into hard failures.
"""
from __future__ import annotations

import html
import logging
import time
from typing import Callable

import requests

from newsrelay.db.blob_store import BlobStore
from newsrelay.db.models import NewsItem
from newsrelay.models.errors import BlobNotFound, MarkupError, PublishError, RateLimited
from newsrelay.models.outcomes import HardFailure, ProviderOutcome, SoftFailure, Success
from newsrelay.services.ai_gateway import Provider
from newsrelay.services.article_extract import extract_article
from newsrelay.services.markup import (
    TELEGRAM_TEXT_LIMIT,
    fits_text_limit,
    html_to_nodes,
    html_to_rich_text,
    strip_html_to_text,
)
from newsrelay.services.telegram_delivery import (
    ShortPost,
    TelegramPublisher,
    build_footer,
    html_link,
)
from newsrelay.services.telegraph import TelegraphPublisher
from newsrelay.workflows.status_machine import ILLUSTRATE, PUBLISH, Stage

logger = logging.getLogger(__name__)

StageLogic = Callable[[NewsItem, BlobStore], ProviderOutcome]

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0 Safari/537.36 newsrelay/0.1"
)


class DownloadLogic:
    def __init__(self, session: requests.Session | None = None, timeout: float = 30.0) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout

    def __call__(self, item: NewsItem, blobs: BlobStore) -> ProviderOutcome:
        try:
            r = self.session.get(item.url, headers={"User-Agent": USER_AGENT}, timeout=self.timeout)
        except requests.RequestException as e:
            return HardFailure(f"download failed: {e}")
        if not r.ok:
            return SoftFailure(finish_reason="error", message=f"HTTP {r.status_code} for {item.url}")
        return Success(r.text)


class ScrapeLogic:
    source_artifact = "news"

    def __call__(self, item: NewsItem, blobs: BlobStore) -> ProviderOutcome:
        raw = blobs.get_text(item.id, self.source_artifact)
        return Success(extract_article(raw, item.title))


class PassthroughLogic:
    """Copies the previous artifact forward unchanged."""

    def __init__(self, stage: Stage) -> None:
        self.stage = stage

    def __call__(self, item: NewsItem, blobs: BlobStore) -> ProviderOutcome:
        return Success(blobs.get_text(item.id, self.stage.source_artifact))


class ProviderLogic:
    """Feeds the previous stage's document to an AI provider with the configured prompt."""

    def __init__(self, stage: Stage, provider: Provider, prompt: str) -> None:
        self.stage = stage
        self.provider = provider
        self.prompt = prompt

    def __call__(self, item: NewsItem, blobs: BlobStore) -> ProviderOutcome:
        source = blobs.get_text(item.id, self.stage.source_artifact)
        logger.info(
            "Calling %s (%s) for item %s, %d chars of input",
            self.provider.name, self.provider.model, item.id[:12], len(source),
        )
        return self.provider.generate(self.prompt, source)


def compose_message(body: str, footer: str) -> str:
    body = body.rstrip()
    if not footer:
        return body
    return f"{body}\n\n{footer}" if body else footer


class PublishLogic:
    """
    Photo first, then the rewritten article as rich text with a footer.
    Articles over the message limit go to a long-form page and the message
    only links to it.
    """

    def __init__(
        self,
        telegram: TelegramPublisher,
        telegraph: TelegraphPublisher,
        text_limit: int = TELEGRAM_TEXT_LIMIT,
        date_label: str = "Published",
        source_label: str = "Read original",
        read_more_label: str = "Read the full article",
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.telegram = telegram
        self.telegraph = telegraph
        self.text_limit = text_limit
        self.date_label = date_label
        self.source_label = source_label
        self.read_more_label = read_more_label
        self.sleep = sleep

    def fallback_body(self, title: str, page_url: str) -> str:
        return f"<b>{html.escape(title, quote=False)}</b>\n\n{html_link(self.read_more_label, page_url)}"

    def build_post(self, item: NewsItem, document: str, image: bytes) -> ShortPost:
        body = html_to_rich_text(document)
        if not strip_html_to_text(body):
            raise MarkupError(f"rewritten document for {item.id[:12]} has no text")
        footer = build_footer(item.published_raw, item.url, self.date_label, self.source_label)
        text = compose_message(body, footer)
        if not fits_text_limit(text, self.text_limit):
            logger.info("Item %s exceeds the message limit, publishing long form", item.id[:12])
            page_url = self.telegraph.publish_long(html_to_nodes(document), item.title)
            text = compose_message(self.fallback_body(item.title, page_url), footer)
        return ShortPost(text=text, image=image)

    def deliver(self, post: ShortPost) -> None:
        try:
            self.telegram.publish_short(post)
        except RateLimited as e:
            logger.warning("Rate limited, retrying once in %ss", e.retry_after)
            self.sleep(e.retry_after)
            self.telegram.publish_short(post)

    def __call__(self, item: NewsItem, blobs: BlobStore) -> ProviderOutcome:
        # the artifact only exists once the post went out
        if blobs.exists(item.id, PUBLISH.artifact):
            logger.info("Item %s was already delivered, not sending again", item.id[:12])
            return Success(blobs.get_text(item.id, PUBLISH.artifact))

        document = blobs.get_text(item.id, PUBLISH.source_artifact)
        try:
            image = blobs.get(item.id, ILLUSTRATE.artifact)
        except BlobNotFound as e:
            return HardFailure(f"illustration is missing: {e}")

        try:
            post = self.build_post(item, document, image)
            self.deliver(post)
        except PublishError as e:
            logger.error("Publishing item %s failed: %s", item.id[:12], e)
            return HardFailure(str(e))
        return Success(post.text)
