from __future__ import annotations

import logging

import requests
from sqlalchemy.engine import Engine

from newsrelay.config.settings import IMAGE_PROVIDERS, TEXT_PROVIDERS, Settings
from newsrelay.db.blob_store import BlobStore
from newsrelay.db.database import create_db_engine, init_db
from newsrelay.db.status_store import StatusStore
from newsrelay.services.ai_gateway import GenerationKind, build_provider
from newsrelay.services.telegram_delivery import TelegramPublisher
from newsrelay.services.telegraph import TelegraphPublisher
from newsrelay.workflows.stage_runner import StageRunner
from newsrelay.workflows.stages import (
    DownloadLogic,
    PassthroughLogic,
    ProviderLogic,
    PublishLogic,
    ScrapeLogic,
    StageLogic,
)
from newsrelay.workflows.status_machine import ILLUSTRATE, REWRITE, TRANSLATE, get_stage

logger = logging.getLogger(__name__)


def open_stores(settings: Settings, engine: Engine | None = None) -> tuple[StatusStore, BlobStore]:
    engine = engine or create_db_engine(settings.database_url)
    init_db(engine)
    return StatusStore(engine), BlobStore(settings.data_dir)


def build_logic(stage_name: str, settings: Settings, session: requests.Session | None = None) -> StageLogic:
    """
    Wire the stage's collaborators from settings.
    Missing provider or Telegram configuration raises ConfigError here, before any polling.
    """
    session = session or requests.Session()

    if stage_name == "download":
        return DownloadLogic(session=session, timeout=settings.http_timeout_seconds)

    if stage_name == "scrape":
        return ScrapeLogic()

    if stage_name == "translate":
        if settings.translator is None:
            logger.info("No translator configured, scraped documents pass through unchanged")
            return PassthroughLogic(TRANSLATE)
        cfg = settings.require_provider("translator", TEXT_PROVIDERS)
        provider = build_provider(GenerationKind.TEXT, cfg, session, settings.provider_timeout_seconds)
        return ProviderLogic(TRANSLATE, provider, cfg.prompt)

    if stage_name == "rewrite":
        cfg = settings.require_provider("rewriter", TEXT_PROVIDERS)
        provider = build_provider(GenerationKind.TEXT, cfg, session, settings.provider_timeout_seconds)
        return ProviderLogic(REWRITE, provider, cfg.prompt)

    if stage_name == "illustrate":
        cfg = settings.require_provider("illustrator", IMAGE_PROVIDERS)
        provider = build_provider(GenerationKind.IMAGE, cfg, session, settings.provider_timeout_seconds)
        return ProviderLogic(ILLUSTRATE, provider, cfg.prompt)

    # publish
    settings.require_telegram()
    telegram = TelegramPublisher(
        token=settings.telegram_bot_token,
        chat_id=settings.telegram_chat_id,
        session=session,
        timeout=settings.http_timeout_seconds,
        default_retry_after=settings.rate_limit_default_retry_seconds,
    )
    telegraph = TelegraphPublisher(
        access_token=settings.telegraph_access_token,
        short_name=settings.telegraph_short_name,
        author_name=settings.telegraph_author_name,
        session=session,
        timeout=settings.http_timeout_seconds,
        content_budget=settings.telegraph_content_budget,
    )
    return PublishLogic(
        telegram,
        telegraph,
        text_limit=settings.telegram_text_limit,
        date_label=settings.publish_date_label,
        source_label=settings.publish_source_label,
        read_more_label=settings.publish_read_more_label,
    )


def build_runner(
    stage_name: str,
    settings: Settings,
    store: StatusStore,
    blobs: BlobStore,
    session: requests.Session | None = None,
) -> StageRunner:
    interval = settings.interval_for(stage_name)
    stage = get_stage(stage_name)
    logic = build_logic(stage_name, settings, session)
    return StageRunner(stage, logic, store, blobs, interval=interval)
