from __future__ import annotations

import logging
from datetime import datetime

from newsrelay.db.status_store import StatusStore
from newsrelay.models.schemas import IngestedItem
from newsrelay.workflows.status_machine import Status

logger = logging.getLogger(__name__)


def parse_published_at(raw: str | None) -> datetime | None:
    if not raw:
        return None
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def ingest_item(
    store: StatusStore,
    title: str,
    url: str,
    published_at: datetime | None = None,
) -> tuple[str, bool]:
    """Register a source article at status 'new'. Returns (item id, inserted)."""
    fields = {"title": title, "url": url}
    if published_at is not None:
        fields["published_at"] = published_at
    item = IngestedItem(**fields)

    inserted = store.add(item, status=Status.NEW.value)
    if not inserted:
        logger.info("Item already ingested, skipping: %s", item.url)
    return item.item_id, inserted
