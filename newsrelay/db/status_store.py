from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from newsrelay.db.models import NewsItem
from newsrelay.models.schemas import IngestedItem

logger = logging.getLogger(__name__)


def _as_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


class StatusStore:
    """
    Durable item records keyed by id. Only `status` and `last_error` ever change.
    Items returned from here are detached snapshots; mutate through the store.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    def add(self, item: IngestedItem, status: str = "new") -> bool:
        """Insert a new item. Returns False when the url was already ingested."""
        record = NewsItem(
            id=item.item_id,
            title=item.title,
            url=item.url,
            published_at=_as_utc_naive(item.published_at),
            published_raw=item.published_at.isoformat(),
            status=status,
        )
        with self._session() as session:
            if session.get(NewsItem, record.id) is not None:
                return False
            session.add(record)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
        logger.info("Added new item %s: %s", record.id[:12], record.title)
        return True

    def get(self, item_id: str) -> NewsItem | None:
        with self._session() as session:
            return session.get(NewsItem, item_id)

    def list(self, statuses: Iterable[str]) -> list[NewsItem]:
        """All items whose status is in `statuses`, oldest publication first."""
        wanted = sorted(set(statuses))
        if not wanted:
            return []
        with self._session() as session:
            rows = session.scalars(
                select(NewsItem)
                .where(NewsItem.status.in_(wanted))
                .order_by(NewsItem.published_at.asc(), NewsItem.id.asc())
            ).all()
        return list(rows)

    def update(
        self,
        item_id: str,
        new_status: str,
        expected: str | None = None,
        error: str | None = None,
    ) -> bool:
        """
        Set the status (and overwrite last_error with `error`, clearing it on None).
        With `expected`, the write only happens if the current status still matches.
        """
        stmt = (
            update(NewsItem)
            .where(NewsItem.id == item_id)
            .values(status=new_status, last_error=error, updated_at=datetime.now(timezone.utc))
        )
        if expected is not None:
            stmt = stmt.where(NewsItem.status == expected)

        with self._session() as session:
            result = session.execute(stmt)
            session.commit()
        return result.rowcount == 1

    def set_last_error(self, item_id: str, message: str) -> None:
        with self._session() as session:
            session.execute(
                update(NewsItem)
                .where(NewsItem.id == item_id)
                .values(last_error=message, updated_at=datetime.now(timezone.utc))
            )
            session.commit()

    def counts(self) -> dict[str, int]:
        with self._session() as session:
            rows = session.execute(
                select(NewsItem.status, func.count()).group_by(NewsItem.status)
            ).all()
        return {status: n for status, n in rows}
