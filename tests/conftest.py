"""
Shared fixtures: a throwaway SQLite status store, a blob store under tmp_path,
and fake HTTP responses so nothing touches the network.
"""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from newsrelay.db.blob_store import BlobStore
from newsrelay.db.database import create_db_engine, init_db
from newsrelay.db.status_store import StatusStore
from newsrelay.models.schemas import IngestedItem

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

@pytest.fixture
def engine(tmp_path):
    eng = create_db_engine(f"sqlite:///{tmp_path / 'db' / 'news.db'}")
    init_db(eng)
    return eng


@pytest.fixture
def store(engine):
    return StatusStore(engine)


@pytest.fixture
def blobs(tmp_path):
    return BlobStore(tmp_path / "blobs")


@pytest.fixture
def make_item(store):
    """Insert an item at a given status; minutes_offset orders publication time."""

    def _make(url: str, status: str = "new", minutes_offset: int = 0, title: str = "A headline"):
        item = IngestedItem(
            title=title,
            url=url,
            published_at=BASE_TIME + timedelta(minutes=minutes_offset),
        )
        assert store.add(item, status=status)
        return store.get(item.item_id)

    return _make


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

def fake_response(status_code: int = 200, json_data=None, text: str | None = None, content: bytes = b""):
    r = MagicMock()
    r.status_code = status_code
    r.ok = 200 <= status_code < 400
    if text is None:
        text = json.dumps(json_data) if json_data is not None else ""
    r.text = text
    r.content = content
    if json_data is not None:
        r.json.return_value = json_data
    else:
        r.json.side_effect = ValueError("no json")
    return r


def chat_body(content: str, finish_reason: str | None = "stop") -> str:
    return json.dumps({"choices": [{"message": {"content": content}, "finish_reason": finish_reason}]})


@pytest.fixture
def session():
    return MagicMock()
