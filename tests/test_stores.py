"""Status store (SQLite) and blob store (files)."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from newsrelay.models.errors import BlobNotFound
from newsrelay.models.schemas import IngestedItem, item_id_for_url
from newsrelay.services.ingest import ingest_item, parse_published_at


class TestStatusStore:
    def test_add_and_get(self, store):
        item = IngestedItem(title=" Title ", url="https://example.com/a")
        assert store.add(item)

        row = store.get(item.item_id)
        assert row.title == "Title"
        assert row.status == "new"
        assert row.last_error is None
        assert row.id == item_id_for_url("https://example.com/a")

    def test_duplicate_is_ignored(self, store):
        item = IngestedItem(title="T", url="https://example.com/a")
        assert store.add(item)
        assert not store.add(IngestedItem(title="Other", url="https://example.com/a"))
        assert store.get(item.item_id).title == "T"

    def test_blank_fields_rejected(self):
        with pytest.raises(ValueError):
            IngestedItem(title="  ", url="https://example.com/a")

    def test_compare_and_set(self, store, make_item):
        item = make_item("https://example.com/a", status="translated")

        assert not store.update(item.id, "rewriter", expected="scraped")
        assert store.get(item.id).status == "translated"

        assert store.update(item.id, "rewriter", expected="translated")
        assert store.get(item.id).status == "rewriter"

    def test_update_overwrites_and_clears_last_error(self, store, make_item):
        item = make_item("https://example.com/a", status="translated")
        store.update(item.id, "rewriter_retry", error="first")
        store.update(item.id, "rewriter_error", error="second")
        assert store.get(item.id).last_error == "second"

        store.update(item.id, "rewriter", error=None)
        assert store.get(item.id).last_error is None

    def test_set_last_error_keeps_status(self, store, make_item):
        item = make_item("https://example.com/a", status="new")
        store.set_last_error(item.id, "HTTP 503")
        row = store.get(item.id)
        assert row.status == "new"
        assert row.last_error == "HTTP 503"

    def test_list_orders_by_time_then_id(self, store, make_item):
        a = make_item("https://example.com/a", minutes_offset=5)
        b = make_item("https://example.com/b", minutes_offset=0)
        c = make_item("https://example.com/c", minutes_offset=0)
        expected_ties = sorted([b.id, c.id])
        assert [i.id for i in store.list({"new"})] == expected_ties + [a.id]

    def test_list_empty_statuses(self, store):
        assert store.list([]) == []

    def test_counts(self, store, make_item):
        make_item("https://example.com/a", status="new")
        make_item("https://example.com/b", status="new")
        make_item("https://example.com/c", status="published")
        assert store.counts() == {"new": 2, "published": 1}

    def test_offset_timestamps_are_ordered_in_utc(self, store):
        # 10:00+02:00 is 08:00 UTC, earlier than 09:00Z
        later = IngestedItem(title="later", url="https://example.com/l",
                             published_at=datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))
        earlier = IngestedItem(title="earlier", url="https://example.com/e",
                               published_at=parse_published_at("2024-01-01T10:00:00+02:00"))
        store.add(later)
        store.add(earlier)
        assert [i.title for i in store.list({"new"})] == ["earlier", "later"]
        assert store.get(earlier.item_id).published_raw == "2024-01-01T10:00:00+02:00"


class TestIngest:
    def test_ingest_item(self, store):
        item_id, inserted = ingest_item(store, "Title", "https://example.com/x", parse_published_at("2024-03-01T10:00:00Z"))
        assert inserted
        row = store.get(item_id)
        assert row.status == "new"
        assert row.published_at == datetime(2024, 3, 1, 10, 0)

    def test_ingest_twice(self, store):
        ingest_item(store, "Title", "https://example.com/x")
        _, inserted = ingest_item(store, "Title", "https://example.com/x")
        assert not inserted

    def test_parse_published_at(self):
        assert parse_published_at(None) is None
        assert parse_published_at("2024-03-01T10:00:00Z").tzinfo is not None
        with pytest.raises(ValueError):
            parse_published_at("yesterday")


class TestBlobStore:
    def test_put_get_text(self, blobs):
        blobs.put("abc", "rewriter", "<html>é</html>")
        assert blobs.get_text("abc", "rewriter") == "<html>é</html>"
        assert blobs.path_for("abc", "rewriter").name == "rewriter_abc.html"

    def test_png_extension(self, blobs):
        blobs.put("abc", "illustrator", b"\x89PNG")
        assert blobs.path_for("abc", "illustrator").suffix == ".png"
        assert blobs.get("abc", "illustrator") == b"\x89PNG"

    def test_overwrite(self, blobs):
        blobs.put("abc", "news", "one")
        blobs.put("abc", "news", "two")
        assert blobs.get_text("abc", "news") == "two"
        # no temp files left behind
        assert [p.name for p in blobs.root.iterdir()] == ["news_abc.html"]

    def test_missing(self, blobs):
        assert not blobs.exists("nope", "news")
        with pytest.raises(BlobNotFound) as exc:
            blobs.get("nope", "news")
        assert exc.value.stage == "news"
