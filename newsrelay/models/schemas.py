from __future__ import annotations

import hashlib
from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator


def item_id_for_url(url: str) -> str:
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


class IngestedItem(BaseModel):
    title: str
    url: str
    published_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("title", "url")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @property
    def item_id(self) -> str:
        return item_id_for_url(self.url)
