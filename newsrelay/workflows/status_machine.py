"""
Item statuses and the transitions each stage is allowed to make.

    new -> downloaded -> scraped -> translated
        -> rewriter | rewriter_retry -> rewriter_error
        -> illustrator | illustrator_retry -> illustrator_error
        -> published | publish_error

Every stage consumes a disjoint set of statuses, so at most one worker ever
touches a given item.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from newsrelay.db.models import NewsItem
from newsrelay.db.status_store import StatusStore
from newsrelay.models.errors import InvalidTransition
from newsrelay.models.outcomes import ProviderOutcome, Success


class Status(str, Enum):
    NEW = "new"
    DOWNLOADED = "downloaded"
    SCRAPED = "scraped"
    TRANSLATED = "translated"
    REWRITER = "rewriter"
    REWRITER_RETRY = "rewriter_retry"
    REWRITER_ERROR = "rewriter_error"
    ILLUSTRATOR = "illustrator"
    ILLUSTRATOR_RETRY = "illustrator_retry"
    ILLUSTRATOR_ERROR = "illustrator_error"
    PUBLISHED = "published"
    PUBLISH_ERROR = "publish_error"


TERMINAL_STATUSES = frozenset(
    {Status.REWRITER_ERROR, Status.ILLUSTRATOR_ERROR, Status.PUBLISHED, Status.PUBLISH_ERROR}
)


class RetryPolicy(str, Enum):
    # failure leaves the status alone; the next poll tries again
    UNBOUNDED = "unbounded"
    # one retry status, then a terminal error status
    BOUNDED = "bounded"
    # the first failure is terminal
    NONE = "none"


@dataclass(frozen=True)
class Stage:
    name: str
    artifact: str
    inputs: frozenset[Status]
    success: Status
    policy: RetryPolicy
    retry: Status | None = None
    error: Status | None = None
    # artifact of the previous stage this one reads
    source_artifact: str | None = None


DOWNLOAD = Stage(
    name="download",
    artifact="news",
    inputs=frozenset({Status.NEW}),
    success=Status.DOWNLOADED,
    policy=RetryPolicy.UNBOUNDED,
)
SCRAPE = Stage(
    name="scrape",
    artifact="scraper",
    inputs=frozenset({Status.DOWNLOADED}),
    success=Status.SCRAPED,
    policy=RetryPolicy.UNBOUNDED,
    source_artifact="news",
)
TRANSLATE = Stage(
    name="translate",
    artifact="translator",
    inputs=frozenset({Status.SCRAPED}),
    success=Status.TRANSLATED,
    policy=RetryPolicy.UNBOUNDED,
    source_artifact="scraper",
)
REWRITE = Stage(
    name="rewrite",
    artifact="rewriter",
    inputs=frozenset({Status.TRANSLATED, Status.REWRITER_RETRY}),
    success=Status.REWRITER,
    policy=RetryPolicy.BOUNDED,
    retry=Status.REWRITER_RETRY,
    error=Status.REWRITER_ERROR,
    source_artifact="translator",
)
ILLUSTRATE = Stage(
    name="illustrate",
    artifact="illustrator",
    inputs=frozenset({Status.REWRITER, Status.ILLUSTRATOR_RETRY}),
    success=Status.ILLUSTRATOR,
    policy=RetryPolicy.BOUNDED,
    retry=Status.ILLUSTRATOR_RETRY,
    error=Status.ILLUSTRATOR_ERROR,
    source_artifact="rewriter",
)
PUBLISH = Stage(
    name="publish",
    artifact="publisher",
    inputs=frozenset({Status.ILLUSTRATOR}),
    success=Status.PUBLISHED,
    policy=RetryPolicy.NONE,
    error=Status.PUBLISH_ERROR,
    source_artifact="rewriter",
)

STAGES: dict[str, Stage] = {
    s.name: s for s in (DOWNLOAD, SCRAPE, TRANSLATE, REWRITE, ILLUSTRATE, PUBLISH)
}


def get_stage(name: str) -> Stage:
    try:
        return STAGES[name]
    except KeyError:
        raise KeyError(f"Unknown stage '{name}'. Known: {', '.join(STAGES)}") from None


def advance(stage: Stage, current: Status | str, outcome: ProviderOutcome) -> Status:
    """
    Next status for an item in `current` after `stage` produced `outcome`.
    Pure: the same (stage, current, outcome) always gives the same answer.
    """
    current = Status(current)
    if current not in stage.inputs:
        raise InvalidTransition(stage.name, current.value)

    if isinstance(outcome, Success):
        return stage.success

    if stage.policy is RetryPolicy.UNBOUNDED:
        return current
    if stage.policy is RetryPolicy.BOUNDED:
        return stage.error if current == stage.retry else stage.retry
    return stage.error


def claim_batch(store: StatusStore, inputs: Iterable[Status | str]) -> list[NewsItem]:
    """Items waiting for a stage, oldest first. Does not change anything."""
    return store.list(Status(s).value for s in inputs)
