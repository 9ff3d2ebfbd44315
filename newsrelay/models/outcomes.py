from __future__ import annotations

from dataclasses import dataclass
from typing import Union

# finish reasons that mean the provider gave up on the completion
FAILED_FINISH_REASONS = frozenset({"error", "length"})


@dataclass(frozen=True)
class Success:
    payload: str | bytes
    finish_reason: str | None = None


@dataclass(frozen=True)
class SoftFailure:
    """
    The provider answered, but the result cannot be trusted
    (self-reported truncation, error status, or content that fails validation).
    `payload` keeps whatever could be extracted so it can be inspected later.
    """

    finish_reason: str
    payload: str | bytes | None = None
    message: str = ""


@dataclass(frozen=True)
class HardFailure:
    cause: str


ProviderOutcome = Union[Success, SoftFailure, HardFailure]


def describe(outcome: ProviderOutcome) -> str:
    if isinstance(outcome, Success):
        return "ok"
    if isinstance(outcome, SoftFailure):
        detail = f" ({outcome.message})" if outcome.message else ""
        return f"soft failure, finish_reason={outcome.finish_reason}{detail}"
    return f"hard failure: {outcome.cause}"
