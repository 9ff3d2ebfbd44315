from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from newsrelay.db.blob_store import BlobStore
from newsrelay.db.models import NewsItem
from newsrelay.db.status_store import StatusStore
from newsrelay.models.outcomes import HardFailure, ProviderOutcome, Success, describe
from newsrelay.workflows.stages import StageLogic
from newsrelay.workflows.status_machine import Stage, Status, advance, claim_batch

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    claimed: int = 0
    advanced: int = 0
    unchanged: int = 0
    conflicts: int = 0
    errors: int = 0


class StageRunner:
    """
    Poll -> claim -> process -> store artifact -> commit status, for one stage.
    Items are handled one at a time, oldest first; a failing item never stops the cycle.
    """

    def __init__(
        self,
        stage: Stage,
        logic: StageLogic,
        store: StatusStore,
        blobs: BlobStore,
        interval: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.stage = stage
        self.logic = logic
        self.store = store
        self.blobs = blobs
        self.interval = interval
        self.sleep = sleep
        self.clock = clock

    def _run_logic(self, item: NewsItem) -> ProviderOutcome:
        try:
            return self.logic(item, self.blobs)
        except Exception as e:
            logger.exception("[%s] item %s raised", self.stage.name, item.id[:12])
            return HardFailure(f"{type(e).__name__}: {e}")

    def _store_artifact(self, item: NewsItem, outcome: ProviderOutcome) -> ProviderOutcome:
        payload = getattr(outcome, "payload", None)
        if payload is None:
            return outcome
        try:
            self.blobs.put(item.id, self.stage.artifact, payload)
        except OSError as e:
            logger.error("[%s] could not store artifact for %s: %s", self.stage.name, item.id[:12], e)
            # never commit a success whose artifact is not on disk
            if isinstance(outcome, Success):
                return HardFailure(f"could not store artifact: {e}")
        return outcome

    def process_item(self, item: NewsItem) -> Status | None:
        """
        Handle one claimed item. Returns the status it ends in, or None when
        another writer changed the status first.
        """
        current = Status(item.status)
        outcome = self._store_artifact(item, self._run_logic(item))
        next_status = advance(self.stage, current, outcome)

        if isinstance(outcome, Success):
            error = None
        else:
            error = describe(outcome)
            level = logging.ERROR if isinstance(outcome, HardFailure) else logging.WARNING
            logger.log(level, "[%s] item %s failed: %s", self.stage.name, item.id[:12], error)

        if next_status == current:
            self.store.set_last_error(item.id, error)
            logger.info("[%s] item %s stays %s, will retry next cycle", self.stage.name, item.id[:12], current.value)
            return current

        if not self.store.update(item.id, next_status.value, expected=current.value, error=error):
            logger.warning(
                "[%s] item %s is no longer %s, transition to %s dropped",
                self.stage.name, item.id[:12], current.value, next_status.value,
            )
            return None

        logger.info("[%s] item %s: %s -> %s", self.stage.name, item.id[:12], current.value, next_status.value)
        return next_status

    def run_cycle(self) -> CycleReport:
        report = CycleReport()
        items = claim_batch(self.store, self.stage.inputs)
        report.claimed = len(items)
        if items:
            logger.info("[%s] %d item(s) to process", self.stage.name, len(items))

        for item in items:
            try:
                result = self.process_item(item)
            except Exception:
                logger.exception("[%s] unexpected error on item %s", self.stage.name, item.id[:12])
                report.errors += 1
                continue
            if result is None:
                report.conflicts += 1
            elif result.value == item.status:
                report.unchanged += 1
            else:
                report.advanced += 1
        return report

    def run(self, max_cycles: int | None = None) -> int:
        """Poll forever (or `max_cycles` times). Returns the number of cycles run."""
        logger.info("[%s] runner started, interval=%ss", self.stage.name, self.interval)
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            started = self.clock()
            try:
                report = self.run_cycle()
                if report.claimed:
                    logger.info("[%s] cycle done: %s", self.stage.name, report)
            except Exception:
                # store unavailable and the like; try again next cycle
                logger.exception("[%s] cycle failed", self.stage.name)
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            self.sleep(max(0.0, self.interval - (self.clock() - started)))
        return cycles
