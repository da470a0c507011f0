"""Flush buffered records to the job store in fixed-size batches."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import structlog

from ..errors import PersistenceError
from ..infra.job_store import JobStore
from ..models import JobRecord


@dataclass(slots=True)
class PersistOutcome:
    stored: int = 0
    batches: int = 0
    failed_batches: list[int] = field(default_factory=list)


class BatchPersister:
    """Upserts records batch by batch; a failed batch is logged and skipped."""

    def __init__(self, store: JobStore, batch_size: int, logger: structlog.BoundLogger) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self.store = store
        self.batch_size = batch_size
        self.logger = logger

    def persist(self, records: Sequence[JobRecord]) -> PersistOutcome:
        outcome = PersistOutcome()
        for start in range(0, len(records), self.batch_size):
            batch = records[start : start + self.batch_size]
            index = start // self.batch_size
            outcome.batches += 1
            try:
                self.store.upsert_records_batch(batch)
            except PersistenceError as exc:
                outcome.failed_batches.append(index)
                self.logger.error(
                    "batch_persist_failed", batch=index, size=len(batch), error=exc.message
                )
                continue
            outcome.stored += len(batch)
            self.logger.debug("batch_persisted", batch=index, size=len(batch))
        return outcome


__all__ = ["BatchPersister", "PersistOutcome"]
