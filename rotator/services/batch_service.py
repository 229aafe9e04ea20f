"""Batch rotation across all subjects with per-subject failure isolation."""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import structlog

from rotator.core.subjects import Subject
from rotator.services.rotation_service import RotationService, SubjectOutcome
from rotator.types import OutcomePayload

logger = structlog.get_logger(__name__)

DEADLINE_EXCEEDED = "deadline_exceeded"


@dataclass
class BatchResult:
    """Ordered per-subject outcomes of one batch run."""

    outcomes: list[SubjectOutcome] = field(default_factory=list)

    def summary(self) -> dict[str, int]:
        """Count outcomes by terminal state."""
        return dict(Counter(outcome.state.value for outcome in self.outcomes))

    def as_payload(self) -> list[OutcomePayload]:
        """Return outcomes as response entries in subject order."""
        return [outcome.as_payload() for outcome in self.outcomes]


class BatchService:
    """Run the rotation service over subjects in listing order."""

    def __init__(
        self,
        rotation_service: RotationService,
        concurrency: int = 1,
        deadline_seconds: float | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1.")
        self._rotation_service = rotation_service
        self._concurrency = concurrency
        self._deadline_seconds = deadline_seconds
        self._clock = clock or time.monotonic

    async def run(
        self, subjects: Sequence[Subject], deadline_at: float | None = None
    ) -> BatchResult:
        """Process every subject and return exactly one outcome per subject.

        `deadline_at` is an absolute reading of the service clock imposed by the caller;
        the earlier of it and the configured window wins.
        """
        deadline = self._deadline(deadline_at)

        if self._concurrency == 1:
            outcomes = [await self._process(subject, deadline) for subject in subjects]
        else:
            semaphore = asyncio.Semaphore(self._concurrency)

            async def _bounded(subject: Subject) -> SubjectOutcome:
                async with semaphore:
                    return await self._process(subject, deadline)

            outcomes = list(await asyncio.gather(*(_bounded(subject) for subject in subjects)))

        result = BatchResult(outcomes=outcomes)
        logger.info("batch_completed", total=len(outcomes), **result.summary())
        return result

    def _deadline(self, deadline_at: float | None) -> float | None:
        candidates: list[float] = [] if deadline_at is None else [deadline_at]
        if self._deadline_seconds is not None:
            candidates.append(self._clock() + self._deadline_seconds)
        return min(candidates, default=None)

    async def _process(self, subject: Subject, deadline: float | None) -> SubjectOutcome:
        """Run one subject, converting any escaped exception into a failed outcome."""
        if deadline is not None and self._clock() >= deadline:
            logger.warning(
                "subject_not_started", client_id=subject.client_id, reason=DEADLINE_EXCEEDED
            )
            return SubjectOutcome.failed(
                subject.client_id,
                DEADLINE_EXCEEDED,
                "Invocation deadline exceeded before processing started.",
            )
        try:
            return await self._rotation_service.rotate_subject(subject)
        except Exception as exc:
            logger.exception(
                "subject_failed", client_id=subject.client_id, reason="unexpected_error"
            )
            return SubjectOutcome.failed(subject.client_id, "unexpected_error", str(exc))
