"""Priority-ordered batch lookup across several sources."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from schemas import BatchRecord

logger = logging.getLogger(__name__)

LookupStrategy = Callable[[str], Awaitable[Optional[BatchRecord]]]


class BatchNotFoundError(Exception):
    """No source knows the batch identifier."""

    def __init__(self, batch_id: str):
        super().__init__(f"Batch {batch_id} not found")
        self.batch_id = batch_id


class UpstreamFailure(Exception):
    """Every source failed with an error, so a miss cannot be confirmed."""

    def __init__(self, batch_id: str, errors: Dict[str, str]):
        sources = ", ".join(errors) or "none"
        super().__init__(f"Lookup for {batch_id} failed in: {sources}")
        self.batch_id = batch_id
        self.errors = errors


@dataclass
class LookupHit:
    source: str
    record: BatchRecord


@dataclass
class LookupChain:
    """Try each named strategy in order; the first record found wins.

    A strategy that raises is logged and skipped. If no strategy found the
    batch, the result is BatchNotFoundError when at least one strategy answered
    cleanly, and UpstreamFailure when all of them raised.
    """

    strategies: Sequence[Tuple[str, LookupStrategy]] = field(default_factory=list)

    async def resolve(self, batch_id: str) -> LookupHit:
        errors: Dict[str, str] = {}
        answered: List[str] = []

        for name, strategy in self.strategies:
            try:
                record = await strategy(batch_id)
            except Exception as exc:
                logger.warning(f"Lookup of {batch_id} in {name} failed, trying next source: {exc}")
                errors[name] = str(exc)
                continue

            answered.append(name)
            if record is not None and record.exists:
                logger.info(f"Batch {batch_id} found in {name}")
                return LookupHit(source=name, record=record)

        if answered or not self.strategies:
            logger.info(f"Batch {batch_id} not found (checked: {', '.join(answered) or 'nothing'})")
            raise BatchNotFoundError(batch_id)

        raise UpstreamFailure(batch_id, errors)
