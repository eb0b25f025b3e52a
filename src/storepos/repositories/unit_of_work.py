from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from storepos.domain.models import Product

log = logging.getLogger("storepos.stock")


@dataclass(frozen=True)
class AppliedDelta:
    before: Product
    delta: int
    deleted: bool = False
    created: bool = False
    moved: bool = False


@dataclass
class StockUnitOfWork:
    """Tracks stock deltas committed record by record.

    The store has no multi-record transaction, so every delta is its own CAS
    write. If the block raises, the deltas already applied are reverted in
    reverse order through ``compensate`` and the original error propagates.
    """

    compensate: Callable[[AppliedDelta], None]
    applied: list[AppliedDelta] = field(default_factory=list)

    def __enter__(self) -> "StockUnitOfWork":
        self.applied = []
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            return None
        for entry in reversed(self.applied):
            try:
                self.compensate(entry)
            except Exception:
                log.exception("stock_compensation_failed product_id=%s delta=%s", entry.before.id, entry.delta)
        if self.applied:
            log.error("stock_compensated entries=%s error=%s", len(self.applied), exc)
        return None

    def record(self, applied: AppliedDelta) -> None:
        self.applied.append(applied)
