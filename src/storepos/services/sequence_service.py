from __future__ import annotations

import logging

from storepos.config import DEFAULT_SETTINGS, PosSettings
from storepos.domain.errors import CounterCommitError, ValidationError
from storepos.domain.models import Counter
from storepos.repositories.contracts import CounterRepository

log = logging.getLogger("storepos.sales")


class SequenceCounter:
    """Gapless receipt numbers per series, minted with compare-and-swap."""

    def __init__(self, repo: CounterRepository, settings: PosSettings = DEFAULT_SETTINGS):
        self.repo = repo
        self.settings = settings

    def _load(self, series: str) -> tuple[Counter, int]:
        found = self.repo.get_counter_versioned(series)
        if found is not None:
            return found
        prefix = self.settings.receipt_prefixes.get(series)
        if prefix is None:
            raise ValidationError(f"Unknown receipt series: {series}")
        # a concurrent creator may win; either way the record exists afterwards
        self.repo.create_counter(series, prefix)
        found = self.repo.get_counter_versioned(series)
        if found is None:
            raise CounterCommitError(f"Counter {series} could not be initialised.")
        return found

    def next_receipt(self, series: str) -> str:
        for attempt in range(1, self.settings.cas_max_retries + 1):
            counter, version = self._load(series)
            bumped = Counter(series=series, value=counter.value + 1, prefix=counter.prefix)
            if self.repo.cas_counter(bumped, version):
                return f"{bumped.prefix}{bumped.value:0{self.settings.receipt_digits}d}"
            log.warning("counter_cas_conflict series=%s attempt=%s", series, attempt)
        raise CounterCommitError(f"Could not commit receipt number for {series} after {self.settings.cas_max_retries} attempts.")

    def peek(self, series: str) -> int:
        found = self.repo.get_counter_versioned(series)
        return found[0].value if found else 0
