from __future__ import annotations

import logging
import math
from dataclasses import replace

from storepos.config import DEFAULT_SETTINGS, PosSettings
from storepos.domain.errors import ConcurrencyError, NotFoundError
from storepos.domain.models import Customer, LedgerResult, PointsConfig

log = logging.getLogger("storepos.sales")


def compute_ledger(
    subtotal_local: float,
    available_points: int,
    redeem: bool,
    point_value: float,
    earn_rate: float,
    paused: bool,
) -> LedgerResult:
    """Points discount and points earned for one sale.

    Redemption and earning both use the same final total. While the program
    is paused nothing is spent or earned.
    """
    subtotal = max(float(subtotal_local), 0.0)
    available = max(int(available_points), 0)

    if paused:
        return LedgerResult(discount=0.0, points_used=0, points_earned=0, final_total=subtotal)

    usable = 0
    if redeem and point_value > 0:
        usable = min(available, math.floor(subtotal / point_value))

    discount = usable * point_value
    final_total = subtotal - discount
    earned = math.floor(final_total / earn_rate) if earn_rate > 0 else 0
    return LedgerResult(discount=discount, points_used=usable, points_earned=earned, final_total=final_total)


class LoyaltyService:
    def __init__(self, repo, settings: PosSettings = DEFAULT_SETTINGS):
        self.repo = repo
        self.settings = settings

    def load_config(self) -> PointsConfig:
        return PointsConfig.from_record(self.repo.get_config("points"))

    def save_config(self, config: PointsConfig) -> None:
        self.repo.set_config("points", {"earnRate": config.earn_rate, "value": config.value, "paused": config.paused})

    def quote(self, subtotal_local: float, customer: Customer | None, redeem: bool, config: PointsConfig | None = None) -> LedgerResult:
        config = config or self.load_config()
        available = customer.points if customer else 0
        return compute_ledger(subtotal_local, available, redeem, config.value, config.earn_rate, config.paused)

    def apply(self, customer_id: str, points_used: int, points_earned: int) -> int:
        """Apply a ledger result to the stored balance; returns the new balance.

        The balance is re-read on every attempt. Redeeming more than it holds
        raises ConcurrencyError, since the quote was made on an older balance.
        """
        return self._update(customer_id, int(points_used), int(points_earned), clamp=False)

    def revert(self, customer_id: str, points_used: int, points_earned: int) -> int:
        """Undo an applied ledger result. Earned points already spent elsewhere floor at zero."""
        return self._update(customer_id, int(points_earned), int(points_used), clamp=True)

    def _update(self, customer_id: str, points_used: int, points_earned: int, clamp: bool) -> int:
        for attempt in range(1, self.settings.cas_max_retries + 1):
            found = self.repo.get_customer_versioned(customer_id)
            if found is None:
                raise NotFoundError("Customer not found.")
            customer, version = found
            if points_used == 0 and points_earned == 0:
                return customer.points
            if points_used > customer.points and not clamp:
                raise ConcurrencyError(
                    f"Customer {customer_id} has {customer.points} points; cannot redeem {points_used}."
                )
            balance = max(customer.points - points_used, 0) + points_earned
            updated = replace(customer, points=balance)
            if self.repo.cas_customer(updated, version):
                log.info("points_applied customer=%s used=%s earned=%s balance=%s", customer_id, points_used, points_earned, balance)
                return balance
            log.warning("customer_cas_conflict customer=%s attempt=%s", customer_id, attempt)
        raise ConcurrencyError(f"Could not update points for customer {customer_id}.")
