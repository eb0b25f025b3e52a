from pathlib import Path

import pytest

from conftest import make_repo
from storepos.domain.errors import ConcurrencyError
from storepos.domain.models import CustomerInfo, PointsConfig
from storepos.services.customer_service import CustomerService
from storepos.services.loyalty_service import LoyaltyService, compute_ledger


def test_redeeming_points_caps_discount_at_subtotal():
    result = compute_ledger(400_000, 10, True, 50_000, 100_000, False)

    assert result.points_used == 8
    assert result.discount == 400_000
    assert result.final_total == 0
    assert result.points_earned == 0


def test_earning_without_redeeming():
    result = compute_ledger(250_000, 3, False, 50_000, 100_000, False)

    assert result.discount == 0
    assert result.points_used == 0
    assert result.points_earned == 2


def test_partial_redemption_earns_on_the_net_total():
    result = compute_ledger(300_000, 2, True, 50_000, 100_000, False)

    assert result.points_used == 2
    assert result.final_total == 200_000
    assert result.points_earned == 2


def test_paused_program_neither_spends_nor_earns():
    result = compute_ledger(400_000, 10, True, 50_000, 100_000, True)

    assert (result.discount, result.points_used, result.points_earned) == (0, 0, 0)
    assert result.final_total == 400_000


def test_used_points_never_exceed_balance_or_subtotal():
    for subtotal in (0, 1, 49_999, 50_000, 123_456, 1_000_000):
        for available in (0, 1, 5, 100):
            r = compute_ledger(subtotal, available, True, 50_000, 100_000, False)
            assert r.points_used <= available
            assert r.discount <= subtotal


def test_apply_updates_customer_balance(tmp_path: Path):
    repo = make_repo(tmp_path)
    customer = CustomerService(repo).upsert(CustomerInfo(dni="30111222", name="Ana"))
    loyalty = LoyaltyService(repo)
    loyalty.save_config(PointsConfig(earn_rate=100_000, value=50_000, paused=False))

    assert loyalty.apply(customer.id, 0, 5) == 5
    assert loyalty.apply(customer.id, 3, 1) == 3
    assert loyalty.load_config().value == 50_000


def test_apply_rejects_redeeming_more_than_the_stored_balance(tmp_path: Path):
    repo = make_repo(tmp_path)
    customer = CustomerService(repo).upsert(CustomerInfo(dni="30111222", name="Ana"))
    loyalty = LoyaltyService(repo)
    loyalty.apply(customer.id, 0, 2)

    assert loyalty.apply(customer.id, 2, 0) == 0
    with pytest.raises(ConcurrencyError):
        loyalty.apply(customer.id, 2, 0)
    assert repo.get_customer_versioned(customer.id)[0].points == 0


def test_revert_restores_used_points_and_floors_spent_earnings(tmp_path: Path):
    repo = make_repo(tmp_path)
    customer = CustomerService(repo).upsert(CustomerInfo(dni="30111222", name="Ana"))
    loyalty = LoyaltyService(repo)
    loyalty.apply(customer.id, 0, 4)

    assert loyalty.apply(customer.id, 4, 3) == 3
    assert loyalty.revert(customer.id, 4, 3) == 4

    loyalty.apply(customer.id, 4, 3)
    loyalty.apply(customer.id, 3, 0)
    assert loyalty.revert(customer.id, 4, 3) == 4
