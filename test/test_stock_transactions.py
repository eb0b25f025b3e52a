from pathlib import Path

import pytest

from conftest import add_product, make_repo
from storepos.domain.errors import AppError, DuplicateRecordError, InsufficientStockError, StoreMismatchError, ValidationError
from storepos.domain.models import CartLine
from storepos.repositories.store_repo import StoreRepository
from storepos.services.stock_service import StockTransactionManager


def _line(product, qty):
    return CartLine.from_product(product, quantity=qty)


def test_serialized_phone_is_removed_at_zero_stock(tmp_path: Path):
    repo = make_repo(tmp_path)
    phone = add_product(repo, "iPhone 13", 1, price=900, category="Celulares Nuevos", imei="356000000000001")
    stock = StockTransactionManager(repo)

    assert stock.apply_stock_delta(phone.id, -1, "local1", reason="sale") is None
    assert repo.get_product(phone.id) is None


def test_accessory_is_kept_at_zero_stock(tmp_path: Path):
    repo = make_repo(tmp_path)
    case = add_product(repo, "Funda", 2)
    stock = StockTransactionManager(repo)

    stock.commit_lines([_line(case, 2)], "local1", "sale")

    kept = repo.get_product(case.id)
    assert kept is not None
    assert kept.stock == 0


def test_insufficient_stock_fails_before_any_write(tmp_path: Path):
    repo = make_repo(tmp_path)
    case = add_product(repo, "Funda", 5)
    cable = add_product(repo, "Cable", 1)
    stock = StockTransactionManager(repo)

    with pytest.raises(InsufficientStockError) as exc_info:
        stock.commit_lines([_line(case, 2), _line(cable, 1), _line(cable, 1)], "local1", "sale")

    assert exc_info.value.product_id == cable.id
    assert repo.get_product(case.id).stock == 5
    assert repo.get_product(cable.id).stock == 1
    assert repo.list_movements() == []


def test_store_affinity_is_enforced(tmp_path: Path):
    repo = make_repo(tmp_path)
    remote = add_product(repo, "Funda", 5, store="local2")
    stock = StockTransactionManager(repo)

    with pytest.raises(StoreMismatchError):
        stock.commit_lines([_line(remote, 1)], "local1", "sale")
    assert repo.get_product(remote.id).stock == 5


class FailingSecondWriteRepo(StoreRepository):
    writes = 0

    def cas_product(self, product, expected_version):
        self.writes += 1
        if self.writes == 2:
            raise RuntimeError("boom")
        return super().cas_product(product, expected_version)


def test_partial_commit_is_compensated(tmp_path: Path):
    base = make_repo(tmp_path)
    phone = add_product(base, "iPhone 13", 1, price=900, category="Celulares Nuevos")
    case = add_product(base, "Funda", 4)
    cable = add_product(base, "Cable", 3)
    repo = FailingSecondWriteRepo(base.store)
    stock = StockTransactionManager(repo)

    with pytest.raises(RuntimeError, match="boom"):
        stock.commit_lines([_line(phone, 1), _line(case, 1), _line(cable, 1)], "local1", "sale")

    restored = repo.get_product(phone.id)
    assert restored is not None and restored.stock == 1
    assert repo.get_product(case.id).stock == 4
    assert repo.get_product(cable.id).stock == 3


def test_already_debited_units_are_not_charged_again(tmp_path: Path):
    repo = make_repo(tmp_path)
    case = add_product(repo, "Funda", 5)
    stock = StockTransactionManager(repo)

    plan = stock.commit_lines([_line(case, 3)], "local1", "sale", already_debited={case.id: 2})

    assert plan == {case.id: 1}
    assert repo.get_product(case.id).stock == 4


def test_transfer_merges_into_identical_product(tmp_path: Path):
    repo = make_repo(tmp_path)
    src = add_product(repo, "Funda", 5, store="local1")
    dst = add_product(repo, "Funda", 2, store="local2")
    stock = StockTransactionManager(repo)

    merged = stock.transfer(src.id, 3, "local2")

    assert merged.id == dst.id
    assert repo.get_product(dst.id).stock == 5
    assert repo.get_product(src.id).stock == 2


def test_transfer_of_whole_stock_moves_record(tmp_path: Path):
    repo = make_repo(tmp_path)
    phone = add_product(repo, "iPhone 13", 1, price=900, category="Celulares Nuevos")
    stock = StockTransactionManager(repo)

    moved = stock.transfer(phone.id, 1, "local2")

    assert moved.id == phone.id
    assert repo.get_product(phone.id).store == "local2"
    assert repo.get_product(phone.id).stock == 1


def test_partial_transfer_splits_record(tmp_path: Path):
    repo = make_repo(tmp_path)
    src = add_product(repo, "Cable", 5)
    stock = StockTransactionManager(repo)

    split = stock.transfer(src.id, 2, "local2")

    assert split.id != src.id
    assert repo.get_product(split.id).stock == 2
    assert repo.get_product(split.id).store == "local2"
    assert repo.get_product(src.id).stock == 3


def test_transfer_validation(tmp_path: Path):
    repo = make_repo(tmp_path)
    src = add_product(repo, "Cable", 5)
    stock = StockTransactionManager(repo)

    with pytest.raises(ValidationError):
        stock.transfer(src.id, 1, "local1")
    with pytest.raises(ValidationError):
        stock.transfer(src.id, 1, "local9")
    with pytest.raises(InsufficientStockError):
        stock.transfer(src.id, 6, "local2")


class ChangesStockDuringLookupRepo(StoreRepository):
    delta = 0

    def find_same_item(self, product, store):
        if self.delta:
            delta, self.delta = self.delta, 0
            StockTransactionManager(StoreRepository(self.store)).apply_stock_delta(product.id, delta, product.store, "sale")
        return super().find_same_item(product, store)


def test_whole_transfer_fails_when_stock_is_sold_meanwhile(tmp_path: Path):
    base = make_repo(tmp_path)
    cable = add_product(base, "Cable", 3)
    repo = ChangesStockDuringLookupRepo(base.store)
    repo.delta = -3
    stock = StockTransactionManager(repo)

    with pytest.raises(InsufficientStockError):
        stock.transfer(cable.id, 3, "local2")

    kept = repo.get_product(cable.id)
    assert kept.store == "local1"
    assert kept.stock == 0
    assert repo.list_products("local2") == []


def test_whole_transfer_splits_when_stock_grew_meanwhile(tmp_path: Path):
    base = make_repo(tmp_path)
    cable = add_product(base, "Cable", 3)
    repo = ChangesStockDuringLookupRepo(base.store)
    repo.delta = 2
    stock = StockTransactionManager(repo)

    dest = stock.transfer(cable.id, 3, "local2")

    assert dest.id != cable.id
    assert repo.get_product(dest.id).stock == 3
    assert repo.get_product(cable.id).store == "local1"
    assert repo.get_product(cable.id).stock == 2


def test_adding_an_existing_product_id_is_an_app_error(tmp_path: Path):
    repo = make_repo(tmp_path)
    case = add_product(repo, "Funda", 2)

    with pytest.raises(DuplicateRecordError) as exc_info:
        repo.add_product(case)

    assert isinstance(exc_info.value, AppError)
    assert repo.get_product(case.id).stock == 2
