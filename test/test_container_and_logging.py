import json
import logging
from pathlib import Path

from conftest import FixedFxService, add_product
from storepos.application.container import build_container, build_default_container
from storepos.domain.models import CartLine, CustomerInfo, Payment
from storepos.logging_config import JsonFormatter


def test_container_wires_a_working_sale(tmp_path: Path):
    c = build_container(tmp_path / "store.db", fx=FixedFxService(1000))
    case = add_product(c.repo, "Funda", 3, price=15000)

    sale = c.sales.sell([CartLine.from_product(case)], CustomerInfo(dni="1", name="Luis"), Payment("efectivo"))

    assert sale.total_amount == 15000
    assert c.repo.get_product(case.id).stock == 2
    assert [m.reason for m in c.repo.list_movements(case.id)] == ["sale"]
    assert c.store.integrity_check() == "ok"


def test_migrations_are_idempotent(tmp_path: Path):
    db = tmp_path / "store.db"
    build_container(db, fx=FixedFxService())
    c = build_container(db, fx=FixedFxService())

    assert c.counter.next_receipt("sale") == "V-00001"


def test_json_formatter_emits_one_object_per_record():
    record = logging.LogRecord("storepos.sales", logging.INFO, __file__, 1, "sale_created sale_id=%s", ("abc",), None)

    payload = json.loads(JsonFormatter().format(record))

    assert payload["logger"] == "storepos.sales"
    assert payload["level"] == "INFO"
    assert payload["message"] == "sale_created sale_id=abc"


def test_default_container_uses_app_paths(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
    monkeypatch.setattr("sys.platform", "linux")

    c = build_default_container()

    base = tmp_path / ".phonestorepos"
    assert (base / "store.db").exists()
    assert (base / "logs").is_dir()
    assert c.counter.peek("sale") == 0
