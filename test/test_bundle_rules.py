import logging

import pytest

from storepos.domain.errors import NotFoundError, StoreMismatchError
from storepos.domain.models import AccessoryRef, BundleRule, CartLine, Product
from storepos.services.bundle_service import model_number, resolve_bundles, rule_matches
from storepos.services.cart_service import Cart


def _product(pid, name, category="Celulares Nuevos", stock=1, store="local1", price=900.0, model=""):
    return Product(id=pid, name=name, category=category, price=price, cost=price / 2, stock=stock, store=store, model=model)


CASE = _product("case", "Funda silicona", category="Accesorios", stock=10, price=0.0)
CHARGER = _product("charger", "Cargador 20W", category="Accesorios", stock=5, price=0.0)
GLASS = _product("glass", "Vidrio templado", category="Accesorios", stock=0, price=0.0)
REMOTE_CASE = _product("case2", "Funda local 2", category="Accesorios", stock=3, store="local2")
CATALOG = [CASE, CHARGER, GLASS, REMOTE_CASE]


def _rule(rid, rtype, accessories, **conditions):
    return BundleRule(id=rid, name=rid, type=rtype, accessories=tuple(AccessoryRef(a) for a in accessories), **conditions)


def test_model_number_takes_first_digit_run():
    assert model_number("iPhone 12 Pro") == 12
    assert model_number("iPhone 11 Pro Max") == 11
    assert model_number("Galaxy A54 5G") == 54
    assert model_number("Funda") is None
    assert model_number(None) is None


def test_model_range_matches_inclusive_bounds():
    rule = _rule("r", "model_range", ["case"], start="11", end="13")
    assert rule_matches(rule, _product("p1", "iPhone 12 Pro"))
    assert rule_matches(rule, _product("p2", "iPhone 13"))
    assert not rule_matches(rule, _product("p3", "iPhone 14"))


def test_model_range_with_non_numeric_bounds_never_matches():
    rule = _rule("r", "model_range", ["case"], start="Pro", end="13")
    assert not rule_matches(rule, _product("p1", "iPhone 12"))


def test_model_start_and_category_rules():
    start = _rule("s", "model_start", ["case"], start="15")
    category = _rule("c", "category", ["case"], category="celulares nuevos")
    assert rule_matches(start, _product("p1", "iPhone 15 Pro"))
    assert not rule_matches(start, _product("p2", "iPhone 14"))
    assert rule_matches(category, _product("p3", "Moto G"))
    assert not rule_matches(category, _product("p4", "Moto G", category="Celulares Usados"))


def test_all_matching_rules_apply_without_duplicates():
    phone = CartLine.from_product(_product("p1", "iPhone 12"))
    rules = [
        _rule("a", "model_range", ["case", "charger"], start="11", end="13"),
        _rule("b", "category", ["case"], category="Celulares Nuevos"),
    ]

    gifts = resolve_bundles(phone, [phone], CATALOG, rules)

    assert [g.product_id for g in gifts] == ["case", "charger"]
    assert all(g.price == 0 and g.quantity == 1 and g.gift for g in gifts)
    assert phone.price == 900.0


def test_out_of_stock_and_other_store_accessories_are_skipped(caplog):
    phone = CartLine.from_product(_product("p1", "iPhone 12"))
    rules = [_rule("a", "model_start", ["glass", "case2", "missing", "case"], start="11")]

    with caplog.at_level(logging.WARNING, logger="storepos.sales"):
        gifts = resolve_bundles(phone, [phone], CATALOG, rules)

    assert [g.product_id for g in gifts] == ["case"]
    assert any("out_of_stock" in r.getMessage() for r in caplog.records)
    assert any("store_mismatch" in r.getMessage() for r in caplog.records)


def test_strict_mode_raises_on_store_mismatch():
    phone = CartLine.from_product(_product("p1", "iPhone 12"))
    rules = [_rule("a", "model_start", ["case2"], start="11")]

    with pytest.raises(StoreMismatchError):
        resolve_bundles(phone, [phone], CATALOG, rules, strict=True)


def test_adding_same_phone_twice_does_not_duplicate_gifts():
    phone = _product("p1", "iPhone 12", stock=2)
    rules = [_rule("a", "model_range", ["case", "charger"], start="11", end="13")]
    cart = Cart()

    first = cart.add(phone, catalog=CATALOG, rules=rules)
    second = cart.add(phone, catalog=CATALOG, rules=rules)

    assert len(first) == 2
    assert second == []
    assert [line.product_id for line in cart.lines] == ["p1", "case", "charger"]
    assert cart.quantity_of("p1") == 2


def test_cart_rejects_product_from_another_store():
    cart = Cart()
    cart.add(_product("p1", "iPhone 12"))

    with pytest.raises(StoreMismatchError):
        cart.add(_product("p2", "iPhone 13", store="local2"))
    assert cart.store == "local1"
    assert len(cart.lines) == 1


def test_cart_edits_prices_and_frees_store_when_emptied():
    cart = Cart()
    cart.add(_product("p1", "iPhone 12"))
    cart.add(_product("cable", "Cable USB-C", category="Accesorios", stock=5, price=10000.0), quantity=2)

    assert cart.subtotal(rate=1000) == 900 * 1000 + 10000 * 2

    cart.set_price("p1", 0)
    assert cart.lines[0].gift
    with pytest.raises(NotFoundError):
        cart.set_price("missing", 10)

    cart.remove("p1")
    cart.remove("cable")
    assert cart.is_empty()
    assert cart.store is None
