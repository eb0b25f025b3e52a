from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Iterable, Optional

from storepos.domain.errors import StoreMismatchError
from storepos.domain.models import (
    RULE_CATEGORY,
    RULE_MODEL_RANGE,
    RULE_MODEL_START,
    BundleRule,
    CartLine,
    Product,
)

log = logging.getLogger("storepos.sales")

_DIGITS = re.compile(r"\d+")


def model_number(text: Optional[str]) -> Optional[int]:
    """First run of digits in a model or product name ("iPhone 12 Pro" -> 12)."""
    if not text:
        return None
    m = _DIGITS.search(str(text))
    return int(m.group()) if m else None


def product_model_number(product: Product | CartLine) -> Optional[int]:
    n = model_number(product.model)
    return n if n is not None else model_number(product.name)


def rule_matches(rule: BundleRule, product: Product | CartLine) -> bool:
    if rule.type == RULE_CATEGORY:
        return bool(rule.category) and product.category.strip().lower() == rule.category.strip().lower()

    number = product_model_number(product)
    if number is None:
        return False

    if rule.type == RULE_MODEL_RANGE:
        start, end = model_number(rule.start), model_number(rule.end)
        if start is None or end is None:
            return False
        return start <= number <= end

    if rule.type == RULE_MODEL_START:
        start = model_number(rule.start)
        return start is not None and number >= start

    return False


def resolve_bundles(
    added_line: CartLine,
    existing_cart: Iterable[CartLine],
    catalog: Iterable[Product],
    rules: Iterable[BundleRule],
    store: Optional[str] = None,
    strict: bool = False,
) -> list[CartLine]:
    """Gift lines to append after ``added_line`` joins the cart.

    Every matching rule applies. An accessory already in the cart, or already
    staged by an earlier rule in this call, is not added again, so resolving
    twice against the same cart adds nothing new. The triggering line is
    never modified.
    """
    store = store or added_line.store
    by_id = {p.id: p for p in catalog}
    present = {line.product_id for line in existing_cart}
    present.add(added_line.product_id)

    staged: list[CartLine] = []
    for rule in rules:
        if not rule_matches(rule, added_line):
            continue
        for ref in rule.accessories:
            if ref.id in present:
                continue
            accessory = by_id.get(ref.id)
            if accessory is None:
                log.warning("bundle_accessory_missing rule=%s accessory=%s", rule.id, ref.id)
                continue
            if accessory.stock <= 0:
                log.warning("bundle_accessory_out_of_stock rule=%s accessory=%s", rule.id, accessory.id)
                continue
            if store and accessory.store != store:
                if strict:
                    raise StoreMismatchError(expected=store, actual=accessory.store, item=accessory.name)
                log.error(
                    "bundle_accessory_store_mismatch rule=%s accessory=%s store=%s expected=%s",
                    rule.id,
                    accessory.id,
                    accessory.store,
                    store,
                )
                continue
            gift = replace(CartLine.from_product(accessory, quantity=1, price=0), gift=True, bundle_rule_id=rule.id)
            staged.append(gift)
            present.add(accessory.id)
            log.info("bundle_accessory_added rule=%s accessory=%s trigger=%s", rule.id, accessory.id, added_line.product_id)
    return staged
