from pathlib import Path

import pytest
import requests

from conftest import make_repo
from storepos.domain.errors import FxUnavailableError
from storepos.services.fx_service import FxService, display_price, is_usd_price, to_display_currency


def test_usd_prices_are_converted_and_ars_prices_kept():
    assert to_display_currency(3000, 1000) == 3_000_000
    assert to_display_currency(5000, 1000) == 5000
    assert to_display_currency(3500, 1000) == 3500
    assert is_usd_price(3499.99)
    assert not is_usd_price(3500)


def test_display_price_returns_none_without_usable_rate():
    assert display_price(100, 0) is None
    assert display_price(100, -5) is None
    assert display_price(100, 1200) == 120_000


def test_fx_caches_remote_rate_and_applies_adjustment(tmp_path: Path):
    repo = make_repo(tmp_path)
    fx = FxService(repo)
    fx._fetch_json = lambda _url: {"compra": 1180, "venta": 1200}  # type: ignore[attr-defined]
    fx.set_adjustment(15)

    assert fx.get_rate() == 1215
    assert repo.get_config("usdRate")["value"] == 1200


def test_fx_uses_cached_rate_when_remote_fails(tmp_path: Path):
    repo = make_repo(tmp_path)
    repo.set_config("usdRate", {"value": 1234.5})
    fx = FxService(repo)

    def fail(_url: str):
        raise requests.RequestException("network down")

    fx._fetch_json = fail  # type: ignore[attr-defined]

    assert fx.get_rate() == 1234.5


def test_fx_without_cache_raises(tmp_path: Path):
    repo = make_repo(tmp_path)
    fx = FxService(repo)
    fx._fetch_json = lambda _url: {"venta": None}  # type: ignore[attr-defined]

    with pytest.raises(FxUnavailableError):
        fx.get_rate()
