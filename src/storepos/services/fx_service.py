from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import requests

from storepos.config import DEFAULT_SETTINGS
from storepos.domain.errors import FxUnavailableError
from storepos.repositories.contracts import ConfigRepository

log = logging.getLogger("storepos.fx")

BLUE_DOLLAR_URL = "https://dolarapi.com/v1/dolares/blue"


def to_display_currency(price: float, rate: float, threshold: float = DEFAULT_SETTINGS.usd_price_threshold) -> float:
    """Convert a stored price to local currency.

    Prices below ``threshold`` are read as USD and multiplied by ``rate``;
    anything at or above it is already in ARS. ``rate`` is not validated.
    """
    price = float(price)
    if price < threshold:
        return price * float(rate)
    return price


def is_usd_price(price: float, threshold: float = DEFAULT_SETTINGS.usd_price_threshold) -> bool:
    return float(price) < threshold


def display_price(price: float, rate: float, threshold: float = DEFAULT_SETTINGS.usd_price_threshold) -> Optional[float]:
    """Like ``to_display_currency`` but returns None when no usable rate exists."""
    if rate is None or float(rate) <= 0:
        return None
    return to_display_currency(price, rate, threshold)


class FxService:
    def __init__(self, repo: ConfigRepository, url: str = BLUE_DOLLAR_URL):
        self.repo = repo
        self.url = url

    def _fetch_json(self, url: str) -> dict:
        r = requests.get(url, timeout=10)
        r.raise_for_status()
        return r.json()

    def _extract_sell_rate(self, data: dict) -> float:
        # dolarapi structure: {"compra": 1180, "venta": 1200, "fechaActualizacion": "..."}
        if not isinstance(data, dict) or data.get("venta") is None:
            raise FxUnavailableError(f"FX API response missing sell rate. Raw: {data}")
        return self._validate_rate(data["venta"])

    def _validate_rate(self, value: object) -> float:
        rate = float(value)
        if rate <= 0:
            raise FxUnavailableError(f"FX rate must be > 0. Received: {rate}")
        return rate

    def adjustment(self) -> float:
        cfg = self.repo.get_config("usdRateAdjustment") or {}
        try:
            return float(cfg.get("value") or 0)
        except (TypeError, ValueError):
            return 0.0

    def set_adjustment(self, value: float) -> None:
        self.repo.set_config("usdRateAdjustment", {"value": float(value)})

    def _cached_rate(self) -> Optional[float]:
        cfg = self.repo.get_config("usdRate")
        if not cfg or cfg.get("value") is None:
            return None
        return float(cfg["value"])

    def get_rate(self) -> float:
        """Current dollar rate used for conversions, adjustment included."""
        try:
            base = self._extract_sell_rate(self._fetch_json(self.url))
            self.repo.set_config("usdRate", {"value": base, "updatedAt": datetime.now().isoformat(timespec="seconds")})
        except (requests.RequestException, ValueError, FxUnavailableError) as e:
            log.warning("fx_source_failed url=%s error=%s", self.url, e)
            base = self._cached_rate()
            if base is None:
                raise FxUnavailableError(f"FX fetch failed and no cached rate available. Last error: {e}") from e
            log.warning("fx_fallback_cached rate=%.4f", base)

        rate = base + self.adjustment()
        if rate <= 0:
            raise FxUnavailableError(f"Adjusted FX rate must be > 0. Received: {rate}")
        return rate
