from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import os
import sys


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class PosSettings:
    # prices below the threshold are USD-denominated
    usd_price_threshold: float = 3500.0
    receipt_digits: int = 5
    cas_max_retries: int = 10
    payment_epsilon: float = 0.01
    serialized_categories: tuple[str, ...] = ("Celulares Nuevos", "Celulares Usados")
    stores: tuple[str, ...] = ("local1", "local2")
    trade_in_category: str = "Celulares Usados"
    trade_in_markup: float = 1.3
    receipt_prefixes: dict[str, str] = field(
        default_factory=lambda: {"sale": "V-", "reserve": "R-", "repair": "S-", "delivery": "E-"}
    )

    def is_serialized(self, category: str | None) -> bool:
        return (category or "") in self.serialized_categories


DEFAULT_SETTINGS = PosSettings()


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "PhoneStorePOS") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = base / "store.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)
