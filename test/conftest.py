import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


class FixedFxService:
    def __init__(self, rate: float = 1000.0):
        self.rate = rate

    def get_rate(self):
        return self.rate


def make_repo(tmp_path: Path, name: str = "store.db"):
    from storepos.repositories.sqlite_store import SqliteDocumentStore
    from storepos.repositories.store_repo import StoreRepository

    store = SqliteDocumentStore(tmp_path / name)
    store.init_db()
    return StoreRepository(store)


def add_product(repo, name: str, stock: int, price: float = 100.0, category: str = "Accesorios", store: str = "local1", **extra):
    from storepos.domain.models import Product

    product = Product(
        id="",
        name=name,
        category=category,
        price=price,
        cost=extra.pop("cost", price / 2),
        stock=stock,
        store=store,
        **extra,
    )
    return repo.add_product(product)
