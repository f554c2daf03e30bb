import sys
from datetime import datetime, timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


class SteppingClock:
    """Deterministic clock: every call advances one second from ``start``."""

    def __init__(self, start: datetime = datetime(2024, 3, 1, 9, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        now = self.current
        self.current = now + timedelta(seconds=1)
        return now


def make_container(tmp_path: Path, name: str = "bevdist.db", clock=None):
    from bevdist.application.container import build_container

    return build_container(tmp_path / name, clock=clock or SteppingClock())


def seed_catalogue(container):
    """Store S plus productA @ 10.00 and productB @ 5.00, the reference scenario."""
    store_id = container.stores.add_store("Store S", "12 Market Road", "Ravi", "98450 00000")
    product_a = container.inventory.add_product("productA", "10.00", 100)
    product_b = container.inventory.add_product("productB", "5.00", 100)
    return store_id, product_a, product_b
