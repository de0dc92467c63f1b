"""Storage backends."""

from vigil.config import settings
from vigil.db.base import DeviceNotFound, Store, sent_on_day


def _create_store() -> Store:
    if settings.store_backend == "memory":
        from vigil.db.memory import MemoryStore

        return MemoryStore()
    from vigil.db.postgres import Database

    return Database()


# Global store instance
db: Store = _create_store()

__all__ = ["DeviceNotFound", "Store", "db", "sent_on_day"]
