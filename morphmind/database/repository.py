"""
Ledger Repositories - storage collaborator for the LedgerStore

Single Responsibility: durable load/save of record dicts per collection.

Collections: 'users', 'positions', 'sources'.
Every call is durable on return; errors propagate to the caller.
"""

import copy
import threading
from typing import Dict, Iterable, Mapping, Optional, Protocol

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from morphmind.database.connection import session_scope
from morphmind.database.models import UserRecord, PositionRecord, SourceRecord
from morphmind.utils import get_logger

logger = get_logger(__name__)

USERS = 'users'
POSITIONS = 'positions'
SOURCES = 'sources'
COLLECTIONS = (USERS, POSITIONS, SOURCES)

Records = Mapping[str, Mapping[str, dict]]


class LedgerRepository(Protocol):
    """Storage collaborator consumed by the LedgerStore."""

    def load(self, collection: str) -> Dict[str, dict]:
        """Return every record of a collection keyed by id."""
        ...

    def save(self, collection: str, mapping: Mapping[str, dict]) -> None:
        """Replace a whole collection."""
        ...

    def save_batch(
        self,
        records: Records,
        deleted: Optional[Mapping[str, Iterable[str]]] = None
    ) -> None:
        """Atomically upsert records and delete ids across collections."""
        ...


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise KeyError(f"Unknown collection '{collection}', expected one of {COLLECTIONS}")


class InMemoryRepository:
    """
    Dict-backed repository.

    Used for tests and dry runs. Copies on the way in and out so callers
    never share mutable state with the stored snapshot.
    """

    def __init__(self, initial: Optional[Records] = None):
        self._data: Dict[str, Dict[str, dict]] = {name: {} for name in COLLECTIONS}
        self._lock = threading.Lock()
        self.save_count = 0

        for collection, mapping in (initial or {}).items():
            _check_collection(collection)
            self._data[collection] = copy.deepcopy(dict(mapping))

    def load(self, collection: str) -> Dict[str, dict]:
        _check_collection(collection)
        with self._lock:
            return copy.deepcopy(self._data[collection])

    def save(self, collection: str, mapping: Mapping[str, dict]) -> None:
        _check_collection(collection)
        with self._lock:
            self._data[collection] = copy.deepcopy(dict(mapping))
            self.save_count += 1

    def save_batch(
        self,
        records: Records,
        deleted: Optional[Mapping[str, Iterable[str]]] = None
    ) -> None:
        for collection in list(records) + list(deleted or {}):
            _check_collection(collection)

        with self._lock:
            # Build the new state first so a bad record leaves nothing half-applied
            staged = copy.deepcopy(self._data)
            for collection, mapping in records.items():
                for record_id, record in mapping.items():
                    staged[collection][record_id] = copy.deepcopy(dict(record))
            for collection, ids in (deleted or {}).items():
                for record_id in ids:
                    staged[collection].pop(record_id, None)

            self._data = staged
            self.save_count += 1


class SqlLedgerRepository:
    """
    SQLAlchemy-backed repository, one table per collection.

    Each call runs in a single session transaction (all-or-nothing).
    """

    MODELS = {
        USERS: UserRecord,
        POSITIONS: PositionRecord,
        SOURCES: SourceRecord,
    }

    def __init__(self, engine: Engine):
        self.engine = engine
        self.session_factory = sessionmaker(bind=engine)
        logger.info(f"SqlLedgerRepository initialized on {engine.url.render_as_string(hide_password=True)}")

    def load(self, collection: str) -> Dict[str, dict]:
        _check_collection(collection)
        model = self.MODELS[collection]

        with session_scope(self.session_factory) as session:
            rows = session.query(model).all()
            result = {row.id: row.to_dict() for row in rows}

        logger.debug(f"Loaded {len(result)} {collection}")
        return result

    def save(self, collection: str, mapping: Mapping[str, dict]) -> None:
        _check_collection(collection)
        model = self.MODELS[collection]

        with session_scope(self.session_factory) as session:
            keep = list(mapping)
            stale = session.query(model)
            if keep:
                stale = stale.filter(model.id.notin_(keep))
            stale.delete(synchronize_session=False)

            for record in mapping.values():
                session.merge(model.from_dict(record))

        logger.debug(f"Saved {len(mapping)} {collection}")

    def save_batch(
        self,
        records: Records,
        deleted: Optional[Mapping[str, Iterable[str]]] = None
    ) -> None:
        for collection in list(records) + list(deleted or {}):
            _check_collection(collection)

        with session_scope(self.session_factory) as session:
            for collection, mapping in records.items():
                model = self.MODELS[collection]
                for record in mapping.values():
                    session.merge(model.from_dict(record))

            for collection, ids in (deleted or {}).items():
                ids = list(ids)
                if not ids:
                    continue
                model = self.MODELS[collection]
                session.query(model).filter(model.id.in_(ids)).delete(synchronize_session=False)

        logger.debug(
            "Batch saved: "
            + ", ".join(f"{name}={len(mapping)}" for name, mapping in records.items())
        )
