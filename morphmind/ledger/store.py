"""
Ledger Store - In-Memory Ledger With Durable Snapshots

Single Responsibility: own User, Position and Source records and
coordinate access to them.

Lifecycle:
    store = LedgerStore.open(repository, seed_sources)   # load persisted snapshot
    ...                                                 # engines + API mutate records
    store.close()                                       # final flush

Locking:
- One lock per user guards that user and the positions it owns.
- `sources_lock` guards the source table (rates, volumes, active flags).
- `commit_lock` serializes persistence. It is always taken BEFORE any user
  lock, never while holding one.

Persistence:
- `transaction(user_id)` gives user-triggered operations all-or-nothing
  semantics: the user's records are saved on exit, and any failure restores
  the in-memory checkpoint before the error reaches the caller.
- `flush()` saves a consistent snapshot of everything (scheduler cycle end,
  shutdown). Failures propagate; the caller decides whether to retry later.
"""

import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Optional, Set

from morphmind.config.loader import SourceSpec
from morphmind.database.repository import LedgerRepository, USERS, POSITIONS, SOURCES
from morphmind.ledger.errors import AlreadyExistsError, NotFoundError, PersistenceError
from morphmind.ledger.models import User, Position, Source, to_decimal
from morphmind.utils import get_logger

logger = get_logger(__name__)


@dataclass
class _Checkpoint:
    """In-memory state of one user before a transaction."""
    user_id: str
    user: Optional[User]
    positions: Dict[str, Position]
    source_volumes: Dict[str, Decimal]


@dataclass
class StoreTransaction:
    """Handle yielded by LedgerStore.transaction()."""
    user_id: str
    touched_sources: Set[str] = field(default_factory=set)

    def touch_source(self, source_id: str) -> None:
        """Include a source record in the save at transaction end."""
        self.touched_sources.add(source_id)


class LedgerStore:
    """
    Explicit owner of all ledger records.

    Engines and the Ledger API receive the store by reference; nothing
    reaches the records through module-level state.
    """

    def __init__(self, repository: LedgerRepository):
        self.repository = repository

        self.users: Dict[str, User] = {}
        self.positions: Dict[str, Position] = {}
        self.sources: Dict[str, Source] = {}  # iteration order = configuration order

        self.sources_lock = threading.RLock()
        self.commit_lock = threading.RLock()
        self._registry_lock = threading.Lock()
        self._user_locks: Dict[str, threading.RLock] = {}

        self._id_lock = threading.Lock()
        self._last_position_ms = 0

        self.is_open = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @classmethod
    def open(
        cls,
        repository: LedgerRepository,
        seed_sources: Iterable[SourceSpec] = ()
    ) -> "LedgerStore":
        """
        Build a store from the repository's persisted snapshot.

        Seeds the source table from configuration when storage has none.
        """
        store = cls(repository)

        for record in repository.load(SOURCES).values():
            source = Source.from_dict(record)
            store.sources[source.id] = source

        for record in repository.load(USERS).values():
            user = User.from_dict(record)
            store.users[user.id] = user

        orphans = 0
        for record in repository.load(POSITIONS).values():
            position = Position.from_dict(record)
            owner = store.users.get(position.user_id)
            if owner is None or position.id not in owner.position_ids:
                orphans += 1
                continue
            store.positions[position.id] = position
            if position.id.isdigit():
                store._last_position_ms = max(store._last_position_ms, int(position.id))

        if orphans:
            logger.warning(f"Skipped {orphans} positions without a live owner")

        if not store.sources:
            seeded = {}
            for spec in seed_sources:
                source = Source(
                    id=spec.id,
                    name=spec.name,
                    rate=to_decimal(spec.rate),
                    volume=to_decimal(spec.volume),
                    active=spec.active,
                )
                store.sources[source.id] = source
                seeded[source.id] = source.to_dict()
            if seeded:
                repository.save(SOURCES, seeded)
                logger.info(f"Seeded {len(seeded)} sources: {list(seeded)}")

        store.is_open = True
        logger.info(
            f"LedgerStore opened: {len(store.users)} users, "
            f"{len(store.positions)} positions, {len(store.sources)} sources"
        )
        return store

    def close(self, flush: bool = True) -> None:
        """Teardown, with a final flush unless the session only read the ledger."""
        if not self.is_open:
            return
        if flush:
            self.flush()
        self.is_open = False
        logger.info("LedgerStore closed")

    # =========================================================================
    # LOCKING
    # =========================================================================

    def _lock_for(self, user_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._user_locks[user_id] = lock
            return lock

    @contextmanager
    def user_lock(self, user_id: str) -> Iterator[None]:
        """Exclusive access to one user and its positions."""
        with self._lock_for(user_id):
            yield

    @contextmanager
    def transaction(self, user_id: str) -> Iterator[StoreTransaction]:
        """
        All-or-nothing scope for a user-triggered operation.

        Usage:
            with store.transaction(user_id) as tx:
                user = store.get_user(user_id)
                user.balance -= amount
                tx.touch_source(source_id)

        On normal exit the user's records are saved synchronously. If the body
        raises, or the save fails, in-memory state is restored to the checkpoint.

        Raises:
            PersistenceError: If the save failed (state rolled back)
        """
        with self.commit_lock, self.user_lock(user_id):
            checkpoint = self._checkpoint(user_id)
            tx = StoreTransaction(user_id)

            try:
                yield tx
            except Exception:
                self._restore(checkpoint)
                raise

            try:
                self._persist_user(tx, checkpoint)
            except Exception as e:
                self._restore(checkpoint)
                logger.error(f"Persist failed for user {user_id}, change rolled back: {e}", exc_info=True)
                raise PersistenceError(f"Could not save changes for user {user_id}: {e}") from e

    def _checkpoint(self, user_id: str) -> _Checkpoint:
        user = self.users.get(user_id)
        positions = {}
        if user is not None:
            positions = {
                pid: copy.deepcopy(self.positions[pid])
                for pid in user.position_ids if pid in self.positions
            }
        with self.sources_lock:
            volumes = {sid: source.volume for sid, source in self.sources.items()}
        return _Checkpoint(
            user_id=user_id,
            user=copy.deepcopy(user),
            positions=positions,
            source_volumes=volumes,
        )

    def _restore(self, checkpoint: _Checkpoint) -> None:
        with self._registry_lock:
            current = self.users.get(checkpoint.user_id)
            if current is not None:
                for pid in current.position_ids:
                    if pid not in checkpoint.positions:
                        self.positions.pop(pid, None)

            if checkpoint.user is None:
                self.users.pop(checkpoint.user_id, None)
            else:
                self.users[checkpoint.user_id] = checkpoint.user
            self.positions.update(checkpoint.positions)

        with self.sources_lock:
            for sid, volume in checkpoint.source_volumes.items():
                if sid in self.sources:
                    self.sources[sid].volume = volume

        logger.debug(f"Restored checkpoint for user {checkpoint.user_id}")

    def _persist_user(self, tx: StoreTransaction, checkpoint: _Checkpoint) -> None:
        user = self.users.get(tx.user_id)
        records = {USERS: {}, POSITIONS: {}, SOURCES: {}}
        live_ids: List[str] = []

        if user is not None:
            records[USERS][user.id] = user.to_dict()
            for position in self.positions_of(user):
                records[POSITIONS][position.id] = position.to_dict()
                live_ids.append(position.id)

        with self.sources_lock:
            for sid in tx.touched_sources:
                records[SOURCES][sid] = self.sources[sid].to_dict()

        removed = [pid for pid in checkpoint.positions if pid not in live_ids]
        self.repository.save_batch(records, deleted={POSITIONS: removed} if removed else None)

    def flush(self) -> None:
        """
        Save a consistent snapshot of every record in one batch.

        Each user is copied under its own lock, one at a time.

        Raises:
            Exception: Whatever the repository raised
        """
        with self.commit_lock:
            records = {USERS: {}, POSITIONS: {}, SOURCES: {}}

            for user_id in self.user_ids():
                with self.user_lock(user_id):
                    user = self.users.get(user_id)
                    if user is None:
                        continue
                    records[USERS][user_id] = user.to_dict()
                    for position in self.positions_of(user):
                        records[POSITIONS][position.id] = position.to_dict()

            with self.sources_lock:
                for source in self.sources.values():
                    records[SOURCES][source.id] = source.to_dict()

            self.repository.save_batch(records)

        logger.debug(
            f"Flushed {len(records[USERS])} users, {len(records[POSITIONS])} positions, "
            f"{len(records[SOURCES])} sources"
        )

    # =========================================================================
    # USERS AND POSITIONS
    # =========================================================================

    def user_ids(self) -> List[str]:
        with self._registry_lock:
            return list(self.users)

    def has_user(self, user_id: str) -> bool:
        return user_id in self.users

    def get_user(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def add_user(self, user: User) -> None:
        with self._registry_lock:
            if user.id in self.users:
                raise AlreadyExistsError(f"User {user.id} already exists")
            self.users[user.id] = user

    def positions_of(self, user: User) -> List[Position]:
        """Live positions owned by a user, in ownership order."""
        return [self.positions[pid] for pid in user.position_ids if pid in self.positions]

    def get_position(self, position_id: str) -> Position:
        position = self.positions.get(position_id)
        if position is None:
            raise NotFoundError(f"Position {position_id} not found")
        return position

    def add_position(self, position: Position) -> None:
        with self._registry_lock:
            if position.id in self.positions:
                raise AlreadyExistsError(f"Position {position.id} already exists")
            self.positions[position.id] = position

    def remove_position(self, position_id: str) -> None:
        with self._registry_lock:
            self.positions.pop(position_id, None)

    def next_position_id(self, now: datetime) -> str:
        """Unique, time-ordered position id (epoch milliseconds, bumped on collision)."""
        with self._id_lock:
            ms = max(int(now.timestamp() * 1000), self._last_position_ms + 1)
            self._last_position_ms = ms
            return str(ms)

    # =========================================================================
    # SOURCES
    # =========================================================================

    def get_source(self, source_id: str) -> Source:
        source = self.sources.get(source_id)
        if source is None:
            raise NotFoundError(f"Source {source_id} not found")
        return source

    def source_snapshot(self) -> List[Source]:
        """Copies of all sources, taken atomically (configuration order)."""
        with self.sources_lock:
            return [copy.copy(source) for source in self.sources.values()]

    def set_source_active(self, source_id: str, active: bool) -> Source:
        """
        Toggle a source. Sources are never deleted.

        Raises:
            NotFoundError: If the source is unknown
        """
        with self.commit_lock:
            with self.sources_lock:
                source = self.get_source(source_id)
                previous = source.active
                source.active = active
                record = source.to_dict()

            try:
                self.repository.save_batch({SOURCES: {source_id: record}})
            except Exception as e:
                with self.sources_lock:
                    source.active = previous
                raise PersistenceError(f"Could not save source {source_id}: {e}") from e

        logger.info(f"Source {source_id} active={active}")
        return copy.copy(source)
