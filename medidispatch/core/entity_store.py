"""
Entity store for MediDispatch.
Versioned records for hospitals, ambulances and emergency reports with
optimistic concurrency and atomic multi-entity transactions.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Tuple, Type, Union

from pydantic import ValidationError

from medidispatch.core.change_notifier import ChangeNotifier, create_event_id
from medidispatch.core.errors import ConflictError, NotFoundError, ValidationFailedError
from medidispatch.models.entity import Entity, EntityKind
from medidispatch.models.events import MutationAction, MutationEvent

logger = logging.getLogger(__name__)

Key = Tuple[EntityKind, str]
Mutation = Callable[[Entity], Union[Entity, Dict[str, Any]]]


def _sort_key(key: Key) -> Tuple[str, str]:
    return (key[0].value, key[1])


class KeyedLocks:
    """
    One asyncio.Lock per entity key.

    Keys are always acquired in sorted order so overlapping transactions
    cannot deadlock; locks nobody references any more are dropped.
    """

    def __init__(self):
        self._locks: Dict[Key, asyncio.Lock] = {}
        self._refs: Dict[Key, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, keys: Iterable[Key]) -> AsyncIterator[None]:
        ordered = sorted(set(keys), key=_sort_key)
        for key in ordered:
            self._refs[key] += 1
            if key not in self._locks:
                self._locks[key] = asyncio.Lock()

        acquired: List[Key] = []
        try:
            for key in ordered:
                await self._locks[key].acquire()
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
            for key in ordered:
                self._refs[key] -= 1
                if self._refs[key] == 0:
                    del self._refs[key]
                    self._locks.pop(key, None)

    def is_locked(self, key: Key) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()


class _Staged:
    __slots__ = ("entity", "expected_version", "action")

    def __init__(self, entity: Entity, expected_version: Optional[int], action: MutationAction):
        self.entity = entity
        self.expected_version = expected_version
        self.action = action


class UnitOfWork:
    """
    Writes staged inside one ``EntityStore.transaction`` block.

    Nothing is visible to other readers until the block exits cleanly;
    an exception discards every staged write.
    """

    def __init__(self, store: "EntityStore", keys: List[Key]):
        self._store = store
        self.keys = set(keys)
        self.correlation_id = create_event_id()
        self._staged: Dict[Key, _Staged] = {}

    def get(self, kind: EntityKind, entity_id: str, expected_version: Optional[int] = None) -> Entity:
        """
        Read an entity as of this transaction.

        Raises:
            NotFoundError: no such entity
            ConflictError: ``expected_version`` given and not current
        """
        key = (kind, entity_id)
        staged = self._staged.get(key)
        entity = staged.entity.model_copy() if staged else self._store.get(kind, entity_id)
        if expected_version is not None and entity.version != expected_version:
            raise ConflictError(kind.value, entity_id, expected_version, entity.version)
        return entity

    def find(self, kind: EntityKind, entity_id: str) -> Optional[Entity]:
        """Like get() but returns None for a missing entity."""
        try:
            return self.get(kind, entity_id)
        except NotFoundError:
            return None

    def update(
        self,
        entity: Entity,
        changes: Dict[str, Any],
        action: MutationAction,
    ) -> Entity:
        """
        Stage field changes for an entity read in this transaction.

        The version the entity was read at becomes the expected version for
        the compare-and-swap at commit.
        """
        key = entity.key
        self._require_locked(key)
        updated = self._store._validated(type(entity), {**entity.model_dump(), **changes})

        previous = self._staged.get(key)
        expected = previous.expected_version if previous else entity.version
        self._staged[key] = _Staged(updated, expected, action)
        return updated.model_copy()

    def insert(self, entity: Entity, action: MutationAction = MutationAction.CREATED) -> Entity:
        """Stage a brand new entity."""
        key = entity.key
        self._require_locked(key)
        if key in self._staged or self._store.exists(*key):
            raise ConflictError(key[0].value, key[1], 0, self._store._version_of(key))
        self._staged[key] = _Staged(entity, None, action)
        return entity.model_copy()

    def _require_locked(self, key: Key) -> None:
        if key not in self.keys:
            raise RuntimeError(f"{key[0].value} {key[1]} is not part of this transaction")

    @property
    def staged(self) -> List[_Staged]:
        return list(self._staged.values())


class EntityStore:
    """
    Central store for all dispatch entities.

    Maintains:
    - Versioned hospital, ambulance and report records
    - Per-entity locks for serialized read-modify-write
    - Optional write-through persistence via SQLAlchemy
    - Mutation events for the change notifier
    """

    def __init__(
        self,
        notifier: Optional[ChangeNotifier] = None,
        clock: Callable[[], datetime] = datetime.now,
        session_factory: Optional[Callable[[], Any]] = None,
    ):
        """
        Initialize the entity store.

        Args:
            notifier: Receives one event per committed entity change
            clock: Server-side time source used for timestamps and holds
            session_factory: SQLAlchemy sessionmaker for durable storage
        """
        self._records: Dict[EntityKind, Dict[str, Entity]] = {kind: {} for kind in EntityKind}
        self._locks = KeyedLocks()
        self._clock = clock
        self.notifier = notifier
        self._session_factory = session_factory
        self._persist_lock: Optional[asyncio.Lock] = None
        self._last_updated: Dict[str, datetime] = {}

        logger.info("EntityStore initialized")

    # ========================
    # Reads
    # ========================

    def now(self) -> datetime:
        """Current time according to the store clock."""
        return self._clock()

    def get(self, kind: EntityKind, entity_id: str) -> Entity:
        """
        Get a copy of an entity.

        Raises:
            NotFoundError: no such entity
        """
        entity = self._records[kind].get(entity_id)
        if entity is None:
            raise NotFoundError(kind.value, entity_id)
        return entity.model_copy()

    def exists(self, kind: EntityKind, entity_id: str) -> bool:
        return entity_id in self._records[kind]

    def list(
        self,
        kind: EntityKind,
        predicate: Optional[Callable[[Entity], bool]] = None
    ) -> List[Entity]:
        """Get copies of all committed entities of a kind, optionally filtered."""
        entities = self._records[kind].values()
        return [e.model_copy() for e in entities if predicate is None or predicate(e)]

    def count(self, kind: EntityKind) -> int:
        return len(self._records[kind])

    def _version_of(self, key: Key) -> int:
        entity = self._records[key[0]].get(key[1])
        return entity.version if entity else 0

    # ========================
    # Writes
    # ========================

    @asynccontextmanager
    async def transaction(self, *keys: Key) -> AsyncIterator[UnitOfWork]:
        """
        Serialize on the given entities and commit staged writes atomically.

        Usage:
            async with store.transaction((EntityKind.HOSPITAL, "h1")) as tx:
                hospital = tx.get(EntityKind.HOSPITAL, "h1")
                tx.update(hospital, {"available_beds": 3}, MutationAction.BEDS_UPDATED)
        """
        async with self._locks.hold(keys):
            uow = UnitOfWork(self, list(keys))
            yield uow
            await self._commit(uow)

    async def insert(self, entity: Entity, action: MutationAction = MutationAction.CREATED) -> Entity:
        """Insert a new entity at version 1."""
        async with self.transaction(entity.key) as tx:
            tx.insert(entity, action)
        return self.get(*entity.key)

    async def compare_and_update(
        self,
        kind: EntityKind,
        entity_id: str,
        expected_version: int,
        mutation: Mutation,
        action: MutationAction,
    ) -> int:
        """
        Apply ``mutation`` if the entity is still at ``expected_version``.

        Args:
            kind: Entity kind
            entity_id: Entity id
            expected_version: Version the caller last read
            mutation: Receives a copy of the entity, returns the updated
                entity or a dict of field changes
            action: Recorded on the emitted event

        Returns:
            The new version

        Raises:
            NotFoundError, ConflictError, ValidationFailedError
        """
        async with self.transaction((kind, entity_id)) as tx:
            current = tx.get(kind, entity_id, expected_version=expected_version)
            result = mutation(current.model_copy())
            if isinstance(result, Entity):
                changes = result.model_dump(exclude={"id", "version", "created_at", "updated_at"})
            else:
                changes = dict(result)
            tx.update(current, changes, action)
        return self._version_of((kind, entity_id))

    def _validated(self, entity_type: Type[Entity], data: Dict[str, Any]) -> Entity:
        try:
            return entity_type.model_validate(data)
        except ValidationError as e:
            raise ValidationFailedError.from_pydantic(
                e,
                f"Invalid {entity_type.KIND.value} state: {e.error_count()} error(s)",
                entity_type.KIND.value,
            ) from e

    async def _commit(self, uow: UnitOfWork) -> None:
        staged = uow.staged
        if not staged:
            return

        # Compare-and-swap every staged write before touching anything
        for item in staged:
            key = item.entity.key
            actual = self._version_of(key)
            expected = item.expected_version or 0
            if actual != expected:
                raise ConflictError(key[0].value, key[1], expected, actual)

        now = self.now()
        committed: List[Tuple[Entity, MutationAction]] = []
        for item in staged:
            entity = item.entity
            if item.expected_version is None:
                entity = entity.model_copy(update={"version": 1, "created_at": now, "updated_at": now})
            else:
                entity = entity.model_copy(
                    update={"version": item.expected_version + 1, "updated_at": now}
                )
            committed.append((entity, item.action))

        if self._session_factory is not None:
            # Off the event loop, still inside the entity locks. One writer at
            # a time: the SQLite pool hands every thread the same connection.
            if self._persist_lock is None:
                self._persist_lock = asyncio.Lock()
            async with self._persist_lock:
                await asyncio.to_thread(self._persist, [entity for entity, _ in committed])

        for entity, _ in committed:
            self._records[entity.KIND][entity.id] = entity
            self._last_updated[entity.KIND.value] = now

        logger.debug(
            f"Committed {len(committed)} change(s) in {uow.correlation_id}: "
            + ", ".join(f"{e.KIND.value}:{e.id}@v{e.version}" for e, _ in committed)
        )

        if self.notifier is not None:
            self.notifier.publish_many([
                MutationEvent(
                    id=create_event_id(),
                    kind=entity.KIND,
                    entity_id=entity.id,
                    version=entity.version,
                    action=action,
                    timestamp=now,
                    payload=entity.model_dump(mode="json"),
                    correlation_id=uow.correlation_id,
                )
                for entity, action in committed
            ])

    # ========================
    # Persistence
    # ========================

    def _persist(self, entities: List[Entity]) -> None:
        """Write committed entities in one database transaction."""
        from medidispatch.db.connection import session_scope
        from medidispatch.db.tables import row_from_entity

        try:
            with session_scope(self._session_factory) as session:
                for entity in entities:
                    session.merge(row_from_entity(entity))
        except Exception:
            logger.error("Persisting commit failed, nothing applied", exc_info=True)
            raise

    def load(self) -> int:
        """
        Rebuild in-memory state from the database.

        Returns:
            Number of entities loaded
        """
        if self._session_factory is None:
            return 0

        from medidispatch.db.connection import session_scope
        from medidispatch.db.tables import ROW_TYPES, entity_from_row

        loaded = 0
        with session_scope(self._session_factory) as session:
            for kind, row_type in ROW_TYPES.items():
                for row in session.query(row_type).all():
                    entity = entity_from_row(row)
                    self._records[kind][entity.id] = entity
                    loaded += 1

        logger.info(f"Loaded {loaded} entities from database")
        return loaded

    # ========================
    # State Summary
    # ========================

    def get_state_summary(self) -> Dict[str, Any]:
        """Get a summary of current state for debugging/monitoring."""
        return {
            kind.value: {
                "total": self.count(kind),
                "last_updated": self._last_updated.get(kind.value),
            }
            for kind in EntityKind
        }
