"""Document store contract and the in-memory store used by the service.

The hosted store the service talks to is a schemaless document database:
collections of JSON-like documents addressed by id, equality/membership
queries, partial updates with array-union/remove helpers, and live queries that
push the complete current result after every change. ``DocumentStore`` captures
exactly the operations the repositories rely on; ``InMemoryDocumentStore``
implements it in-process.
"""

from __future__ import annotations

from contextlib import contextmanager
import copy
from dataclasses import dataclass, field
import logging
from threading import RLock
from typing import Any, Callable, ContextManager, Iterator, Protocol, Sequence
from uuid import uuid4

from classroom_app.constants.course_constants import ID_IN_QUERY_LIMIT
from classroom_app.core.errors import NotFoundError

logger = logging.getLogger(__name__)

DOCUMENT_ID = "__id__"
_SUPPORTED_OPS = ("==", "in", "array-contains")


@dataclass(frozen=True, slots=True)
class FieldFilter:
    """Single query predicate. ``field`` may be ``DOCUMENT_ID``."""

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _SUPPORTED_OPS:
            raise ValueError(f"Unsupported filter operator {self.op!r}.")
        if self.op == "in":
            if not isinstance(self.value, (list, tuple, set, frozenset)):
                raise ValueError("'in' filters need a collection of values.")
            if len(self.value) > ID_IN_QUERY_LIMIT:
                raise ValueError(
                    f"'in' filters accept at most {ID_IN_QUERY_LIMIT} values, got {len(self.value)}."
                )


@dataclass(frozen=True, slots=True, init=False)
class ArrayUnion:
    """Update value: append each element not already present."""

    values: tuple[Any, ...]

    def __init__(self, *values: Any) -> None:
        object.__setattr__(self, "values", tuple(values))


@dataclass(frozen=True, slots=True, init=False)
class ArrayRemove:
    """Update value: drop every occurrence of each element."""

    values: tuple[Any, ...]

    def __init__(self, *values: Any) -> None:
        object.__setattr__(self, "values", tuple(values))


@dataclass(slots=True)
class DocumentSnapshot:
    id: str
    data: dict[str, Any]


SnapshotCallback = Callable[[list[DocumentSnapshot]], None]
Unsubscribe = Callable[[], None]


class DocumentStore(Protocol):
    """Operations the repositories need from the document database."""

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None: ...

    def query(self, collection: str, filters: Sequence[FieldFilter] = ()) -> list[DocumentSnapshot]: ...

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    def update(self, collection: str, doc_id: str, changes: dict[str, Any]) -> None: ...

    def add(self, collection: str, data: dict[str, Any]) -> str: ...

    def delete(self, collection: str, doc_id: str) -> None: ...

    def subscribe(
        self,
        collection: str,
        filters: Sequence[FieldFilter],
        callback: SnapshotCallback,
    ) -> Unsubscribe: ...

    def transaction(self) -> ContextManager[Any]: ...


@dataclass(slots=True)
class _Subscription:
    collection: str
    filters: tuple[FieldFilter, ...]
    callback: SnapshotCallback
    active: bool = True
    key: str = field(default_factory=lambda: uuid4().hex)


class InMemoryDocumentStore:
    """Thread-safe, process-local ``DocumentStore``.

    Every read returns deep copies so callers can mutate what they get back
    without touching stored state. Subscribers are notified while the store
    lock is held; once ``unsubscribe()`` returns the callback is never called
    again.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._subscriptions: dict[str, _Subscription] = {}

    # --- Reads ---

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        with self._lock:
            data = self._collections.get(collection, {}).get(doc_id)
            if data is None:
                return None
            return DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))

    def query(self, collection: str, filters: Sequence[FieldFilter] = ()) -> list[DocumentSnapshot]:
        with self._lock:
            documents = self._collections.get(collection, {})
            return [
                DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))
                for doc_id, data in documents.items()
                if all(_matches(doc_id, data, condition) for condition in filters)
            ]

    # --- Writes ---

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
            self._notify(collection)

    def update(self, collection: str, doc_id: str, changes: dict[str, Any]) -> None:
        with self._lock:
            current = self._collections.get(collection, {}).get(doc_id)
            if current is None:
                raise NotFoundError(f"No document {collection}/{doc_id} to update.")
            updated = copy.deepcopy(current)
            for path, value in changes.items():
                _apply_change(updated, path.split("."), value)
            self._collections[collection][doc_id] = updated
            self._notify(collection)

    def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid4().hex[:20]
        self.set(collection, doc_id, data)
        return doc_id

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            removed = self._collections.get(collection, {}).pop(doc_id, None)
            if removed is not None:
                self._notify(collection)

    @contextmanager
    def transaction(self) -> Iterator["InMemoryDocumentStore"]:
        """Hold the store lock so a read-then-write sequence runs atomically."""
        with self._lock:
            yield self

    # --- Live queries ---

    def subscribe(
        self,
        collection: str,
        filters: Sequence[FieldFilter],
        callback: SnapshotCallback,
    ) -> Unsubscribe:
        subscription = _Subscription(collection=collection, filters=tuple(filters), callback=callback)
        with self._lock:
            self._subscriptions[subscription.key] = subscription
            self._deliver(subscription)

        def unsubscribe() -> None:
            with self._lock:
                subscription.active = False
                self._subscriptions.pop(subscription.key, None)

        return unsubscribe

    def _notify(self, collection: str) -> None:
        for subscription in list(self._subscriptions.values()):
            if subscription.collection == collection:
                self._deliver(subscription)

    def _deliver(self, subscription: _Subscription) -> None:
        if not subscription.active:
            return
        snapshot = self.query(subscription.collection, subscription.filters)
        try:
            subscription.callback(snapshot)
        except Exception:
            # The write is already applied; listener errors are only logged.
            logger.exception("Subscriber on %s raised while handling a snapshot", subscription.collection)


def _matches(doc_id: str, data: dict[str, Any], condition: FieldFilter) -> bool:
    if condition.field == DOCUMENT_ID:
        value = doc_id
    else:
        value = data.get(condition.field)
    if condition.op == "==":
        return value == condition.value
    if condition.op == "in":
        return value in condition.value
    return isinstance(value, list) and condition.value in value


def _apply_change(target: dict[str, Any], path: list[str], value: Any) -> None:
    for key in path[:-1]:
        nested = target.get(key)
        if not isinstance(nested, dict):
            nested = {}
            target[key] = nested
        target = nested
    leaf = path[-1]
    if isinstance(value, ArrayUnion):
        existing = list(target.get(leaf) or [])
        for item in value.values:
            if item not in existing:
                existing.append(copy.deepcopy(item))
        target[leaf] = existing
    elif isinstance(value, ArrayRemove):
        target[leaf] = [item for item in (target.get(leaf) or []) if item not in value.values]
    else:
        target[leaf] = copy.deepcopy(value)
