"""Shared state store: a push-based key/value tree.

Values live under slash-separated paths (``rooms/ABCD/players/u1``). The
first two segments name a *document* (``collection/key``); anything deeper
addresses a field inside that document. Backends only have to load, save
and list documents; path handling, merging and change notification live in
:class:`SharedStateStore`.

Subscribers are told about writes to their own path, its ancestors and its
descendants, and always receive the full value at the path they
subscribed to, starting with the current value at subscribe time.
"""
import copy
import itertools
import json
import logging
import queue
import threading
import time
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from taprace.errors import StoreUnavailable

logger = logging.getLogger(__name__)

Callback = Callable[[Any], None]

_CURRENT = object()


def split_path(path: str) -> List[str]:
    parts = [p for p in (path or '').strip('/').split('/') if p]
    if not parts:
        raise ValueError('Store path must not be empty')
    return parts


def _related(a: List[str], b: List[str]) -> bool:
    n = min(len(a), len(b))
    return a[:n] == b[:n]


class SharedStateStore:
    def __init__(self):
        self._lock = threading.RLock()
        self._subscribers: Dict[int, Tuple[List[str], Callback]] = {}
        self._ids = itertools.count(1)
        self._holding = False
        self._pending: List[Tuple[int, Any]] = []

    # ---- backend hooks ----

    def _get_doc(self, collection: str, key: str) -> Optional[Any]:
        raise NotImplementedError

    def _put_doc(self, collection: str, key: str, value: Optional[Any]) -> None:
        raise NotImplementedError

    def _list_docs(self, collection: str) -> Dict[str, Any]:
        raise NotImplementedError

    def _commit(self) -> None:
        pass

    # ---- reads ----

    def read(self, path: str) -> Optional[Any]:
        """Return a copy of the value at *path*, or None when absent."""
        parts = split_path(path)
        with self._lock:
            return copy.deepcopy(self._read_parts(parts))

    def _read_parts(self, parts: List[str]) -> Optional[Any]:
        if len(parts) == 1:
            return self._list_docs(parts[0]) or None
        node = self._get_doc(parts[0], parts[1])
        for part in parts[2:]:
            if not isinstance(node, dict):
                return None
            node = node.get(part)
        return node

    # ---- writes ----

    def write(self, path: str, value: Any) -> None:
        """Overwrite the value at *path*. Writing None removes it."""
        parts = split_path(path)
        with self._lock:
            self._write_parts(parts, copy.deepcopy(value))
            self._commit()
            deliveries = self._collect(parts)
        self._deliver(deliveries)

    def merge(self, path: str, partial: Dict[str, Any]) -> None:
        """Shallow-merge *partial* into the dict at *path*.

        Keys mapped to None are removed; sibling keys are left alone.
        """
        parts = split_path(path)
        with self._lock:
            if len(parts) == 1:
                for key, value in partial.items():
                    self._put_doc(parts[0], key, copy.deepcopy(value))
            else:
                current = self._read_parts(parts)
                current = copy.deepcopy(current) if isinstance(current, dict) else {}
                for key, value in partial.items():
                    if value is None:
                        current.pop(key, None)
                    else:
                        current[key] = copy.deepcopy(value)
                self._write_parts(parts, current or None)
            self._commit()
            deliveries = self._collect(parts)
        self._deliver(deliveries)

    def _write_parts(self, parts: List[str], value: Any) -> None:
        collection = parts[0]
        if len(parts) == 1:
            for key in list(self._list_docs(collection)):
                self._put_doc(collection, key, None)
            for key, child in (value or {}).items():
                self._put_doc(collection, key, child)
            return
        key = parts[1]
        if len(parts) == 2:
            self._put_doc(collection, key, value)
            return
        doc = self._get_doc(collection, key)
        doc = copy.deepcopy(doc) if isinstance(doc, dict) else {}
        node = doc
        for part in parts[2:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                if value is None:
                    return
                child = {}
                node[part] = child
            node = child
        if value is None:
            node.pop(parts[-1], None)
        else:
            node[parts[-1]] = value
        self._put_doc(collection, key, doc or None)

    # ---- subscriptions ----

    def subscribe(self, path: str, callback: Callback) -> Callable[[], None]:
        """Call *callback* with the value at *path* now and on every change.

        Returns a function that cancels the subscription.
        """
        parts = split_path(path)
        with self._lock:
            sub_id = next(self._ids)
            self._subscribers[sub_id] = (parts, callback)
            initial = copy.deepcopy(self._read_parts(parts))
            held = self._holding
            if held:
                self._pending.append((sub_id, initial))
        logger.debug('[subscribe] id=%s path=%s', sub_id, path)
        if not held:
            callback(initial)

        def unsubscribe():
            with self._lock:
                if self._subscribers.pop(sub_id, None) is not None:
                    logger.debug('[unsubscribe] id=%s path=%s', sub_id, path)

        return unsubscribe

    def stream(self, path: str, timeout: Optional[float] = None) -> Iterator[Any]:
        """Yield the value at *path* on every change until the generator is closed."""
        updates: 'queue.Queue[Any]' = queue.Queue()
        unsubscribe = self.subscribe(path, updates.put)
        try:
            while True:
                yield updates.get(timeout=timeout)
        finally:
            unsubscribe()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def hold(self) -> None:
        """Queue notifications, including initial ones, until :meth:`flush`."""
        with self._lock:
            self._holding = True

    def flush(self) -> None:
        """Deliver queued notifications and resume immediate delivery."""
        with self._lock:
            self._holding = False
            pending, self._pending = self._pending, []
        self._deliver(pending)

    def _collect(self, parts: List[str]) -> List[Tuple[int, Any]]:
        sub_ids = [sub_id for sub_id, (sub_parts, _) in self._subscribers.items()
                   if _related(sub_parts, parts)]
        if self._holding:
            # held notifications carry the value as it was at write time
            self._pending.extend(
                (sub_id, copy.deepcopy(self._read_parts(self._subscribers[sub_id][0])))
                for sub_id in sub_ids
            )
            return []
        return [(sub_id, _CURRENT) for sub_id in sub_ids]

    def _deliver(self, deliveries: List[Tuple[int, Any]]) -> None:
        for sub_id, value in deliveries:
            with self._lock:
                entry = self._subscribers.get(sub_id)
                if entry is None:
                    continue
                if value is _CURRENT:
                    # a callback may have written again; send what is there now
                    value = copy.deepcopy(self._read_parts(entry[0]))
            entry[1](value)


class MemoryStore(SharedStateStore):
    """Store kept in a plain dict; used for tests and single-process dev."""

    def __init__(self):
        super().__init__()
        self._docs: Dict[str, Dict[str, Any]] = {}

    def _get_doc(self, collection, key):
        return self._docs.get(collection, {}).get(key)

    def _put_doc(self, collection, key, value):
        if value is None:
            self._docs.get(collection, {}).pop(key, None)
        else:
            self._docs.setdefault(collection, {})[key] = value

    def _list_docs(self, collection):
        return dict(self._docs.get(collection, {}))


class SqlStore(SharedStateStore):
    """Store persisted as one JSON ``Document`` row per ``collection/key``.

    Must be used inside an application context.
    """

    def __init__(self, db):
        super().__init__()
        self.db = db

    @property
    def _model(self):
        from taprace.models import Document
        return Document

    def _get_doc(self, collection, key):
        try:
            row = self._model.query.filter_by(collection=collection, key=key).first()
        except SQLAlchemyError as exc:
            self._fail('read', f'{collection}/{key}', exc)
        return json.loads(row.body) if row else None

    def _put_doc(self, collection, key, value):
        Document = self._model
        try:
            row = Document.query.filter_by(collection=collection, key=key).first()
            if value is None:
                if row:
                    self.db.session.delete(row)
                return
            if row is None:
                row = Document(collection=collection, key=key)
            row.body = json.dumps(value)
            row.updated_at = time.time()
            self.db.session.add(row)
        except SQLAlchemyError as exc:
            self._fail('write', f'{collection}/{key}', exc)

    def _list_docs(self, collection):
        try:
            rows = self._model.query.filter_by(collection=collection).all()
        except SQLAlchemyError as exc:
            self._fail('read', collection, exc)
        return {row.key: json.loads(row.body) for row in rows}

    def _commit(self):
        try:
            self.db.session.commit()
        except SQLAlchemyError as exc:
            self._fail('commit', '-', exc)

    def _fail(self, op, path, exc):
        self.db.session.rollback()
        logger.error('[store-error] op=%s path=%s error=%s', op, path, exc)
        raise StoreUnavailable() from exc
