"""
Record Store - Access Service
Hierarchical key/value storage on top of the `records` table.

Paths are slash separated ("accessTokens/est-001"); the last segment is the
record key and everything before it is the parent collection. Values are
JSON objects. transaction() is the only primitive that gives ordering
guarantees: it commits a read-modify-write only if the record's version has
not moved since it was read.
"""

import copy
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from access_service.errors import StoreUnavailable
from access_service.models.record import Record

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 25


def now_ms() -> int:
    """Current UTC time in epoch milliseconds, the store's timestamp unit."""
    return int(time.time() * 1000)


def split_path(path: str) -> Tuple[str, str]:
    segments = [s for s in (path or "").split("/") if s]
    if len(segments) < 2:
        raise ValueError(f"Record path needs a collection and a key: {path!r}")
    return "/".join(segments[:-1]), segments[-1]


@dataclass(frozen=True)
class TransactionResult:
    committed: bool
    snapshot: Optional[Dict[str, Any]]


class RecordStore:
    def __init__(self, db, max_retries: int = DEFAULT_MAX_RETRIES):
        self._db = db
        self.max_retries = max_retries

    @property
    def _session(self):
        return self._db.session

    # --- Reads ------------------------------------------------------------

    def get(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            return self._session.execute(
                select(Record.value).where(Record.path == path)
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreUnavailable(f"Could not read {path}") from exc

    def query(
        self,
        collection: str,
        equal_to: Optional[Tuple[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Tuple[str, Dict[str, Any]]]:
        """
        Children of `collection` as (key, value) pairs.
        equal_to=(child, value) keeps children whose string field matches.
        order_by sorts on a numeric child field, ties broken by key.
        """
        stmt = select(Record.key, Record.value).where(Record.parent == collection.strip("/"))

        if equal_to is not None:
            child, expected = equal_to
            stmt = stmt.where(Record.value[child].as_string() == str(expected))

        if order_by:
            field = Record.value[order_by].as_float()
            if descending:
                stmt = stmt.order_by(field.desc(), Record.key.desc())
            else:
                stmt = stmt.order_by(field.asc(), Record.key.asc())
        else:
            stmt = stmt.order_by(Record.key.asc())

        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            return [(row.key, row.value) for row in self._session.execute(stmt)]
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreUnavailable(f"Could not query {collection}") from exc

    def children(self, collection: str) -> List[Tuple[str, Dict[str, Any]]]:
        return self.query(collection)

    # --- Writes -----------------------------------------------------------

    def push(self, collection: str, value: Dict[str, Any]) -> str:
        """Append `value` under a freshly generated key and return the key."""
        parent = collection.strip("/")
        key = uuid.uuid4().hex
        try:
            self._session.add(Record(
                path=f"{parent}/{key}",
                parent=parent,
                key=key,
                value=value,
                version=1,
            ))
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreUnavailable(f"Could not append to {parent}") from exc
        return key

    def set(self, path: str, value: Dict[str, Any]) -> Dict[str, Any]:
        return self.transaction(path, lambda _current: value).snapshot

    def update(self, path: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Merge `fields` into the record at `path`, creating it if absent."""
        def merge(current):
            merged = dict(current or {})
            merged.update(fields)
            return merged

        return self.transaction(path, merge).snapshot

    def transaction(
        self,
        path: str,
        update_fn: Callable[[Optional[Dict[str, Any]]], Optional[Dict[str, Any]]],
    ) -> TransactionResult:
        """
        Atomic read-modify-write of one record.

        update_fn receives a copy of the current value (None when absent) and
        returns the value to store, or None to abort. It may run more than
        once when concurrent writers race, so it must not have side effects.
        A committed result carries the stored value; an aborted one carries
        the value update_fn last saw.
        """
        parent, key = split_path(path)
        session = self._session

        for attempt in range(1, self.max_retries + 1):
            try:
                row = session.execute(
                    select(Record.value, Record.version).where(Record.path == path)
                ).first()
                current = copy.deepcopy(row.value) if row is not None else None

                new_value = update_fn(copy.deepcopy(current))
                if new_value is None:
                    session.rollback()
                    return TransactionResult(committed=False, snapshot=current)

                if row is None:
                    session.add(Record(
                        path=path, parent=parent, key=key, value=new_value, version=1
                    ))
                    session.commit()
                    return TransactionResult(committed=True, snapshot=new_value)

                result = session.execute(
                    update(Record)
                    .where(Record.path == path, Record.version == row.version)
                    .values(value=new_value, version=row.version + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    session.commit()
                    return TransactionResult(committed=True, snapshot=new_value)
                session.rollback()

            except IntegrityError:
                # Another writer created the record first.
                session.rollback()
            except SQLAlchemyError as exc:
                session.rollback()
                raise StoreUnavailable(f"Transaction on {path} failed") from exc

            logger.debug("Transaction on %s lost a race (attempt %d), retrying", path, attempt)

        raise StoreUnavailable(
            f"Transaction on {path} did not settle after {self.max_retries} attempts"
        )
