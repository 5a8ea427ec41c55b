"""
Record store used by the scan simulator and the threat workflow.

The simulator only ever talks to a ``RecordStore``: create / update / get /
select / count over four logical tables, scoped by an owner filter the caller
supplies. ``SqlRecordStore`` is the production implementation on top of the
Flask-SQLAlchemy session. Every database failure is rolled back and surfaced
as ``PersistenceError`` so the callers never see driver exceptions.
"""
from __future__ import annotations
import enum
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Type

from sqlalchemy import asc, desc, func, select, update as sa_update
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from account.models import Profile
from scanner.errors import PersistenceError, ValidationError
from scanner.models import QuarantineEntry, Scan, Threat

Record = Dict[str, Any]

TABLES: Dict[str, Type[db.Model]] = {
    "profiles": Profile,
    "scans": Scan,
    "threats": Threat,
    "quarantine": QuarantineEntry,
}


def _plain(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    return value


def to_record(obj) -> Record:
    return {c.key: getattr(obj, c.key) for c in obj.__table__.columns}


def serialize(record: Optional[Record]) -> Optional[Record]:
    """JSON-friendly copy of a record (datetimes as ISO strings)."""
    if record is None:
        return None
    out = {}
    for k, v in record.items():
        out[k] = v.isoformat() if isinstance(v, (datetime, date)) else _plain(v)
    return out


class RecordStore:
    """Contract for the persistence collaborator."""

    def create(self, table: str, record: Record) -> Record:
        raise NotImplementedError

    def create_many(self, table: str, records: Iterable[Record]) -> List[Record]:
        raise NotImplementedError

    def update(self, table: str, match: Record, partial: Record) -> int:
        raise NotImplementedError

    def get(self, table: str, record_id: str) -> Optional[Record]:
        raise NotImplementedError

    def select(self, table: str, filters: Optional[Record] = None,
               order_by: Optional[str] = None, descending: bool = True) -> List[Record]:
        raise NotImplementedError

    def count(self, table: str, filters: Optional[Record] = None) -> int:
        raise NotImplementedError


class SqlRecordStore(RecordStore):
    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def _model(self, table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise ValidationError(f"Unknown table '{table}'", details={"allowed": sorted(TABLES)})

    def _column(self, model, name: str):
        col = model.__table__.columns.get(name)
        if col is None:
            raise ValidationError(f"Unknown field '{name}' on {model.__tablename__}")
        return col

    def _where(self, model, filters: Optional[Record]):
        return [self._column(model, k) == _plain(v) for k, v in (filters or {}).items()]

    def _build(self, model, record: Record):
        for key in record:
            self._column(model, key)
        return model(**{k: _plain(v) for k, v in record.items()})

    def _fail(self, action: str, table: str, exc: Exception):
        self.session.rollback()
        raise PersistenceError(
            f"Could not {action} {table}",
            details={"table": table, "reason": str(getattr(exc, "orig", exc))},
        ) from exc

    def create(self, table: str, record: Record) -> Record:
        model = self._model(table)
        obj = self._build(model, record)
        try:
            self.session.add(obj)
            self.session.commit()
        except SQLAlchemyError as e:
            self._fail("create", table, e)
        return to_record(obj)

    def create_many(self, table: str, records: Iterable[Record]) -> List[Record]:
        model = self._model(table)
        objs = [self._build(model, r) for r in records]
        try:
            self.session.add_all(objs)
            self.session.commit()
        except SQLAlchemyError as e:
            self._fail("create", table, e)
        return [to_record(o) for o in objs]

    def update(self, table: str, match: Record, partial: Record) -> int:
        model = self._model(table)
        if not match:
            raise ValidationError("Refusing to update without a filter")
        for key in partial:
            self._column(model, key)
        stmt = (
            sa_update(model)
            .where(*self._where(model, match))
            .values({k: _plain(v) for k, v in partial.items()})
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
            self.session.commit()
        except SQLAlchemyError as e:
            self._fail("update", table, e)
        return int(result.rowcount or 0)

    def get(self, table: str, record_id: str) -> Optional[Record]:
        model = self._model(table)
        try:
            obj = self.session.get(model, record_id, populate_existing=True)
        except SQLAlchemyError as e:
            self._fail("read", table, e)
        return to_record(obj) if obj is not None else None

    def select(self, table: str, filters: Optional[Record] = None,
               order_by: Optional[str] = None, descending: bool = True) -> List[Record]:
        model = self._model(table)
        stmt = select(model).where(*self._where(model, filters))
        if order_by:
            col = self._column(model, order_by)
            stmt = stmt.order_by(desc(col) if descending else asc(col))
        try:
            rows = self.session.execute(stmt.execution_options(populate_existing=True)).scalars().all()
        except SQLAlchemyError as e:
            self._fail("read", table, e)
        return [to_record(r) for r in rows]

    def count(self, table: str, filters: Optional[Record] = None) -> int:
        model = self._model(table)
        pk = list(model.__table__.primary_key.columns)[0]
        stmt = select(func.count(pk)).where(*self._where(model, filters))
        try:
            return int(self.session.execute(stmt).scalar() or 0)
        except SQLAlchemyError as e:
            self._fail("read", table, e)
