"""Durable snapshot store backed by SQLite.

All methods are blocking; async callers run them through
``asyncio.to_thread``.  Every SQLAlchemy failure surfaces as
``StorageError``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Tuple

import structlog
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from tesla_agent.db.base import Base
from tesla_agent.db.models import VehicleDataRecord
from tesla_agent.db.session import make_engine, make_session_factory
from tesla_agent.exceptions import StorageError
from tesla_agent.vehicle_data import VehicleData, snapshot_timestamp

logger = structlog.get_logger(__name__)


class DataStore:
    """Append-only log of raw ``vehicle_data`` snapshots."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._engine = make_engine(db_path)
        self._session_factory = make_session_factory(self._engine)

    @property
    def db_path(self) -> str:
        return self._db_path

    def ensure_schema(self) -> None:
        """Create missing tables; safe to call on every startup."""
        try:
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise StorageError(f"Schema setup failed for {self._db_path}: {exc}") from exc
        logger.debug("schema_ready", db_path=self._db_path)

    def append(self, data: VehicleData) -> datetime:
        """Store *data* keyed by its vehicle timestamp; return that timestamp.

        Raises:
            InvalidSnapshotError: *data* carries no timestamp.
            StorageError: the write failed.
        """
        ts = snapshot_timestamp(data)
        record = VehicleDataRecord(ts=ts.replace(tzinfo=None), data=bytes(data))
        try:
            with self._session_factory() as db:
                db.add(record)
                db.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Insert into {self._db_path} failed: {exc}") from exc
        return ts

    def count(self) -> int:
        """Return the number of stored snapshots."""
        try:
            with self._session_factory() as db:
                return db.query(func.count(VehicleDataRecord.id)).scalar() or 0
        except SQLAlchemyError as exc:
            raise StorageError(f"Count on {self._db_path} failed: {exc}") from exc

    def latest(self) -> Optional[Tuple[datetime, VehicleData]]:
        """Return ``(ts, data)`` of the newest snapshot, or ``None``."""
        try:
            with self._session_factory() as db:
                record = (
                    db.query(VehicleDataRecord)
                    .order_by(VehicleDataRecord.ts.desc(), VehicleDataRecord.id.desc())
                    .first()
                )
                if record is None:
                    return None
                return record.ts, bytes(record.data)
        except SQLAlchemyError as exc:
            raise StorageError(f"Read from {self._db_path} failed: {exc}") from exc

    def close(self) -> None:
        """Release pooled connections."""
        self._engine.dispose()
