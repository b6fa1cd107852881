"""Database models for the Tesla agent."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, LargeBinary, String

from tesla_agent.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VehicleDataRecord(Base):
    """One stored ``vehicle_data`` snapshot, kept verbatim."""

    __tablename__ = "data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ts = Column(DateTime, nullable=False, index=True)  # vehicle_state.timestamp, UTC
    data = Column(LargeBinary, nullable=False)


class AuthRecord(Base):
    """Owner API tokens; the newest row is the current one."""

    __tablename__ = "authinfo"

    id = Column(Integer, primary_key=True, autoincrement=True)
    access_token = Column(String, nullable=False)
    refresh_token = Column(String, nullable=False, default="")
    expires_in = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=_utcnow, index=True)
