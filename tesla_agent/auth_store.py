"""Credential provider backed by the ``authinfo`` table.

Tokens are renewed out of band (``tesla-agent login`` or another
process writing the table); the gatherer asks for credentials on every
poll and always gets the newest stored token.
"""

from __future__ import annotations

import asyncio

import structlog
from sqlalchemy.exc import SQLAlchemyError

from tesla_agent.db.base import Base
from tesla_agent.db.models import AuthRecord
from tesla_agent.db.session import make_engine, make_session_factory
from tesla_agent.exceptions import ConfigError, StorageError
from tesla_agent.schemas import AuthInfo, AuthResponse
from tesla_agent.source import CredentialProvider

logger = structlog.get_logger(__name__)


class AuthStore(CredentialProvider):
    """Reads and writes owner API tokens in the agent's SQLite file."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._engine = make_engine(db_path)
        self._session_factory = make_session_factory(self._engine)

    def ensure_schema(self) -> None:
        try:
            Base.metadata.create_all(self._engine, tables=[AuthRecord.__table__])
        except SQLAlchemyError as exc:
            raise StorageError(f"Schema setup failed for {self._db_path}: {exc}") from exc

    def load_auth(self) -> AuthResponse:
        """Return the newest stored token.

        Raises:
            ConfigError: no token has been stored yet.
            StorageError: the table could not be read.
        """
        try:
            with self._session_factory() as db:
                record = (
                    db.query(AuthRecord)
                    .order_by(AuthRecord.created_at.desc(), AuthRecord.id.desc())
                    .first()
                )
                if record is None:
                    raise ConfigError(
                        f"No auth token stored in {self._db_path}; run 'tesla-agent login'"
                    )
                return AuthResponse(
                    access_token=record.access_token,
                    expires_in=record.expires_in,
                    refresh_token=record.refresh_token or "",
                )
        except SQLAlchemyError as exc:
            raise StorageError(f"Reading auth from {self._db_path} failed: {exc}") from exc

    def save_auth(self, auth: AuthResponse) -> None:
        """Store *auth* as the current token."""
        self.ensure_schema()
        try:
            with self._session_factory() as db:
                db.add(
                    AuthRecord(
                        access_token=auth.access_token,
                        refresh_token=auth.refresh_token,
                        expires_in=auth.expires_in,
                    )
                )
                db.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Saving auth to {self._db_path} failed: {exc}") from exc
        logger.info("auth_saved", db_path=self._db_path, expires_in=auth.expires_in)

    async def current_credentials(self) -> AuthInfo:
        auth = await asyncio.to_thread(self.load_auth)
        return AuthInfo.from_token(auth.access_token)

    def close(self) -> None:
        self._engine.dispose()
