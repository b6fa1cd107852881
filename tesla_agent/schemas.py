"""Owner API auth payloads (Pydantic v2) and credential value."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, Field


class AuthResponse(BaseModel):
    """Token response of ``POST /oauth/token``."""

    access_token: str = Field(..., description="Bearer token for API calls")
    expires_in: int = Field(..., description="Token lifetime in seconds")
    refresh_token: str = Field(default="", description="Refresh token")

    model_config = {"extra": "ignore"}


@dataclass(frozen=True)
class AuthInfo:
    """Credentials for one owner API call.

    Only ``bearer_token`` is needed to read vehicle data; the remaining
    fields are used by the password-grant login.
    """

    bearer_token: str = ""
    client_id: str = ""
    client_secret: str = ""
    email: str = ""
    password: str = ""

    @classmethod
    def from_token(cls, token: str) -> AuthInfo:
        return cls(bearer_token=token)

    def __repr__(self) -> str:
        token = "***" if self.bearer_token else ""
        return f"AuthInfo(bearer_token={token!r}, email={self.email!r})"
