"""httpx client for the Tesla owner API.

Features:
* Vehicle listing (display name -> ``id_s``).
* Raw ``vehicle_data`` fetch: the ``{"response": ...}`` envelope is
  stripped from the bytes without re-encoding the payload.
* Password-grant login used by ``tesla-agent login``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
import structlog

from tesla_agent import __version__
from tesla_agent.config import AgentSettings
from tesla_agent.exceptions import TeslaApiError, TeslaAuthError, TeslaTransportError
from tesla_agent.schemas import AuthInfo, AuthResponse
from tesla_agent.source import TelemetrySource
from tesla_agent.vehicle_data import VehicleData

logger = structlog.get_logger(__name__)

_AUTH_PATH = "oauth/token"
_VEHICLES_PATH = "api/1/vehicles"
_USER_AGENT = f"tesla-agent/{__version__}"

_ENVELOPE_PREFIX = b'{"response":'
_ENVELOPE_SUFFIX = b"}"


class TeslaClient(TelemetrySource):
    """Reads vehicle listings and telemetry from the owner API."""

    def __init__(
        self,
        settings: AgentSettings,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = settings.tesla_base_url.rstrip("/") + "/"
        self._client = client
        self._owns_client = client is None

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": _USER_AGENT},
                timeout=30.0,
            )

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> TeslaClient:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -- public API ---------------------------------------------------------

    async def authenticate(self, auth: AuthInfo) -> AuthResponse:
        """Exchange account credentials for a bearer token."""
        form = {
            "grant_type": "password",
            "client_id": auth.client_id,
            "client_secret": auth.client_secret,
            "email": auth.email,
            "password": auth.password,
        }
        response = await self._request("POST", _AUTH_PATH, data=form)
        try:
            return AuthResponse.model_validate(response.json())
        except ValueError as exc:
            raise TeslaApiError(
                f"Invalid token response: {exc}", endpoint=_AUTH_PATH
            ) from exc

    async def vehicles(self, auth: AuthInfo) -> Dict[str, str]:
        response = await self._request("GET", _VEHICLES_PATH, auth=auth)
        try:
            entries = response.json().get("response") or []
        except (ValueError, AttributeError) as exc:
            raise TeslaApiError(
                "Invalid vehicle listing", endpoint=_VEHICLES_PATH
            ) from exc

        result: Dict[str, str] = {}
        for entry in entries:
            name = entry.get("display_name")
            vid = entry.get("id_s")
            result[name if isinstance(name, str) else ""] = (
                vid if isinstance(vid, str) else ""
            )
        logger.debug("vehicles_listed", count=len(result))
        return result

    async def vehicle_data(self, auth: AuthInfo, vehicle_id: str) -> VehicleData:
        path = f"{_VEHICLES_PATH}/{vehicle_id}/vehicle_data"
        response = await self._request("GET", path, auth=auth)
        return _strip_envelope(response.content, path)

    # -- internal -----------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        auth: Optional[AuthInfo] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        if self._client is None:
            raise RuntimeError("TeslaClient.start() must be called before requests")

        headers = {"User-Agent": _USER_AGENT}
        if auth is not None:
            headers["Authorization"] = f"Bearer {auth.bearer_token}"

        try:
            response = await self._client.request(
                method, self._base_url + path, headers=headers, **kwargs
            )
        except httpx.RequestError as exc:
            raise TeslaTransportError(
                f"{method} {path} failed: {exc}", endpoint=path
            ) from exc

        if response.status_code in (401, 403):
            raise TeslaAuthError(
                f"{method} {path} rejected credentials",
                status_code=response.status_code,
                endpoint=path,
            )
        if response.status_code >= 400:
            raise TeslaApiError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
                endpoint=path,
            )
        return response


def _strip_envelope(body: bytes, endpoint: str) -> VehicleData:
    """Return the value of the top-level ``response`` key as raw bytes."""
    trimmed = body.strip()
    if not (trimmed.startswith(_ENVELOPE_PREFIX) and trimmed.endswith(_ENVELOPE_SUFFIX)):
        raise TeslaApiError("Unexpected vehicle_data envelope", endpoint=endpoint)
    return trimmed[len(_ENVELOPE_PREFIX):-len(_ENVELOPE_SUFFIX)]
