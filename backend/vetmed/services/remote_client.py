"""
HTTP client for the VetMed API, used by the offline queue to replay writes.
Failures are split into transient (retry later) and permanent (drop).
"""
import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from ..core.config import settings
from ..schemas import InventoryInUseRequest, InventoryQuantityChange, RecordAdministrationRequest

logger = logging.getLogger(__name__)

# 4xx codes that mean "try again later" rather than "never"
TRANSIENT_STATUS_CODES = {408, 429}


class RemoteCallError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientRemoteError(RemoteCallError):
    """Network failure, timeout, rate limit or server error."""


class PermanentRemoteError(RemoteCallError):
    """The server rejected the request; replaying it will not help."""


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return str(body)[:200]


class VetMedApiClient:
    """Async client for the household write endpoints."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.token = token
        self.timeout = timeout if timeout is not None else settings.API_TIMEOUT
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "VetMedApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _send(self, method: str, path: str, body: BaseModel) -> Any:
        try:
            resp = await self._get_client().request(method, path, json=body.model_dump(mode="json"))
        except httpx.TransportError as exc:
            raise TransientRemoteError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code >= 500 or resp.status_code in TRANSIENT_STATUS_CODES:
            raise TransientRemoteError(
                f"{method} {path} returned {resp.status_code}: {_error_detail(resp)}",
                status_code=resp.status_code,
            )
        if resp.status_code >= 400:
            raise PermanentRemoteError(
                f"{method} {path} rejected with {resp.status_code}: {_error_detail(resp)}",
                status_code=resp.status_code,
            )
        logger.debug("%s %s -> %d", method, path, resp.status_code)
        return resp.json() if resp.content else None

    async def create_administration(self, req: RecordAdministrationRequest) -> Any:
        return await self._send("POST", "/administrations", req)

    async def update_inventory_quantity(self, item_id: str, change: InventoryQuantityChange) -> Any:
        return await self._send("PATCH", f"/inventory/{item_id}/quantity", change)

    async def mark_inventory_in_use(self, item_id: str, req: InventoryInUseRequest) -> Any:
        return await self._send("POST", f"/inventory/{item_id}/in-use", req)
