import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import ValidationError

from cardscan.core.models import (
    ApiCard, BulkScanRequest, InventoryResponse, ScanRequest
)

logger = logging.getLogger(__name__)


@dataclass
class ApiReply:
    """
    Raw outcome of one HTTP round trip.

    ``status`` is None when the request never got an HTTP answer
    (connection refused, timeout, unreadable body).
    """
    status: Optional[int]
    data: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is not None and 200 <= self.status < 300

    @property
    def transport_failed(self) -> bool:
        return self.status is None


class ApiClient:
    """Async client for the card catalog/inventory service."""

    def __init__(self, base_url: str, auth=None, timeout: float = 15, session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip("/")
        self.auth = auth
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    @property
    def server_root(self) -> str:
        """Base URL without the /api/vN suffix, where /health lives."""
        root, sep, _ = self.base_url.partition("/api/")
        return root if sep else self.base_url

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
            self._owns_session = True
        return self._session

    async def _auth_headers(self) -> Dict[str, str]:
        if self.auth is None:
            return {}
        token = await self.auth.ensure_token()
        if not token:
            logger.warning("No auth token available, sending unauthenticated request")
            return {}
        return {"Authorization": f"Bearer {token}"}

    async def _request(self, method: str, url: str, json: Any = None, params: Optional[dict] = None,
                       authenticated: bool = True) -> ApiReply:
        headers = await self._auth_headers() if authenticated else {}
        try:
            session = self._get_session()
            async with session.request(method, url, json=json, params=params, headers=headers) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = None

                if response.status == 401 and self.auth is not None:
                    logger.warning("API rejected auth token, clearing it")
                    self.auth.clear_auth_data()
                if not 200 <= response.status < 300:
                    logger.warning(f"API Error: {method} {url} -> {response.status}")
                return ApiReply(status=response.status, data=data)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Transport error on {method} {url}: {e!r}")
            return ApiReply(status=None, error=str(e) or type(e).__name__)

    async def scan_card(self, request: ScanRequest) -> ApiReply:
        return await self._request("POST", f"{self.base_url}/cards/scan", json=request.payload())

    async def scan_bulk(self, requests: List[ScanRequest]) -> ApiReply:
        body = BulkScanRequest(scans=list(requests)).payload()
        return await self._request("POST", f"{self.base_url}/cards/scan/bulk", json=body)

    async def get_inventory(self) -> Optional[InventoryResponse]:
        reply = await self._request("GET", f"{self.base_url}/inventory")
        if not reply.ok or not isinstance(reply.data, dict):
            return None
        try:
            return InventoryResponse.model_validate(reply.data)
        except ValidationError as e:
            logger.error(f"Malformed inventory response: {e}")
            return None

    async def get_card(self, card_id: str) -> Optional[ApiCard]:
        reply = await self._request("GET", f"{self.base_url}/cards", params={"id": card_id})
        if not reply.ok or not isinstance(reply.data, dict):
            return None
        try:
            return ApiCard.model_validate(reply.data)
        except ValidationError as e:
            logger.error(f"Malformed card response for {card_id}: {e}")
            return None

    async def health(self) -> bool:
        reply = await self._request("GET", f"{self.server_root}/health", authenticated=False)
        return reply.ok

    async def close(self):
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
