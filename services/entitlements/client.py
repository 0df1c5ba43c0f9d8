from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from shared.config.system import EntitlementSettings
from shared.logging.logger import get_logger

log = get_logger("services.entitlements.client")


class EntitlementError(Exception):
    """Non-2xx or non-JSON response from the entitlement service."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EntitlementClient:
    """
    Thin async client for the entitlement (DRM) REST service.

    Both listings answer ``{"results": [...]}``.
    """

    def __init__(
        self,
        settings: EntitlementSettings,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings
        self._client = client or httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.timeout_seconds,
        )
        self._client_owned = client is None

    # ------------------------------------------------------------------

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Accept": "application/json"}
        if self._settings.api_key:
            headers["X-API-KEY"] = self._settings.api_key

        resp = await self._client.get(path, params=params, headers=headers)

        if resp.status_code < 200 or resp.status_code >= 300:
            body = resp.text[:300] if resp.content else ""
            raise EntitlementError(
                f"GET {path} failed: {resp.status_code} {body}".rstrip(),
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise EntitlementError(f"GET {path} returned non-JSON body", resp.status_code) from e

        if not isinstance(data, dict):
            return {"results": data if isinstance(data, list) else []}
        return data

    async def fetch_customer_services(self, customer_id: str, *, page: int = 1) -> Dict[str, Any]:
        if not customer_id:
            raise ValueError("customer_id required")
        path = self._settings.customer_services_path.format(
            customer_id=quote(str(customer_id), safe="")
        )
        return await self._get(
            path, {"page": page, "limit": self._settings.customer_page_limit}
        )

    async def fetch_service_live_channels(self, service_id: str, *, page: int = 1) -> Dict[str, Any]:
        if not service_id:
            raise ValueError("service_id required")
        path = self._settings.live_channels_path.format(
            service_id=quote(str(service_id), safe="")
        )
        return await self._get(
            path, {"page": page, "limit": self._settings.channel_page_limit}
        )

    async def aclose(self) -> None:
        if self._client_owned:
            await self._client.aclose()
