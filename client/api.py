import json
from typing import Any, Dict, Optional

import httpx

from log import get_logger

logger = get_logger("client.api")

NETWORK_ERROR = "Network error. Check your connection."


class StorefrontAPI:
    """Talks to the storefront endpoint. Every call resolves to an envelope."""

    def __init__(
        self,
        url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.url = url
        self._client = httpx.AsyncClient(transport=transport, timeout=timeout, follow_redirects=True)

    async def _send(self, label: str, method: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            res = await self._client.request(method, self.url, **kwargs)
            if not res.is_success:
                return {"success": False, "error": f"Server error {res.status_code}"}
            payload = res.json()
        except (httpx.HTTPError, ValueError):
            logger.warning("api_call_failed", extra={"data": {"action": label}}, exc_info=True)
            return {"success": False, "error": NETWORK_ERROR}
        if not isinstance(payload, dict):
            logger.warning("api_bad_payload", extra={"data": {"action": label, "type": type(payload).__name__}})
            return {"success": False, "error": NETWORK_ERROR}
        return payload

    async def call(self, action: str, **data: Any) -> Dict[str, Any]:
        body = json.dumps({"action": action, **data}, ensure_ascii=False)
        # text/plain keeps the request "simple" for browsers; the server parses the raw body
        return await self._send(action, "POST", content=body, headers={"Content-Type": "text/plain"})

    async def snapshot(self) -> Dict[str, Any]:
        """Products, categories, banners and advertised coupons, or an error envelope."""
        return await self._send("snapshot", "GET")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "StorefrontAPI":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
