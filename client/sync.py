"""
Cart synchronisation

Two independent operations:
- sync_on_login merges the device cart into the account's server cart once,
  when a user logs in
- push sends the device cart to the server, from a periodic task and from
  logout; failures are logged and otherwise ignored

The server copy is last-write-wins. Logging in on two devices without a
push in between keeps whichever cart was pushed last.
"""

import asyncio
import contextlib
from typing import Any, Dict, List, Optional

from client.api import StorefrontAPI
from client.cart import LocalCart, quantity_of
from client.session import SessionContext
from log import get_logger

logger = get_logger("client.sync")

DEFAULT_INTERVAL_SECONDS = 5 * 60


def merge_carts(server: List[Any], local: List[Any]) -> List[Dict[str, Any]]:
    """Server items first, then local ones; shared ids add their quantities."""
    merged = [dict(item) for item in server if isinstance(item, dict)]
    if local == server:
        # Already in sync: merging a list with itself must not double quantities
        return merged
    for item in local:
        if not isinstance(item, dict):
            continue
        for existing in merged:
            if str(existing.get("id")) == str(item.get("id")):
                existing["quantity"] = quantity_of(existing) + quantity_of(item)
                break
        else:
            merged.append(dict(item))
    return merged


class SyncEngine:
    def __init__(
        self,
        api: StorefrontAPI,
        session: SessionContext,
        cart: LocalCart,
        interval: float = DEFAULT_INTERVAL_SECONDS,
    ):
        self.api = api
        self.session = session
        self.cart = cart
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    async def sync_on_login(self, user_id: str) -> List[Dict[str, Any]]:
        local = self.cart.items()
        res = await self.api.call("getCart", userId=user_id)
        server = res["cart"] if res.get("success") and isinstance(res.get("cart"), list) else []
        merged = merge_carts(server, local)
        self.cart.save(merged)
        result = await self.api.call("saveCart", userId=user_id, cart=merged)
        logger.info("cart_merged", extra={"data": {
            "user_id": user_id,
            "server_items": len(server),
            "local_items": len(local),
            "merged_items": len(merged),
            "saved": bool(result.get("success")),
        }})
        return merged

    async def push(self) -> None:
        user_id = self.session.user_id()
        if not user_id:
            return
        try:
            result = await self.api.call("saveCart", userId=user_id, cart=self.cart.items())
        except Exception:
            logger.warning("cart_push_failed", extra={"data": {"user_id": user_id}}, exc_info=True)
            return
        if not result.get("success"):
            logger.warning("cart_push_rejected", extra={"data": {"user_id": user_id, "error": result.get("error")}})

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Begin periodic pushes on the running event loop."""
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self.session.is_logged_in():
                await self.push()
