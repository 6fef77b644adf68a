"""
Account facade

Registration, login/logout, profile, orders and addresses from the client's
side. Passwords never leave the client in clear: the server stores and
compares the SHA-256 hex digest computed here.
"""

import hashlib
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel, EmailStr, Field, ValidationError

from client.api import StorefrontAPI
from client.cart import LocalCart, Wishlist
from client.session import SessionContext, make_token
from client.storage import DurableStore, EphemeralStore
from client.sync import SyncEngine
from config import Settings, get_settings
from log import get_logger

logger = get_logger("client.account")

NOT_LOGGED_IN = "Not logged in."


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def safe_redirect(target: Optional[str], fallback: str) -> str:
    """Only follow same-site relative redirect targets."""
    raw = target or ""
    if raw and not raw.startswith("http") and not raw.startswith("//"):
        return raw
    return fallback


class RegistrationForm(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    phone: str = ""
    password: str = Field(min_length=6)


_FORM_ERRORS = {
    "name": "Full name is required.",
    "email": "Enter a valid email address.",
    "password": "Password must be at least 6 characters.",
}


class AccountClient:
    def __init__(
        self,
        api: StorefrontAPI,
        session: SessionContext,
        cart: LocalCart,
        sync: SyncEngine,
        wishlist: Optional[Wishlist] = None,
        on_logout: Optional[Callable[[], Any]] = None,
    ):
        self.api = api
        self.session = session
        self.cart = cart
        self.sync = sync
        self.wishlist = wishlist or Wishlist(session.durable)
        self.on_logout = on_logout

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_logout: Optional[Callable[[], Any]] = None,
    ) -> "AccountClient":
        settings = settings or get_settings()
        durable = DurableStore(settings.client_state_path)
        session = SessionContext(durable, EphemeralStore())
        cart = LocalCart(durable)
        api = StorefrontAPI(settings.api_url, transport=transport)
        sync = SyncEngine(api, session, cart, interval=settings.cart_sync_interval_seconds)
        return cls(api, session, cart, sync, Wishlist(durable), on_logout)

    # ----- Auth -----

    async def register(self, name: str, email: str, password: str, phone: str = "") -> Dict[str, Any]:
        name = (name or "").strip()
        email = (email or "").strip().lower()
        phone = (phone or "").strip()
        try:
            RegistrationForm(name=name, email=email, phone=phone, password=password or "")
        except ValidationError as e:
            field = str(e.errors()[0]["loc"][0])
            return {"success": False, "error": _FORM_ERRORS.get(field, "Invalid registration details.")}

        result = await self.api.call(
            "registerUser", name=name, email=email, phone=phone, passwordHash=sha256_hex(password)
        )
        if result.get("success"):
            user = {"userId": result["userId"], "name": name, "email": email, "phone": phone}
            self.session.start(user, make_token(result["userId"]), remember_me=True)
        return result

    async def login(self, email: str, password: str, remember_me: bool = True) -> Dict[str, Any]:
        email = (email or "").strip().lower()
        if not email or not password:
            return {"success": False, "error": "Email and password are required."}

        result = await self.api.call("loginUser", email=email, passwordHash=sha256_hex(password))
        if result.get("success"):
            user = result["user"]
            self.session.start(user, make_token(user["userId"]), remember_me=remember_me)
            try:
                await self.sync.sync_on_login(user["userId"])
            except Exception:
                logger.warning("login_cart_sync_failed", extra={"data": {"user_id": user["userId"]}}, exc_info=True)
        return result

    async def logout(self) -> None:
        # The final push must finish before the session is gone
        if self.session.get_user():
            await self.sync.push()
        self.session.clear()
        if self.on_logout is not None:
            self.on_logout()

    # ----- Profile -----

    async def update_profile(self, name: str, phone: str = "") -> Dict[str, Any]:
        user = self.session.get_user()
        if not user:
            return {"success": False, "error": NOT_LOGGED_IN}
        name = (name or "").strip()
        phone = (phone or "").strip()
        if not name:
            return {"success": False, "error": "Name is required."}

        result = await self.api.call("updateUser", userId=user["userId"], name=name, phone=phone)
        if result.get("success"):
            self.session.update_user({**user, "name": name, "phone": phone or user.get("phone", "")})
        return result

    async def change_password(self, current_password: str, new_password: str) -> Dict[str, Any]:
        user = self.session.get_user()
        if not user:
            return {"success": False, "error": NOT_LOGGED_IN}
        if not current_password:
            return {"success": False, "error": "Current password is required."}
        if not new_password or len(new_password) < 6:
            return {"success": False, "error": "New password must be at least 6 characters."}
        if current_password == new_password:
            return {"success": False, "error": "New password must be different."}
        return await self.api.call(
            "changePassword",
            userId=user["userId"],
            currentHash=sha256_hex(current_password),
            newHash=sha256_hex(new_password),
        )

    # ----- Orders -----

    async def save_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        return await self.api.call("saveOrder", userId=self.session.user_id() or "GUEST", order=order)

    async def get_orders(self) -> Dict[str, Any]:
        user_id = self.session.user_id()
        if not user_id:
            return {"success": False, "orders": []}
        return await self.api.call("getOrders", userId=user_id)

    # ----- Addresses -----

    async def save_address(self, address: Any) -> Dict[str, Any]:
        user_id = self.session.user_id()
        if not user_id:
            return {"success": False, "error": NOT_LOGGED_IN}
        return await self.api.call("saveAddress", userId=user_id, address=address)

    async def replace_addresses(self, addresses: List[Any]) -> Dict[str, Any]:
        user_id = self.session.user_id()
        if not user_id:
            return {"success": False, "error": NOT_LOGGED_IN}
        return await self.api.call("replaceAddresses", userId=user_id, addresses=addresses)

    async def get_addresses(self) -> Dict[str, Any]:
        user_id = self.session.user_id()
        if not user_id:
            return {"success": False, "addresses": []}
        return await self.api.call("getAddresses", userId=user_id)
