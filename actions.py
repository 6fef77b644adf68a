"""
Write actions

Every write goes through ActionDispatcher.dispatch({"action": ..., ...}) and
comes back as an envelope: {"success": True, ...} or {"success": False,
"error": "..."}. Nothing raises past dispatch().
"""

import re
import time
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from config import Settings, get_settings
from database import RecordStore
from ids import iso_utc, make_id
from log import get_logger, log_action
from schemas import (
    BANNERS,
    CATEGORIES,
    COUPONS,
    ORDERS,
    PRODUCTS,
    USERS,
    Banner,
    Category,
    Coupon,
    Order,
    Product,
    User,
    dump_json,
)

logger = get_logger("actions")

INVALID_BODY = "Invalid request body."
INTERNAL_ERROR = "Internal error."
LOGIN_FAILED = "Incorrect email or password."
USER_NOT_FOUND = "User not found."

_EXPIRY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


class ActionError(Exception):
    """A business failure reported to the caller as {"success": False, "error": message}."""


class Action(str, Enum):
    ADD_PRODUCT = "addProduct"
    UPDATE_PRODUCT = "updateProduct"
    DELETE_PRODUCT = "deleteProduct"
    ADD_CATEGORY = "addCategory"
    DELETE_CATEGORY = "deleteCategory"
    ADD_BANNER = "addBanner"
    DELETE_BANNER = "deleteBanner"
    ADD_COUPON = "addCoupon"
    DELETE_COUPON = "deleteCoupon"
    VALIDATE_COUPON = "validateCoupon"
    REGISTER_USER = "registerUser"
    LOGIN_USER = "loginUser"
    UPDATE_USER = "updateUser"
    CHANGE_PASSWORD = "changePassword"
    GET_CART = "getCart"
    SAVE_CART = "saveCart"
    SAVE_ORDER = "saveOrder"
    GET_ORDERS = "getOrders"
    SAVE_ADDRESS = "saveAddress"
    REPLACE_ADDRESSES = "replaceAddresses"
    GET_ADDRESSES = "getAddresses"


def ok(**fields: Any) -> Dict[str, Any]:
    return {"success": True, **fields}


def fail(error: str, **fields: Any) -> Dict[str, Any]:
    return {"success": False, "error": error, **fields}


def coupon_expires_at(expiry: str, tz) -> Optional[datetime]:
    """End of the expiry day (23:59:59) in the store timezone, or None if there is no usable date."""
    match = _EXPIRY_RE.match(expiry or "")
    if not match:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return datetime(year, month, day, 23, 59, 59, tzinfo=tz)
    except ValueError:
        return None


def is_coupon_expired(coupon: Coupon, now: datetime) -> bool:
    expires = coupon_expires_at(coupon.expiry_date, now.tzinfo)
    return expires is not None and now > expires


def summarize_items(items: Any) -> str:
    if isinstance(items, list):
        parts = []
        for item in items:
            item = item if isinstance(item, dict) else {}
            parts.append(f"{item.get('name') or ''} x{item.get('quantity') or 1}")
        return ", ".join(parts)
    return "" if items is None else str(items)


# --------------------- Request models ---------------------

class ActionRequest(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        # null behaves like an absent field
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class ProductRequest(ActionRequest):
    id: str = ""
    name: str = ""
    description: str = ""
    price: Any = 0
    cover_image: str = ""
    gallery_images: str = ""
    category: str = ""
    video_urls: str = Field("", alias="videoURLs")

    def to_record(self) -> Product:
        return Product.model_validate(self.model_dump())


class IdRequest(ActionRequest):
    id: str = ""


class CategoryRequest(ActionRequest):
    category: str = ""


class BannerRequest(ActionRequest):
    id: str = ""
    image_url: str = ""
    active: Any = True
    sort_order: Any = 0
    title: str = ""


class CouponRequest(ActionRequest):
    code: str = ""
    discount: Any = 0
    active: Any = True
    expiry_date: str = ""
    minimum_amount: Any = 0


class CouponCodeRequest(ActionRequest):
    coupon_code: str = ""
    code: str = ""


class RegisterRequest(ActionRequest):
    name: str = ""
    email: str = ""
    password_hash: str = ""
    phone: str = ""


class LoginRequest(ActionRequest):
    email: str = ""
    password_hash: str = ""


class UserRequest(ActionRequest):
    user_id: str = ""


class UpdateUserRequest(UserRequest):
    name: Optional[str] = None
    phone: Optional[str] = None


class ChangePasswordRequest(UserRequest):
    current_hash: str = ""
    new_hash: str = ""


class SaveCartRequest(UserRequest):
    cart: Any = None


class OrderDetails(ActionRequest):
    items: Any = None
    total: Any = 0
    name: str = ""
    phone: str = ""
    address: str = ""


class SaveOrderRequest(UserRequest):
    order: OrderDetails = Field(default_factory=OrderDetails)


class SaveAddressRequest(UserRequest):
    address: Any = None


class ReplaceAddressesRequest(UserRequest):
    addresses: Any = None


# --------------------- Dispatcher ---------------------

Handler = Callable[["ActionDispatcher", Dict[str, Any]], Dict[str, Any]]
_HANDLERS: Dict[Action, Handler] = {}


def handles(action: Action) -> Callable[[Handler], Handler]:
    def register(func: Handler) -> Handler:
        if action in _HANDLERS:
            raise RuntimeError(f"Duplicate handler for {action.value}")
        _HANDLERS[action] = func
        return func
    return register


class ActionDispatcher:
    def __init__(
        self,
        store: RecordStore,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Callable[[str], str] = make_id,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock or (lambda: datetime.now(self.settings.timezone))
        self.new_id = id_factory

    def now(self) -> datetime:
        now = self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=self.settings.timezone)
        return now

    def dispatch(self, payload: Any) -> Dict[str, Any]:
        if not isinstance(payload, dict):
            return fail(INVALID_BODY)
        name = str(payload.get("action") or "").strip()
        try:
            action = Action(name)
        except ValueError:
            log_action(name, False, 0.0, "unknown action")
            return fail(f"Unknown action: {name}")

        start = time.monotonic()
        try:
            result = _HANDLERS[action](self, payload)
        except ActionError as e:
            result = fail(str(e))
        except ValidationError:
            result = fail(INVALID_BODY)
        except Exception:
            logger.exception("action_failed", extra={"data": {"action": name}})
            result = fail(INTERNAL_ERROR)
        log_action(name, result["success"], time.monotonic() - start, result.get("error"))
        return result

    def _user(self, user_id: str) -> User:
        user = self.store.find_row_by_key(USERS, user_id)
        if user is None:
            raise ActionError(USER_NOT_FOUND)
        return user

    # ----- Products -----

    @handles(Action.ADD_PRODUCT)
    def add_product(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.store.ensure_table(PRODUCTS)
        self.store.append(PRODUCTS, ProductRequest.model_validate(data).to_record())
        return ok()

    @handles(Action.UPDATE_PRODUCT)
    def update_product(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = ProductRequest.model_validate(data)
        if not self.store.replace_row(PRODUCTS, req.id, req.to_record()):
            raise ActionError("Product not found.")
        return ok()

    @handles(Action.DELETE_PRODUCT)
    def delete_product(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = IdRequest.model_validate(data)
        if not self.store.delete_row(PRODUCTS, req.id):
            raise ActionError("Product not found.")
        return ok()

    # ----- Categories / banners / coupons -----

    @handles(Action.ADD_CATEGORY)
    def add_category(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = CategoryRequest.model_validate(data)
        self.store.ensure_table(CATEGORIES)
        self.store.append(CATEGORIES, Category(name=req.category.strip()))
        return ok()

    @handles(Action.DELETE_CATEGORY)
    def delete_category(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = CategoryRequest.model_validate(data)
        if not self.store.has_table(CATEGORIES):
            raise ActionError("Sheet not found.")
        if not self.store.delete_row(CATEGORIES, req.category):
            raise ActionError("Category not found.")
        return ok()

    @handles(Action.ADD_BANNER)
    def add_banner(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = BannerRequest.model_validate(data)
        self.store.ensure_table(BANNERS)
        self.store.append(BANNERS, Banner(
            id=req.id,
            image_url=req.image_url,
            active=req.active is not False,
            sort_order=req.sort_order or 0,
            title=req.title,
        ))
        return ok()

    @handles(Action.DELETE_BANNER)
    def delete_banner(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = IdRequest.model_validate(data)
        if not self.store.has_table(BANNERS):
            raise ActionError("Sheet not found.")
        if not self.store.delete_row(BANNERS, req.id):
            raise ActionError("Banner not found.")
        return ok()

    @handles(Action.ADD_COUPON)
    def add_coupon(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = CouponRequest.model_validate(data)
        code = req.code.strip().upper()
        if not code:
            raise ActionError("Coupon code is required.")
        self.store.ensure_table(COUPONS)
        self.store.append(COUPONS, Coupon(
            code=code,
            discount=req.discount,
            active=req.active is not False,
            expiry_date=req.expiry_date,
            minimum_amount=req.minimum_amount,
        ))
        return ok()

    @handles(Action.DELETE_COUPON)
    def delete_coupon(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = CouponCodeRequest.model_validate(data)
        if not self.store.has_table(COUPONS):
            raise ActionError("Sheet not found.")
        if not self.store.delete_row(COUPONS, req.code or req.coupon_code):
            raise ActionError("Coupon not found.")
        return ok()

    @handles(Action.VALIDATE_COUPON)
    def validate_coupon(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not self.store.has_table(COUPONS):
            raise ActionError("No coupons available.")
        req = CouponCodeRequest.model_validate(data)
        code = (req.coupon_code or req.code).strip().upper()
        if not code:
            raise ActionError("Coupon code is required.")
        coupon = self.store.find_row_by_key(COUPONS, code)
        if coupon is None:
            raise ActionError("Invalid coupon code.")
        if not coupon.active:
            raise ActionError("This coupon is inactive.")
        if is_coupon_expired(coupon, self.now()):
            raise ActionError("This coupon has expired.")
        return ok(
            discount=coupon.discount,
            expiryDate=coupon.expiry_date,
            minimumAmount=coupon.minimum_amount,
        )

    # ----- Users -----

    @handles(Action.REGISTER_USER)
    def register_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = RegisterRequest.model_validate(data)
        email = req.email.lower().strip()
        name = req.name.strip()
        if not email or not req.password_hash or not name:
            raise ActionError("Missing required fields.")

        self.store.ensure_table(USERS)
        if self.store.find_first(USERS, lambda u: u.email.lower().strip() == email):
            raise ActionError("An account with this email already exists.")

        user_id = self.new_id(self.settings.user_id_prefix)
        self.store.append(USERS, User(
            user_id=user_id,
            name=name,
            email=email,
            password_hash=req.password_hash,
            phone=req.phone.strip(),
            created_at=iso_utc(self.now()),
            cart="[]",
            addresses="[]",
        ))
        return ok(userId=user_id)

    @handles(Action.LOGIN_USER)
    def login_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = LoginRequest.model_validate(data)
        email = req.email.lower().strip()
        self.store.ensure_table(USERS)
        # Same message whether the email is unknown or the hash is wrong
        user = self.store.find_first(
            USERS, lambda u: u.email.lower() == email and u.password_hash == req.password_hash
        )
        if user is None:
            raise ActionError(LOGIN_FAILED)
        return ok(user=user.summary())

    @handles(Action.UPDATE_USER)
    def update_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = UpdateUserRequest.model_validate(data)
        self.store.ensure_table(USERS)
        current = self._user(req.user_id)
        name = (req.name or "").strip() or current.name
        phone = (req.phone or "").strip() or current.phone
        self.store.update_row(USERS, req.user_id, name=name, phone=phone)
        return ok()

    @handles(Action.CHANGE_PASSWORD)
    def change_password(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = ChangePasswordRequest.model_validate(data)
        self.store.ensure_table(USERS)
        user = self._user(req.user_id)
        if user.password_hash != req.current_hash:
            raise ActionError("Current password is incorrect.")
        self.store.update_row(USERS, req.user_id, password_hash=req.new_hash)
        return ok()

    # ----- Cart -----

    @handles(Action.GET_CART)
    def get_cart(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = UserRequest.model_validate(data)
        self.store.ensure_table(USERS)
        user = self.store.find_row_by_key(USERS, req.user_id)
        return ok(cart=user.cart_items() if user else [])

    @handles(Action.SAVE_CART)
    def save_cart(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = SaveCartRequest.model_validate(data)
        self.store.ensure_table(USERS)
        self._user(req.user_id)
        encoded = dump_json(req.cart if isinstance(req.cart, list) else [])
        if len(encoded.encode("utf-8")) > self.settings.cart_max_bytes:
            raise ActionError("Cart is too large. Please remove some items.")
        self.store.update_row(USERS, req.user_id, cart=encoded)
        return ok()

    # ----- Orders -----

    @handles(Action.SAVE_ORDER)
    def save_order(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = SaveOrderRequest.model_validate(data)
        details = req.order
        self.store.ensure_table(ORDERS)
        order_id = self.new_id(self.settings.order_id_prefix)
        self.store.append(ORDERS, Order(
            order_id=order_id,
            user_id=req.user_id or "GUEST",
            date=self.now().strftime("%d/%m/%Y %H:%M"),
            items=summarize_items(details.items),
            total=details.total or 0,
            name=details.name,
            phone=details.phone,
            address=details.address,
            status="Pending",
        ))
        return ok(orderId=order_id)

    @handles(Action.GET_ORDERS)
    def get_orders(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = UserRequest.model_validate(data)
        self.store.ensure_table(ORDERS)
        orders = self.store.find_all(ORDERS, lambda o: o.user_id == req.user_id)
        # Newest first
        return ok(orders=[o.to_wire() for o in reversed(orders)])

    # ----- Addresses -----

    @handles(Action.SAVE_ADDRESS)
    def save_address(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = SaveAddressRequest.model_validate(data)
        self.store.ensure_table(USERS)
        user = self._user(req.user_id)
        updated: List[Any] = user.address_list() + [req.address]
        self.store.update_row(USERS, req.user_id, addresses=dump_json(updated))
        return ok(addresses=updated)

    @handles(Action.REPLACE_ADDRESSES)
    def replace_addresses(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = ReplaceAddressesRequest.model_validate(data)
        self.store.ensure_table(USERS)
        self._user(req.user_id)
        updated = req.addresses if isinstance(req.addresses, list) else []
        self.store.update_row(USERS, req.user_id, addresses=dump_json(updated))
        return ok(addresses=updated)

    @handles(Action.GET_ADDRESSES)
    def get_addresses(self, data: Dict[str, Any]) -> Dict[str, Any]:
        req = UserRequest.model_validate(data)
        self.store.ensure_table(USERS)
        user = self.store.find_row_by_key(USERS, req.user_id)
        return ok(addresses=user.address_list() if user else [])


_unhandled = [a.value for a in Action if a not in _HANDLERS]
if _unhandled:
    raise RuntimeError(f"Actions without a handler: {', '.join(_unhandled)}")
