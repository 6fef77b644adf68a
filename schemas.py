"""
Record Schemas

Each table of the record store is a fixed, ordered column layout. The layout
is declared here once as a Pydantic model: field order is column order, and
the first field is the row key.

- Products   ID, Name, Description, Price, CoverImage, GalleryImages, Category, VideoURLs
- Categories Name
- Banners    ID, ImageUrl, Active, SortOrder, Title
- Coupons    Code, DiscountPercent, Active, ExpiryDate, MinimumAmount
- Users      UserID, Name, Email, PasswordHash, Phone, CreatedAt, Cart, Addresses
- Orders     OrderID, UserID, Date, Items, Total, Name, Phone, Address, Status

Wire names are camelCase (userId, coverImage, ...); Python names are snake_case.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Sequence, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def parse_json_list(raw: Any) -> List[Any]:
    """Decode a JSON list cell. Anything unreadable is an empty list."""
    if isinstance(raw, list):
        return raw
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return []
    return value if isinstance(value, list) else []


def dump_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _truthy_cell(value: Any) -> bool:
    if value is True:
        return True
    return isinstance(value, str) and value.strip().upper() == "TRUE"


def _number_or_zero(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if number == number else 0.0


def format_date_cell(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")
    if value is None:
        return ""
    return str(value).strip()


class Record(BaseModel):
    """One row of a table. Field order is column order."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    @classmethod
    def columns(cls) -> List[str]:
        return list(cls.model_fields)

    @classmethod
    def from_row(cls, values: Sequence[Any]):
        # Short rows and empty cells fall back to field defaults
        data = {name: value for name, value in zip(cls.model_fields, values) if value is not None}
        return cls.model_validate(data)

    def to_row(self) -> List[Any]:
        return [getattr(self, name) for name in type(self).model_fields]

    @property
    def key(self) -> Any:
        return self.to_row()[0]


class Product(Record):
    """
    Products table
    Rows are replaced whole on update
    """
    id: str = Field("", description="Product ID (row key)")
    name: str = Field("", description="Display name")
    description: str = Field("", description="Long description")
    price: float = Field(0, description="Unit price")
    cover_image: str = Field("", description="Cover image URL")
    gallery_images: str = Field("", description="Gallery image URLs, as entered")
    category: str = Field("", description="Category name")
    video_urls: str = Field("", alias="videoURLs", description="Video URLs, as entered")

    normalize_price = field_validator("price", mode="before")(_number_or_zero)


class Category(Record):
    name: str = Field("", description="Category name (row key)")


class Banner(Record):
    id: str = Field("", description="Banner ID (row key)")
    image_url: str = ""
    active: bool = True
    sort_order: int = 0
    title: str = ""

    normalize_active = field_validator("active", mode="before")(_truthy_cell)

    @field_validator("sort_order", mode="before")
    @classmethod
    def normalize_sort_order(cls, value: Any) -> int:
        return int(_number_or_zero(value))


class Coupon(Record):
    """
    Coupons table
    The code is matched trimmed and upper-cased
    """
    code: str = Field("", description="Coupon code (row key)")
    discount: float = Field(0, description="Discount percentage")
    active: bool = Field(False, description="Only active coupons validate")
    expiry_date: str = Field("", description="Last valid day, YYYY-MM-DD")
    minimum_amount: float = Field(0, description="Minimum order amount")

    normalize_active = field_validator("active", mode="before")(_truthy_cell)
    normalize_discount = field_validator("discount", mode="before")(_number_or_zero)
    normalize_minimum = field_validator("minimum_amount", mode="before")(_number_or_zero)
    normalize_expiry = field_validator("expiry_date", mode="before")(format_date_cell)


class User(Record):
    """
    Users table
    cart and addresses hold JSON-encoded lists
    """
    user_id: str = Field("", description="User ID (row key)")
    name: str = Field("", description="Full name")
    email: str = Field("", description="Email, stored lower-cased")
    password_hash: str = Field("", description="SHA-256 hex digest computed by the client")
    phone: str = Field("", description="Phone number")
    created_at: str = Field("", description="ISO-8601 creation time")
    cart: str = Field("[]", description="JSON list of cart items")
    addresses: str = Field("[]", description="JSON list of addresses")

    def cart_items(self) -> List[Any]:
        return parse_json_list(self.cart)

    def address_list(self) -> List[Any]:
        return parse_json_list(self.addresses)

    def summary(self) -> Dict[str, str]:
        return {"userId": self.user_id, "name": self.name, "email": self.email, "phone": self.phone}


class Order(Record):
    """
    Orders table
    Append-only; status changes happen outside this service
    """
    order_id: str = Field("", description="Order ID (row key)")
    user_id: str = Field("GUEST", description="Owner, or GUEST")
    date: str = Field("", description="dd/MM/yyyy HH:mm in the store timezone")
    items: str = Field("", description="Human-readable items summary")
    total: float = Field(0, description="Order total")
    name: str = ""
    phone: str = ""
    address: str = ""
    status: str = Field("Pending", description="Pending | ... (set by fulfilment)")

    normalize_total = field_validator("total", mode="before")(_number_or_zero)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"user_id"})


class CartItem(BaseModel):
    """Line item of a cart, as held on the client and mirrored in Users.cart"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)

    id: str
    name: str = "Product"
    price: float
    image: str = "https://via.placeholder.com/150"
    quantity: int = 1
    added_at: str = ""


@dataclass(frozen=True, eq=False)
class TableSchema:
    name: str
    model: Type[Record]
    header: List[str]
    key: Callable[[Any], str] = str
    frozen_rows: int = 1
    columns: List[str] = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "columns", self.model.columns())
        if len(self.header) != len(self.columns):
            raise ValueError(f"{self.name}: header has {len(self.header)} columns, model has {len(self.columns)}")

    def key_of(self, value: Any) -> str:
        return self.key("" if value is None else value)


def _trimmed(value: Any) -> str:
    return str(value).strip()


def _code(value: Any) -> str:
    return str(value).strip().upper()


PRODUCTS = TableSchema(
    "Products", Product,
    ["ID", "Name", "Description", "Price", "CoverImage", "GalleryImages", "Category", "VideoURLs"],
)
CATEGORIES = TableSchema("Categories", Category, ["Name"], key=_trimmed)
BANNERS = TableSchema("Banners", Banner, ["ID", "ImageUrl", "Active", "SortOrder", "Title"])
COUPONS = TableSchema(
    "Coupons", Coupon, ["Code", "DiscountPercent", "Active", "ExpiryDate", "MinimumAmount"], key=_code,
)
USERS = TableSchema(
    "Users", User,
    ["UserID", "Name", "Email", "PasswordHash", "Phone", "CreatedAt", "Cart", "Addresses"],
)
ORDERS = TableSchema(
    "Orders", Order,
    ["OrderID", "UserID", "Date", "Items", "Total", "Name", "Phone", "Address", "Status"],
)
