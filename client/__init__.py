"""Client-side session, cart and sync layer for the storefront API."""

from client.account import AccountClient
from client.api import StorefrontAPI
from client.cart import LocalCart, Wishlist
from client.session import SessionContext
from client.storage import DurableStore, EphemeralStore
from client.sync import SyncEngine, merge_carts

__all__ = [
    "AccountClient",
    "StorefrontAPI",
    "LocalCart",
    "Wishlist",
    "SessionContext",
    "DurableStore",
    "EphemeralStore",
    "SyncEngine",
    "merge_carts",
]
