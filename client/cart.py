from typing import Any, Dict, List

from client.storage import KeyValueStore, StorageKeys
from ids import iso_utc
from log import get_logger
from schemas import CartItem

logger = get_logger("client.cart")


def quantity_of(item: Dict[str, Any]) -> int:
    try:
        return int(item.get("quantity")) or 1
    except (TypeError, ValueError):
        return 1


def _price(item: Dict[str, Any]) -> float:
    try:
        return float(item.get("price"))
    except (TypeError, ValueError):
        return 0.0


class LocalCart:
    """The cart as persisted on this device, logged in or not."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def items(self) -> List[Dict[str, Any]]:
        items = self.store.get(StorageKeys.CART)
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, dict)]

    def save(self, items: List[Dict[str, Any]]) -> None:
        self.store.set(StorageKeys.CART, items)

    def add_item(self, product: Dict[str, Any]) -> bool:
        if not product or not product.get("id"):
            logger.warning("cart_add_rejected", extra={"data": {"reason": "missing id"}})
            return False
        price = _price(product)
        if price <= 0:
            logger.warning("cart_add_rejected", extra={"data": {"reason": "invalid price", "id": str(product["id"])}})
            return False

        items = self.items()
        product_id = str(product["id"])
        for item in items:
            if str(item.get("id")) == product_id:
                item["quantity"] = quantity_of(item) + 1
                break
        else:
            items.append(CartItem(
                id=product_id,
                name=str(product.get("name") or "Product").strip(),
                price=price,
                image=product.get("image") or "https://via.placeholder.com/150",
                quantity=1,
                added_at=iso_utc(),
            ).model_dump(by_alias=True))
        self.save(items)
        return True

    def remove_item(self, product_id: Any) -> bool:
        items = self.items()
        kept = [item for item in items if str(item.get("id")) != str(product_id)]
        if len(kept) == len(items):
            logger.info("cart_remove_missing", extra={"data": {"id": str(product_id)}})
        self.save(kept)
        return True

    def update_quantity(self, product_id: Any, quantity: int) -> bool:
        items = self.items()
        for index, item in enumerate(items):
            if str(item.get("id")) == str(product_id):
                if quantity <= 0:
                    del items[index]
                else:
                    item["quantity"] = int(quantity)
                self.save(items)
                return True
        return False

    def count(self) -> int:
        return sum(quantity_of(item) for item in self.items())

    def total(self) -> float:
        return sum(_price(item) * quantity_of(item) for item in self.items())

    def clear(self) -> None:
        self.store.delete(StorageKeys.CART)


class Wishlist:
    """Product snapshots kept on this device only. There is no server copy."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def items(self) -> List[Dict[str, Any]]:
        items = self.store.get(StorageKeys.WISHLIST)
        return items if isinstance(items, list) else []

    def contains(self, product_id: Any) -> bool:
        return any(str(item.get("id")) == str(product_id) for item in self.items() if isinstance(item, dict))

    def toggle(self, product: Dict[str, Any]) -> List[Dict[str, Any]]:
        items = self.items()
        for index, item in enumerate(items):
            if isinstance(item, dict) and str(item.get("id")) == str(product.get("id")):
                del items[index]
                break
        else:
            items.append(product)
        self.store.set(StorageKeys.WISHLIST, items)
        return items
