"""
Shop adapters for the addon uploads service.
In-memory cart, session and order storage for simplicity.
"""

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from addon_uploads.domain.models import (
    AttachmentRecord,
    Order,
    OrderItem,
    OrderItemMeta,
    Product,
)

ATTACHMENTS_KEY = "addon_uploads"


class ShopGateway(Protocol):
    """Narrow view of the host shop used by the attachment pipeline."""

    def get_line_attachments(self, cart_id: str, line_key: str) -> List[AttachmentRecord]: ...

    def set_line_attachments(
        self, cart_id: str, line_key: str, records: List[AttachmentRecord]
    ) -> None: ...

    def add_order_metadata(self, order_id: int, item_id: int, key: str, value: str) -> None: ...


class InMemoryShop:
    """In-memory shop for the service.

    Cart contents live only as serialized session values, so every read
    goes through the same restore path a real session would.
    """

    def __init__(self):
        self.products: Dict[int, Product] = {}
        self.sessions: Dict[str, str] = {}  # cart_id -> JSON of line_key -> values
        self.removed_contents: Dict[str, Dict[str, dict]] = {}
        self.orders: Dict[int, Order] = {}
        self.next_order_id = 1
        self.next_order_item_id = 1
        self.seed_catalog()

    def reset(self) -> None:
        """Clear stored state (useful for tests)."""
        self.products.clear()
        self.sessions.clear()
        self.removed_contents.clear()
        self.orders.clear()
        self.next_order_id = 1
        self.next_order_item_id = 1
        self.seed_catalog()

    def seed_catalog(self) -> None:
        self.add_product(Product(id=1, name="Custom Mug", category_ids=[15]))
        self.add_product(Product(id=2, name="Canvas Print", category_ids=[16]))

    # Products

    def add_product(self, product: Product) -> Product:
        self.products[product.id] = product
        return product

    def get_product(self, product_id: int) -> Optional[Product]:
        return self.products.get(product_id)

    # Session-backed cart

    def _load(self, cart_id: str) -> Dict[str, dict]:
        raw = self.sessions.get(cart_id)
        return json.loads(raw) if raw else {}

    def _save(self, cart_id: str, contents: Dict[str, dict]) -> None:
        self.sessions[cart_id] = json.dumps(contents)

    def has_cart(self, cart_id: str) -> bool:
        return cart_id in self.sessions

    def session_values(self, cart_id: str) -> Dict[str, dict]:
        """Return persisted values for every line of a cart."""
        return self._load(cart_id)

    def add_line(self, cart_id: str, product_id: int, quantity: int) -> str:
        """Add a cart line and return its key."""
        contents = self._load(cart_id)
        line_key = uuid.uuid4().hex
        contents[line_key] = {"product_id": product_id, "quantity": quantity}
        self._save(cart_id, contents)
        return line_key

    def get_line_attachments(self, cart_id: str, line_key: str) -> List[AttachmentRecord]:
        values = self._load(cart_id).get(line_key)
        if values is None:
            raise KeyError(line_key)
        return [AttachmentRecord(**record) for record in values.get(ATTACHMENTS_KEY, [])]

    def set_line_attachments(
        self, cart_id: str, line_key: str, records: List[AttachmentRecord]
    ) -> None:
        contents = self._load(cart_id)
        if line_key not in contents:
            raise KeyError(line_key)
        contents[line_key][ATTACHMENTS_KEY] = [record.model_dump() for record in records]
        self._save(cart_id, contents)

    def remove_line(self, cart_id: str, line_key: str) -> Optional[Dict[str, Any]]:
        """Remove a line and return its values, or None if it was not there."""
        contents = self._load(cart_id)
        removed = contents.pop(line_key, None)
        if removed is None:
            return None
        self._save(cart_id, contents)
        self.removed_contents.setdefault(cart_id, {})[line_key] = removed
        return removed

    def empty_cart(self, cart_id: str) -> None:
        self._save(cart_id, {})

    # Orders

    def create_order(self, cart_id: str) -> Order:
        order = Order(
            id=self.next_order_id,
            cart_id=cart_id,
            created_at=datetime.now(timezone.utc),
        )
        self.next_order_id += 1
        self.orders[order.id] = order
        return order

    def add_order_item(self, order_id: int, product_id: int, quantity: int) -> OrderItem:
        item = OrderItem(id=self.next_order_item_id, product_id=product_id, quantity=quantity)
        self.next_order_item_id += 1
        self.orders[order_id].items.append(item)
        return item

    def add_order_metadata(self, order_id: int, item_id: int, key: str, value: str) -> None:
        for item in self.orders[order_id].items:
            if item.id == item_id:
                item.meta.append(OrderItemMeta(key=key, value=value))
                return
        raise KeyError(item_id)

    def get_order(self, order_id: int) -> Optional[Order]:
        return self.orders.get(order_id)


shop = InMemoryShop()
