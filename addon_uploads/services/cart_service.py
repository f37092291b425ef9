"""
Attachment propagation through cart, session and order.
"""

import html
import logging
from typing import List, Optional

from addon_uploads.adapters.shop import ATTACHMENTS_KEY, InMemoryShop, ShopGateway
from addon_uploads.config import AddonSettings
from addon_uploads.domain.errors import DeletionError, NotFoundError
from addon_uploads.domain.models import (
    AttachmentRecord,
    CartLine,
    CartLineView,
    ItemDisplayData,
    Order,
    Product,
)
from addon_uploads.services.audit_service import AuditLogger
from addon_uploads.services.download_service import download_url
from addon_uploads.services.store import AttachmentStore

logger = logging.getLogger(__name__)

ORDER_META_KEY = "Uploaded Media"
CART_DISPLAY_NAME = "Uploaded File"
BLOCK_MARKER = "&#9989;"


def is_upload_enabled(settings: AddonSettings, product: Product) -> bool:
    """Check the enable flag and the product/category allow-lists."""
    if not settings.enabled:
        return False
    if settings.product_ids and product.id not in settings.product_ids:
        return False
    if settings.categories_unrestricted():
        return True
    product_categories = {str(category_id) for category_id in product.category_ids}
    return bool(product_categories & settings.categories)


def attach_to_line(
    shop: ShopGateway, cart_id: str, line_key: str, record: AttachmentRecord
) -> List[AttachmentRecord]:
    """Append a record to the line's attachment list."""
    records = shop.get_line_attachments(cart_id, line_key)
    records.append(record)
    shop.set_line_attachments(cart_id, line_key, records)
    return records


def restore_cart_item_from_session(cart_item: dict, values: dict) -> dict:
    """Carry the attachment list from session values onto a rebuilt cart item."""
    if ATTACHMENTS_KEY in values:
        cart_item[ATTACHMENTS_KEY] = values[ATTACHMENTS_KEY]
    return cart_item


def load_cart_lines(shop: InMemoryShop, cart_id: str) -> List[CartLine]:
    """Rebuild cart lines from persisted session values.

    Stored records are re-read as AttachmentRecord: unknown keys are dropped,
    and a stored name carrying path segments is refused.
    """
    lines = []
    for line_key, values in shop.session_values(cart_id).items():
        cart_item = {"product_id": values["product_id"], "quantity": values["quantity"]}
        cart_item = restore_cart_item_from_session(cart_item, values)
        lines.append(
            CartLine(
                key=line_key,
                product_id=cart_item["product_id"],
                quantity=cart_item["quantity"],
                attachments=cart_item.get(ATTACHMENTS_KEY, []),
            )
        )
    return lines


def item_display_data(
    line: CartLine, site_url: str, block_present: bool = False
) -> List[ItemDisplayData]:
    """Build the entries shown under a cart line.

    Block-based cart and checkout pages only get a check mark.
    """
    entries = []
    for record in line.attachments:
        if block_present:
            display = BLOCK_MARKER
        else:
            image_url = download_url(site_url, record.file_name)
            display = (
                f'<img src="{html.escape(image_url)}" alt="{html.escape(CART_DISPLAY_NAME)}" '
                'class="addon-upload-img" style="width:150px;height:150px;" />'
            )
        entries.append(ItemDisplayData(name=CART_DISPLAY_NAME, display=display))
    return entries


def cart_view(shop: InMemoryShop, cart_id: str, site_url: str, block_present: bool = False):
    return [
        CartLineView(**line.model_dump(), item_data=item_display_data(line, site_url, block_present))
        for line in load_cart_lines(shop, cart_id)
    ]


def order_meta_value(site_url: str, record: AttachmentRecord) -> str:
    """Anchor linking the order item to the download gate."""
    url = download_url(site_url, record.file_name)
    return f'<a href="{html.escape(url)}" target="_blank">{html.escape(record.file_name)}</a>'


def materialize_order_line(
    shop: ShopGateway,
    order_id: int,
    item_id: int,
    attachments: List[AttachmentRecord],
    site_url: str,
) -> None:
    """Add one metadata entry per attachment to an order item."""
    for record in attachments:
        shop.add_order_metadata(order_id, item_id, ORDER_META_KEY, order_meta_value(site_url, record))


def checkout(shop: InMemoryShop, cart_id: str, site_url: str) -> Order:
    """Convert every cart line into an order line and empty the cart.

    Stored files stay in place; the order references them from now on.
    """
    lines = load_cart_lines(shop, cart_id)
    order = shop.create_order(cart_id)
    for line in lines:
        item = shop.add_order_item(order.id, line.product_id, line.quantity)
        materialize_order_line(shop, order.id, item.id, line.attachments, site_url)
    shop.empty_cart(cart_id)
    logger.info("Order %s created from cart %s with %s lines", order.id, cart_id, len(lines))
    return order


def remove_cart_line(
    shop: InMemoryShop,
    store: AttachmentStore,
    cart_id: str,
    line_key: str,
    audit_logger: Optional[AuditLogger] = None,
    correlation_id: Optional[str] = None,
) -> bool:
    """Remove a line and delete its uploaded file.

    Returns False if the line did not exist. Deletion failures never
    block the removal.
    """
    removed = shop.remove_line(cart_id, line_key)
    if removed is None:
        return False

    attachments = removed.get(ATTACHMENTS_KEY) or []
    file_path = attachments[0].get("file_path") if attachments else None
    if not file_path:
        return True

    try:
        store.delete(file_path)
    except NotFoundError:
        logger.info("Uploaded file for line %s already gone", line_key)
    except DeletionError as exc:
        logger.error("Could not delete uploaded file for line %s: %s", line_key, exc.__cause__)
        if audit_logger is not None:
            audit_logger.log_event(
                "file_delete_failed",
                correlation_id,
                cart_id=cart_id,
                line_key=line_key,
                file_name=attachments[0].get("file_name"),
            )
    else:
        if audit_logger is not None:
            audit_logger.log_event(
                "file_deleted",
                correlation_id,
                cart_id=cart_id,
                line_key=line_key,
                file_name=attachments[0].get("file_name"),
            )
    return True
