"""
Upload admission pipeline used by the add-to-cart action.
"""

import logging
from typing import List, Optional, Tuple

from addon_uploads.adapters.shop import InMemoryShop
from addon_uploads.domain.errors import AddonUploadError
from addon_uploads.domain.models import AttachmentRecord, CartLine, Notice, Product
from addon_uploads.security.uploads import RawUpload, UploadValidator, is_present
from addon_uploads.services.audit_service import AuditLogger
from addon_uploads.services.cart_service import attach_to_line
from addon_uploads.services.store import AttachmentStore

logger = logging.getLogger(__name__)


class UploadService:
    """Validate, store and attach an upload to a new cart line."""

    def __init__(
        self,
        validator: UploadValidator,
        store: AttachmentStore,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.validator = validator
        self.store = store
        self.audit_logger = audit_logger

    def _audit(self, event_type: str, correlation_id: Optional[str], **kwargs) -> None:
        if self.audit_logger is not None:
            self.audit_logger.log_event(event_type, correlation_id, **kwargs)

    def admit(
        self, upload: RawUpload, token: Optional[str], cart_id: str
    ) -> AttachmentRecord:
        """Run the validator and the store. Raises AddonUploadError subclasses."""
        admitted = self.validator.validate(upload, token, context=cart_id)
        return self.store.persist(admitted)

    def add_to_cart(
        self,
        shop: InMemoryShop,
        cart_id: str,
        product: Product,
        quantity: int,
        upload: Optional[RawUpload] = None,
        token: Optional[str] = None,
        upload_enabled: bool = True,
        correlation_id: Optional[str] = None,
    ) -> Tuple[CartLine, List[Notice]]:
        """Add a line and attach the upload when it is admitted.

        Rejected uploads become notices; the line is added regardless.
        """
        notices: List[Notice] = []
        record: Optional[AttachmentRecord] = None

        if is_present(upload) and not upload_enabled:
            logger.info("Ignoring upload for product %s: uploads disabled", product.id)
        elif is_present(upload):
            try:
                record = self.admit(upload, token, cart_id)
            except AddonUploadError as exc:
                logger.warning("Upload rejected (%s): %s", exc.code, exc.message)
                notices.append(Notice(message=exc.message))
                self._audit(
                    "upload_rejected",
                    correlation_id,
                    cart_id=cart_id,
                    product_id=product.id,
                    code=exc.code,
                )

        line_key = shop.add_line(cart_id, product.id, quantity)
        attachments: List[AttachmentRecord] = []
        if record is not None:
            attachments = attach_to_line(shop, cart_id, line_key, record)
            self._audit(
                "file_uploaded",
                correlation_id,
                cart_id=cart_id,
                product_id=product.id,
                file_name=record.file_name,
            )

        line = CartLine(
            key=line_key, product_id=product.id, quantity=quantity, attachments=attachments
        )
        return line, notices
