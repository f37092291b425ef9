"""
Domain models for the addon uploads service.
"""

import enum
from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NoticeLevel(str, enum.Enum):
    """Severity of a user-visible notice."""

    ERROR = "error"
    NOTICE = "notice"


class Notice(BaseModel):
    """Additive user-visible message produced while handling a request."""

    level: NoticeLevel = NoticeLevel.ERROR
    message: str


class AttachmentRecord(BaseModel):
    """Durable reference to one uploaded file.

    The record travels unchanged from the cart line into the session and
    finally into order item metadata.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    file_path: str
    file_url: str
    file_name: str = Field(..., min_length=1)

    @field_validator("file_name")
    @classmethod
    def validate_file_name(cls, v):
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError("File name must not contain path segments")
        return v


class Product(BaseModel):
    """Catalog product as seen by the upload eligibility rules."""

    id: int
    name: str = Field(..., min_length=1, max_length=200)
    category_ids: List[int] = Field(default_factory=list)


class CartLine(BaseModel):
    """Cart line reconstructed from session values."""

    key: str
    product_id: int
    quantity: int = Field(1, ge=1)
    attachments: List[AttachmentRecord] = Field(default_factory=list)


class ItemDisplayData(BaseModel):
    """Name/display pair rendered next to a cart line."""

    name: str
    display: str


class CartLineView(CartLine):
    """Cart line enriched with display entries."""

    item_data: List[ItemDisplayData] = Field(default_factory=list)


class CartResponse(BaseModel):
    """Response model for a cart."""

    cart_id: str
    lines: List[CartLineView]


class AddToCartResponse(BaseModel):
    """Response model for an add-to-cart action."""

    line: CartLine
    notices: List[Notice] = Field(default_factory=list)


class OrderItemMeta(BaseModel):
    """Key/value metadata stored on an order item."""

    key: str
    value: str


class OrderItem(BaseModel):
    """Order line created at checkout."""

    id: int
    product_id: int
    quantity: int
    meta: List[OrderItemMeta] = Field(default_factory=list)


class Order(BaseModel):
    """Order domain model."""

    id: int
    cart_id: str
    created_at: datetime
    items: List[OrderItem] = Field(default_factory=list)


class UploadField(BaseModel):
    """Everything the product page needs to render the upload input."""

    enabled: bool
    product_id: int
    label: str = "Upload an image: "
    field_name: str = "addon_file"
    nonce_field: str = "addon_upload_nonce"
    nonce: str | None = None
    accept: str = "image/*"
