"""Runtime settings for the addon uploads service."""

from __future__ import annotations

import os
import secrets
from pathlib import Path
from typing import FrozenSet, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_ALLOWED_TYPES: Tuple[str, ...] = ("jpg", "jpeg", "png", "gif", "webp")
CATEGORY_WILDCARD = "all"
MAX_BYTES = 5_000_000  # 5 MB hard limit


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class AddonSettings(BaseModel):
    """Immutable configuration injected into the validator, store and gate."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    product_ids: FrozenSet[int] = frozenset()
    categories: FrozenSet[str] = frozenset()
    allowed_extensions: FrozenSet[str] = frozenset(DEFAULT_ALLOWED_TYPES)
    max_bytes: int = Field(MAX_BYTES, gt=0)
    storage_root: Path = Path("./var/uploads/addon-uploads")
    media_base_url: str = "http://localhost:8000/media/addon-uploads"
    site_url: str = "http://localhost:8000"
    secret_key: str = Field(default_factory=lambda: secrets.token_hex(32), min_length=16)
    nonce_lifetime: int = Field(86400, ge=2)

    @field_validator("allowed_extensions", mode="before")
    @classmethod
    def normalize_extensions(cls, value):
        return frozenset(str(ext).lower().lstrip(".") for ext in value)

    @field_validator("categories", mode="before")
    @classmethod
    def normalize_categories(cls, value):
        return frozenset(str(category).strip().lower() for category in value)

    @field_validator("media_base_url", "site_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def categories_unrestricted(self) -> bool:
        """Empty allow-list or the wildcard means every category passes."""
        return not self.categories or CATEGORY_WILDCARD in self.categories


def load_settings() -> AddonSettings:
    """Build settings from environment variables."""
    values: dict = {
        "enabled": os.getenv("ADDON_UPLOADS_ENABLED", "true").lower() == "true",
        "product_ids": [int(pid) for pid in _split_csv(os.getenv("ADDON_UPLOADS_PRODUCT_IDS"))],
        "categories": _split_csv(os.getenv("ADDON_UPLOADS_CATEGORIES")),
        "allowed_extensions": _split_csv(os.getenv("ADDON_UPLOADS_ALLOWED_TYPES"))
        or DEFAULT_ALLOWED_TYPES,
        "max_bytes": int(os.getenv("ADDON_UPLOADS_MAX_BYTES", str(MAX_BYTES))),
        "storage_root": Path(os.getenv("UPLOAD_STORAGE_PATH", "./var/uploads/addon-uploads")),
        "media_base_url": os.getenv(
            "ADDON_UPLOADS_MEDIA_URL", "http://localhost:8000/media/addon-uploads"
        ),
        "site_url": os.getenv("ADDON_UPLOADS_SITE_URL", "http://localhost:8000"),
        "nonce_lifetime": int(os.getenv("ADDON_UPLOADS_NONCE_LIFETIME", "86400")),
    }
    secret = os.getenv("ADDON_UPLOADS_SECRET")
    if secret:
        values["secret_key"] = secret
    return AddonSettings(**values)
