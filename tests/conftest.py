# tests/conftest.py
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from addon_uploads.adapters.shop import shop  # noqa: E402
from addon_uploads.app.api import app, get_settings  # noqa: E402
from addon_uploads.config import AddonSettings  # noqa: E402
from addon_uploads.security.uploads import JPEG_MAGIC, PNG_MAGIC  # noqa: E402
from addon_uploads.services.audit_service import audit_service  # noqa: E402

JPEG_EOI = b"\xff\xd9"

SAMPLES = {
    "png": PNG_MAGIC + b"\x00\x00\x00\x0dIHDR\x00\x00\x00\x01\x00\x00\x00\x01IEND\xaeB`\x82",
    "jpg": JPEG_MAGIC + b"\xe0\x00\x10JFIF\x00" + b"\x00" * 8 + JPEG_EOI,
    "jpeg": JPEG_MAGIC + b"\xe1\x00\x10Exif\x00" + b"\x00" * 8 + JPEG_EOI,
    "gif": b"GIF89a\x01\x00\x01\x00\x80\x00\x00" + b"\x00" * 8,
    "webp": b"RIFF\x24\x00\x00\x00WEBPVP8 " + b"\x00" * 12,
}


@pytest.fixture(autouse=True)
def reset_shop():
    """Reset in-memory carts and orders between tests."""
    shop.reset()
    yield
    shop.reset()


@pytest.fixture(autouse=True)
def reset_audit_log():
    audit_service.audit_logger.clear()
    yield
    audit_service.audit_logger.clear()


@pytest.fixture()
def storage_root(tmp_path):
    return tmp_path / "uploads" / "addon-uploads"


@pytest.fixture()
def settings(storage_root):
    return AddonSettings(
        storage_root=storage_root,
        media_base_url="http://shop.test/media/addon-uploads",
        site_url="http://shop.test",
        secret_key="test-secret-key-0123456789",
    )


@pytest.fixture()
def use_settings():
    """Swap the settings the API injects for the rest of the test."""

    def _use(config: AddonSettings) -> AddonSettings:
        app.dependency_overrides[get_settings] = lambda: config
        return config

    return _use


@pytest.fixture()
def client(settings, use_settings):
    use_settings(settings)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def nonce_for(client):
    def _nonce(cart_id: str, product_id: int = 1) -> str:
        response = client.get(
            f"/api/v1/products/{product_id}/upload-field", params={"cart_id": cart_id}
        )
        assert response.status_code == 200
        return response.json()["nonce"]

    return _nonce


@pytest.fixture()
def add_to_cart(client):
    def _add(cart_id, name=None, payload=b"", nonce=None, product_id=1, quantity=1):
        data = {"product_id": str(product_id), "quantity": str(quantity)}
        if nonce is not None:
            data["addon_upload_nonce"] = nonce
        files = None
        if name is not None:
            files = {"addon_file": (name, payload, "application/octet-stream")}
        return client.post(f"/api/v1/carts/{cart_id}/items", data=data, files=files)

    return _add


@pytest.fixture()
def samples():
    """Minimal payloads carrying valid signatures for each default extension."""
    return dict(SAMPLES)
