"""
Tests for attachment propagation through cart, session and order.
"""

import json

import pytest
from pydantic import ValidationError

from addon_uploads.adapters.shop import ATTACHMENTS_KEY, InMemoryShop
from addon_uploads.adapters.storage import LocalStorage
from addon_uploads.config import AddonSettings
from addon_uploads.domain.models import AttachmentRecord, Product
from addon_uploads.services import cart_service
from addon_uploads.services.audit_service import AuditLogger
from addon_uploads.services.store import AttachmentStore

SITE = "http://shop.test"


@pytest.fixture()
def local_shop():
    return InMemoryShop()


@pytest.fixture()
def record(storage_root):
    return AttachmentRecord(
        file_path=str(storage_root / "1700000000-photo.png"),
        file_url="http://shop.test/media/addon-uploads/1700000000-photo.png",
        file_name="1700000000-photo.png",
    )


class LockedFileStorage(LocalStorage):
    def delete(self, path):
        raise PermissionError("file is locked")


class TestRecord:
    def test_rejects_path_segments_in_name(self):
        with pytest.raises(ValidationError):
            AttachmentRecord(file_path="/x", file_url="http://x", file_name="../evil.png")

    def test_is_immutable(self, record):
        with pytest.raises(ValidationError):
            record.file_name = "other.png"


class TestSessionRestore:
    def test_attachment_list_passes_through_unchanged(self, record):
        values = {"product_id": 1, "quantity": 2, ATTACHMENTS_KEY: [record.model_dump()]}
        cart_item = cart_service.restore_cart_item_from_session(
            {"product_id": 1, "quantity": 2}, values
        )
        assert cart_item[ATTACHMENTS_KEY] is values[ATTACHMENTS_KEY]

    def test_lines_without_attachments_are_untouched(self):
        cart_item = cart_service.restore_cart_item_from_session({"product_id": 1}, {"quantity": 1})
        assert cart_item == {"product_id": 1}

    def test_round_trip_through_session_is_identical(self, local_shop, record):
        line_key = local_shop.add_line("cart-1", 1, 1)
        cart_service.attach_to_line(local_shop, "cart-1", line_key, record)

        lines = cart_service.load_cart_lines(local_shop, "cart-1")
        assert len(lines) == 1
        assert lines[0].attachments == [record]
        assert lines[0].attachments[0].model_dump() == record.model_dump()

    def test_unknown_keys_in_stored_record_are_dropped(self, local_shop, record):
        line_key = local_shop.add_line("cart-1", 1, 1)
        contents = local_shop.session_values("cart-1")
        contents[line_key][ATTACHMENTS_KEY] = [{**record.model_dump(), "legacy_flag": True}]
        local_shop.sessions["cart-1"] = json.dumps(contents)

        lines = cart_service.load_cart_lines(local_shop, "cart-1")
        assert lines[0].attachments == [record]


class TestOrderMaterialization:
    def test_one_meta_entry_per_attachment(self, local_shop, record):
        order = local_shop.create_order("cart-1")
        item = local_shop.add_order_item(order.id, 1, 1)

        cart_service.materialize_order_line(local_shop, order.id, item.id, [record], SITE)

        meta = local_shop.get_order(order.id).items[0].meta
        assert len(meta) == 1
        assert meta[0].key == "Uploaded Media"
        assert meta[0].value == (
            '<a href="http://shop.test/api/v1/admin-post?action=addon_uploads_secure_download'
            '&amp;file=1700000000-photo.png" target="_blank">1700000000-photo.png</a>'
        )

    def test_checkout_keeps_metadata_after_cart_is_emptied(self, local_shop, record):
        line_key = local_shop.add_line("cart-1", 1, 3)
        cart_service.attach_to_line(local_shop, "cart-1", line_key, record)

        order = cart_service.checkout(local_shop, "cart-1", SITE)

        assert local_shop.session_values("cart-1") == {}
        stored = local_shop.get_order(order.id)
        assert stored.items[0].quantity == 3
        assert "file=1700000000-photo.png" in stored.items[0].meta[0].value

    def test_lines_without_attachments_get_no_metadata(self, local_shop):
        local_shop.add_line("cart-1", 2, 1)
        order = cart_service.checkout(local_shop, "cart-1", SITE)
        assert order.items[0].meta == []


class TestItemDisplay:
    def test_classic_cart_renders_image_through_gate(self, local_shop, record):
        line_key = local_shop.add_line("cart-1", 1, 1)
        cart_service.attach_to_line(local_shop, "cart-1", line_key, record)
        line = cart_service.load_cart_lines(local_shop, "cart-1")[0]

        entries = cart_service.item_display_data(line, SITE)
        assert entries[0].name == "Uploaded File"
        assert entries[0].display.startswith("<img src=")
        assert "admin-post?action=addon_uploads_secure_download&amp;file=" in entries[0].display
        assert record.file_url not in entries[0].display

    def test_block_cart_renders_marker(self, local_shop, record):
        line_key = local_shop.add_line("cart-1", 1, 1)
        cart_service.attach_to_line(local_shop, "cart-1", line_key, record)
        line = cart_service.load_cart_lines(local_shop, "cart-1")[0]

        entries = cart_service.item_display_data(line, SITE, block_present=True)
        assert [entry.display for entry in entries] == ["&#9989;"]


class TestRemovalCleanup:
    @pytest.fixture()
    def stored(self, storage_root, samples):
        storage_root.mkdir(parents=True, exist_ok=True)
        path = storage_root / "1700000000-photo.png"
        path.write_bytes(samples["png"])
        return AttachmentRecord(
            file_path=str(path),
            file_url="http://shop.test/media/addon-uploads/1700000000-photo.png",
            file_name=path.name,
        )

    def _line_with(self, shop, record):
        line_key = shop.add_line("cart-1", 1, 1)
        cart_service.attach_to_line(shop, "cart-1", line_key, record)
        return line_key

    def test_removal_deletes_file(self, local_shop, storage_root, stored):
        audit = AuditLogger()
        line_key = self._line_with(local_shop, stored)
        store = AttachmentStore(LocalStorage(), storage_root, SITE)

        assert cart_service.remove_cart_line(local_shop, store, "cart-1", line_key, audit)
        assert not (storage_root / stored.file_name).exists()
        assert local_shop.removed_contents["cart-1"][line_key][ATTACHMENTS_KEY]
        assert len(audit.events("file_deleted")) == 1

    def test_missing_file_is_ignored(self, local_shop, storage_root, stored):
        line_key = self._line_with(local_shop, stored)
        (storage_root / stored.file_name).unlink()
        store = AttachmentStore(LocalStorage(), storage_root, SITE)

        assert cart_service.remove_cart_line(local_shop, store, "cart-1", line_key) is True
        assert local_shop.session_values("cart-1") == {}

    def test_deletion_failure_is_reported_but_not_fatal(
        self, local_shop, storage_root, stored, caplog
    ):
        audit = AuditLogger()
        line_key = self._line_with(local_shop, stored)
        store = AttachmentStore(LockedFileStorage(), storage_root, SITE)

        with caplog.at_level("ERROR"):
            removed = cart_service.remove_cart_line(
                local_shop, store, "cart-1", line_key, audit, correlation_id="cid-1"
            )

        assert removed is True
        assert local_shop.session_values("cart-1") == {}
        assert (storage_root / stored.file_name).exists()
        failures = audit.events("file_delete_failed")
        assert len(failures) == 1
        assert failures[0]["correlation_id"] == "cid-1"
        assert "Could not delete uploaded file" in caplog.text

    def test_unknown_line_is_reported(self, local_shop, storage_root):
        store = AttachmentStore(LocalStorage(), storage_root, SITE)
        assert cart_service.remove_cart_line(local_shop, store, "cart-1", "nope") is False


class TestEligibility:
    mug = Product(id=1, name="Custom Mug", category_ids=[15])

    @pytest.mark.parametrize(
        "overrides,expected",
        [
            ({}, True),
            ({"enabled": False}, False),
            ({"product_ids": [1]}, True),
            ({"product_ids": [2]}, False),
            ({"categories": ["15"]}, True),
            ({"categories": ["16"]}, False),
            ({"categories": ["16", "all"]}, True),
            ({"categories": ["ALL"]}, True),
            ({"product_ids": [1], "categories": ["16"]}, False),
        ],
    )
    def test_rules(self, overrides, expected):
        settings = AddonSettings(secret_key="eligibility-secret-key", **overrides)
        assert cart_service.is_upload_enabled(settings, self.mug) is expected
