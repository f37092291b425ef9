#!/usr/bin/env python3
"""
Live smoke checks for a running addon uploads instance.
"""

import json
import os
import re
import sys
import uuid
from typing import Any, Dict
from urllib.parse import parse_qs, urlparse

import requests

PNG_SAMPLE = b"\x89PNG\r\n\x1a\n\x00\x00\x00\x0dIHDR\x00\x00\x00\x01\x00\x00\x00\x01IEND\xaeB`\x82"
HREF_RE = re.compile(r'href="([^"]+)"')


class UploadChecker:
    """Runs upload, download and rejection checks against a live server."""

    def __init__(self, base_url: str = "http://localhost:8000", product_id: int = 1):
        self.base_url = base_url.rstrip("/")
        self.product_id = product_id

    def _cart_id(self) -> str:
        return f"smoke-{uuid.uuid4().hex[:12]}"

    def _nonce(self, cart_id: str) -> str | None:
        response = requests.get(
            f"{self.base_url}/api/v1/products/{self.product_id}/upload-field",
            params={"cart_id": cart_id},
            timeout=5,
        )
        response.raise_for_status()
        return response.json().get("nonce")

    def _add_to_cart(self, cart_id: str, name: str, payload: bytes, nonce: str | None):
        data = {"product_id": str(self.product_id), "quantity": "1"}
        if nonce:
            data["addon_upload_nonce"] = nonce
        return requests.post(
            f"{self.base_url}/api/v1/carts/{cart_id}/items",
            data=data,
            files={"addon_file": (name, payload, "application/octet-stream")},
            timeout=10,
        )

    def check_upload_roundtrip(self) -> Dict[str, Any]:
        """Upload an image, check out and download it through the gate."""
        try:
            cart_id = self._cart_id()
            nonce = self._nonce(cart_id)
            added = self._add_to_cart(cart_id, "smoke.png", PNG_SAMPLE, nonce)
            attachments = added.json()["line"]["attachments"]

            order = requests.post(
                f"{self.base_url}/api/v1/carts/{cart_id}/checkout", timeout=5
            ).json()
            meta = order["items"][0]["meta"] if order.get("items") else []
            href = HREF_RE.search(meta[0]["value"]).group(1) if meta else None

            download_status = None
            downloaded = 0
            if href:
                query = parse_qs(urlparse(href.replace("&amp;", "&")).query)
                download = requests.get(
                    f"{self.base_url}/api/v1/admin-post",
                    params={"action": query["action"][0], "file": query["file"][0]},
                    timeout=10,
                )
                download_status = download.status_code
                downloaded = len(download.content)

            passed = len(attachments) == 1 and download_status == 200 and downloaded == len(
                PNG_SAMPLE
            )
            result = {
                "check": "upload_roundtrip",
                "status": "PASS" if passed else "FAIL",
                "details": {
                    "attachments": len(attachments),
                    "download_status": download_status,
                    "downloaded_bytes": downloaded,
                },
            }
        except (requests.RequestException, KeyError, ValueError, AttributeError) as e:
            result = {"check": "upload_roundtrip", "status": "ERROR", "details": {"error": str(e)}}
        return result

    def check_rejects_executable(self) -> Dict[str, Any]:
        """An .exe upload must leave the line without attachments."""
        try:
            cart_id = self._cart_id()
            response = self._add_to_cart(cart_id, "malware.exe", b"MZ\x90\x00", self._nonce(cart_id))
            body = response.json()
            passed = response.status_code == 201 and not body["line"]["attachments"]
            result = {
                "check": "rejects_executable",
                "status": "PASS" if passed else "FAIL",
                "details": {"notices": body.get("notices", [])},
            }
        except (requests.RequestException, KeyError, ValueError) as e:
            result = {"check": "rejects_executable", "status": "ERROR", "details": {"error": str(e)}}
        return result

    def check_rejects_missing_nonce(self) -> Dict[str, Any]:
        try:
            response = self._add_to_cart(self._cart_id(), "photo.png", PNG_SAMPLE, None)
            body = response.json()
            passed = response.status_code == 201 and not body["line"]["attachments"]
            result = {
                "check": "rejects_missing_nonce",
                "status": "PASS" if passed else "FAIL",
                "details": {"notices": body.get("notices", [])},
            }
        except (requests.RequestException, KeyError, ValueError) as e:
            result = {
                "check": "rejects_missing_nonce",
                "status": "ERROR",
                "details": {"error": str(e)},
            }
        return result

    def check_traversal_blocked(self) -> Dict[str, Any]:
        """Traversal attempts must end in a generic 404."""
        probes = ["../../secrets.txt", "/etc/passwd", "..\\..\\config.py", ".htaccess"]
        try:
            codes = {}
            for probe in probes:
                response = requests.get(
                    f"{self.base_url}/api/v1/admin-post",
                    params={"action": "addon_uploads_secure_download", "file": probe},
                    timeout=5,
                )
                codes[probe] = response.status_code
            passed = all(code == 404 for code in codes.values())
            result = {
                "check": "traversal_blocked",
                "status": "PASS" if passed else "FAIL",
                "details": {"response_codes": codes},
            }
        except requests.RequestException as e:
            result = {"check": "traversal_blocked", "status": "ERROR", "details": {"error": str(e)}}
        return result

    def run_all_checks(self) -> Dict[str, Any]:
        print("Running addon upload checks against", self.base_url)

        checks = [
            self.check_upload_roundtrip,
            self.check_rejects_executable,
            self.check_rejects_missing_nonce,
            self.check_traversal_blocked,
        ]

        results = []
        for check in checks:
            result = check()
            results.append(result)
            print(f"[{result['status']}] {result['check']}")

        total = len(results)
        passed = sum(1 for r in results if r["status"] == "PASS")
        failed = sum(1 for r in results if r["status"] == "FAIL")
        errors = sum(1 for r in results if r["status"] == "ERROR")

        summary = {
            "total_checks": total,
            "passed": passed,
            "failed": failed,
            "errors": errors,
            "results": results,
        }
        print(f"\n{passed}/{total} passed, {failed} failed, {errors} errors")
        return summary


def main():
    checker = UploadChecker(os.getenv("ADDON_UPLOADS_SITE_URL", "http://localhost:8000"))
    results = checker.run_all_checks()

    with open("upload_check_results.json", "w", encoding="utf-8") as f:
        json.dump(results, f, ensure_ascii=False, indent=2)

    sys.exit(1 if results["failed"] or results["errors"] else 0)


if __name__ == "__main__":
    main()
