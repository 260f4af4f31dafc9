# nitionz/services/storage.py
from __future__ import annotations

import hashlib
import os
import posixpath
import uuid
from dataclasses import dataclass
from typing import Optional

import requests
from flask import current_app, url_for

from nitionz.errors import NotFoundError, UpstreamError, ValidationError
from nitionz.models import utcnow_naive


# =========================================================
# Types
# =========================================================
@dataclass(frozen=True)
class StoredBlob:
    url: str
    storage_key: str
    sha256: str
    content_type: str
    size: int

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "storageKey": self.storage_key,
            "sha256": self.sha256,
            "contentType": self.content_type,
            "size": self.size,
        }


ALLOWED_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "application/pdf": ".pdf",
}


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sniff_content_type(data: bytes) -> Optional[str]:
    """Content type from magic bytes; the client's declared type is not trusted."""
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data.startswith(b"%PDF-"):
        return "application/pdf"
    return None


def default_storage_key(content_type: str, *, prefix: str = "uploads") -> str:
    """
    Example:
      kyc/2026/10/3f2b...e1.pdf
    """
    now = utcnow_naive()
    return f"{prefix}/{now:%Y}/{now:%m}/{uuid.uuid4().hex}{ALLOWED_TYPES[content_type]}"


def normalize_key(storage_key: str) -> str:
    """
    Collapse "." and ".." segments. A key that is empty, absolute or climbs
    above the store root does not name a file.
    """
    key = posixpath.normpath((storage_key or "").replace("\\", "/"))
    if key in ("", ".") or key.startswith("/") or key == ".." or key.startswith("../"):
        raise NotFoundError("File not found.")
    return key


# =========================================================
# Backends
# =========================================================
class LocalBlobStore:
    """Files under UPLOAD_DIR (default <instance>/uploads), served by /uploads/<key>."""

    def _base_dir(self) -> str:
        base = current_app.config.get("UPLOAD_DIR") or os.path.join(current_app.instance_path, "uploads")
        os.makedirs(base, exist_ok=True)
        return base

    def _path_for(self, storage_key: str) -> str:
        base = os.path.realpath(self._base_dir())
        abs_path = os.path.realpath(os.path.join(base, normalize_key(storage_key)))
        if os.path.commonpath([base, abs_path]) != base:
            raise NotFoundError("File not found.")
        return abs_path

    def put(self, data: bytes, storage_key: str, content_type: str) -> str:
        abs_path = self._path_for(storage_key)
        try:
            os.makedirs(os.path.dirname(abs_path), exist_ok=True)
            with open(abs_path, "wb") as f:
                f.write(data)
        except OSError as exc:
            current_app.logger.exception("Writing upload %s failed", storage_key)
            raise UpstreamError("Could not store the file. Please try again.") from exc
        return url_for("main.serve_upload", storage_key=storage_key)

    def open(self, storage_key: str) -> str:
        abs_path = self._path_for(storage_key)
        if not os.path.isfile(abs_path):
            raise NotFoundError("File not found.")
        return abs_path


class CloudinaryBlobStore:
    """Unsigned upload to Cloudinary using an upload preset."""

    API = "https://api.cloudinary.com/v1_1/{cloud}/auto/upload"

    def put(self, data: bytes, storage_key: str, content_type: str) -> str:
        cfg = current_app.config
        cloud = cfg.get("CLOUDINARY_CLOUD_NAME")
        preset = cfg.get("CLOUDINARY_UPLOAD_PRESET")
        if not cloud or not preset:
            raise UpstreamError("File storage is not configured.")

        folder, _, filename = storage_key.rpartition("/")
        public_id = filename.rsplit(".", 1)[0]
        try:
            resp = requests.post(
                self.API.format(cloud=cloud),
                data={
                    "upload_preset": preset,
                    "folder": "/".join(p for p in (cfg.get("CLOUDINARY_FOLDER"), folder) if p),
                    "public_id": public_id,
                },
                files={"file": (filename, data, content_type)},
                timeout=cfg.get("CLOUDINARY_TIMEOUT", 20),
            )
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as exc:
            current_app.logger.warning("Cloudinary upload failed for %s: %s", storage_key, exc)
            raise UpstreamError("File upload failed. Please try again.") from exc

        url = payload.get("secure_url") or payload.get("url")
        if not url:
            current_app.logger.warning("Cloudinary returned no URL for %s", storage_key)
            raise UpstreamError("File upload failed. Please try again.")
        return url


def get_store():
    backend = (current_app.config.get("BLOB_BACKEND") or "local").lower()
    if backend == "cloudinary":
        return CloudinaryBlobStore()
    return LocalBlobStore()


# =========================================================
# Upload entry point
# =========================================================
def upload(file_storage, *, prefix: str = "uploads") -> StoredBlob:
    """
    Validate and store one uploaded file (werkzeug FileStorage).
    Only JPEG/PNG/WebP images and PDFs up to UPLOAD_MAX_BYTES are accepted.
    """
    if file_storage is None or not getattr(file_storage, "filename", ""):
        raise ValidationError("No file uploaded.", field="file")

    max_bytes = int(current_app.config.get("UPLOAD_MAX_BYTES", 5 * 1024 * 1024))
    data = file_storage.read(max_bytes + 1)
    if not data:
        raise ValidationError("Uploaded file is empty.", field="file")
    if len(data) > max_bytes:
        raise ValidationError(f"File is too large (max {max_bytes // (1024 * 1024)} MB).", field="file")

    content_type = sniff_content_type(data)
    if content_type not in ALLOWED_TYPES:
        raise ValidationError("Only JPG, PNG, WebP images or PDF files are allowed.", field="file")

    key = default_storage_key(content_type, prefix=prefix)
    url = get_store().put(data, key, content_type)
    current_app.logger.info("Stored upload %s (%s, %s bytes)", key, content_type, len(data))

    return StoredBlob(
        url=url,
        storage_key=key,
        sha256=sha256_hex(data),
        content_type=content_type,
        size=len(data),
    )
