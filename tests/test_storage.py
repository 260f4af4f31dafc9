# tests/test_storage.py
from __future__ import annotations

import io
import os
from unittest import mock

import pytest
import requests
from werkzeug.datastructures import FileStorage

from nitionz.errors import NotFoundError, UpstreamError, ValidationError
from nitionz.services import storage

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
PDF = b"%PDF-1.7\n" + b"0" * 64


def _file(data, filename="proof.png", content_type="image/png"):
    return FileStorage(stream=io.BytesIO(data), filename=filename, content_type=content_type)


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"\xff\xd8\xff\xe0rest", "image/jpeg"),
        (PNG, "image/png"),
        (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
        (PDF, "application/pdf"),
        (b"GIF89a", None),
        (b"MZ\x90\x00", None),
    ],
)
def test_sniff_content_type(data, expected):
    assert storage.sniff_content_type(data) == expected


def test_local_upload_writes_under_prefix(app):
    with app.test_request_context():
        blob = storage.upload(_file(PNG), prefix="users/7/payments")

        assert blob.storage_key.startswith("users/7/payments/")
        assert blob.storage_key.endswith(".png")
        assert blob.content_type == "image/png"
        assert blob.size == len(PNG)
        assert blob.sha256 == storage.sha256_hex(PNG)
        assert blob.url == f"/uploads/{blob.storage_key}"

        path = storage.LocalBlobStore().open(blob.storage_key)
        with open(path, "rb") as f:
            assert f.read() == PNG


def test_declared_content_type_is_ignored(app):
    with app.test_request_context():
        with pytest.raises(ValidationError):
            storage.upload(_file(b"<html>hi</html>", filename="proof.png", content_type="image/png"))

        blob = storage.upload(_file(PDF, filename="scan.jpg", content_type="image/jpeg"))
        assert blob.content_type == "application/pdf"
        assert blob.storage_key.endswith(".pdf")


def test_rejects_empty_missing_and_oversized(app):
    app.config["UPLOAD_MAX_BYTES"] = 32
    with app.test_request_context():
        with pytest.raises(ValidationError):
            storage.upload(None)
        with pytest.raises(ValidationError):
            storage.upload(_file(b""))
        with pytest.raises(ValidationError):
            storage.upload(_file(PNG))


def test_local_store_refuses_path_traversal(app):
    with app.app_context():
        with pytest.raises(NotFoundError):
            storage.LocalBlobStore().open("../../etc/passwd")
        with pytest.raises(NotFoundError):
            storage.LocalBlobStore().open("users/1/missing.png")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("users/7/kyc/a.png", "users/7/kyc/a.png"),
        ("users/7/./kyc//a.png", "users/7/kyc/a.png"),
        ("users/2/../1/2026/10/a.png", "users/1/2026/10/a.png"),
    ],
)
def test_normalize_key_collapses_dot_segments(raw, expected):
    assert storage.normalize_key(raw) == expected


@pytest.mark.parametrize("raw", ["", ".", "..", "../etc/passwd", "users/../../x", "/etc/passwd"])
def test_normalize_key_refuses_keys_outside_the_store(raw):
    with pytest.raises(NotFoundError):
        storage.normalize_key(raw)


def _cloudinary(app):
    app.config.update(
        BLOB_BACKEND="cloudinary",
        CLOUDINARY_CLOUD_NAME="demo",
        CLOUDINARY_UPLOAD_PRESET="unsigned",
        CLOUDINARY_FOLDER="nitionz",
    )


def test_cloudinary_upload_posts_the_file(app):
    _cloudinary(app)
    response = mock.Mock()
    response.raise_for_status.return_value = None
    response.json.return_value = {"secure_url": "https://res.cloudinary.com/demo/proof.png"}

    with app.app_context(), mock.patch.object(storage.requests, "post", return_value=response) as post:
        blob = storage.upload(_file(PNG), prefix="users/7/kyc")

    assert blob.url == "https://res.cloudinary.com/demo/proof.png"
    args, kwargs = post.call_args
    assert args[0] == "https://api.cloudinary.com/v1_1/demo/auto/upload"
    assert kwargs["data"]["upload_preset"] == "unsigned"
    assert kwargs["data"]["folder"].startswith("nitionz/users/7/kyc/")
    assert kwargs["files"]["file"][1] == PNG


def test_cloudinary_failure_is_an_upstream_error(app):
    _cloudinary(app)
    with app.app_context(), mock.patch.object(
        storage.requests, "post", side_effect=requests.ConnectionError("down")
    ):
        with pytest.raises(UpstreamError):
            storage.upload(_file(PNG))


def test_cloudinary_requires_configuration(app):
    app.config.update(BLOB_BACKEND="cloudinary", CLOUDINARY_CLOUD_NAME=None)
    with app.app_context():
        with pytest.raises(UpstreamError):
            storage.upload(_file(PNG))
    assert not os.path.exists(os.path.join(app.config["UPLOAD_DIR"], "uploads"))
