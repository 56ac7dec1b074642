import base64
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from app.config import StorageConfig
from app.errors import ConfigurationError
from app.models import GeneratedImage
from app.services import object_store, packager


@pytest.fixture()
def storage(tmp_path) -> StorageConfig:
    return StorageConfig(result_dir=tmp_path / "results", public_prefix="/uploads", s3_bucket="bucket")


def test_inline_mode_returns_data_urls(storage):
    urls = packager.package_images([GeneratedImage(data=b"abc", mime_type="image/webp")], storage, "inline")

    assert urls == ["data:image/webp;base64," + base64.b64encode(b"abc").decode()]
    assert not storage.result_dir.exists()


def test_local_mode_writes_unique_files(storage):
    images = [GeneratedImage(data=b"first"), GeneratedImage(data=b"second")]

    urls = packager.package_images(images, storage, "local")

    assert len(set(urls)) == 2
    for url, expected in zip(urls, (b"first", b"second")):
        assert url.startswith("/uploads/") and url.endswith(".png")
        assert (Path(storage.result_dir) / url.rsplit("/", 1)[1]).read_bytes() == expected


def test_hosted_urls_pass_through(storage):
    urls = packager.package_images([GeneratedImage(url="https://cdn.example.com/x.png")], storage, "local")

    assert urls == ["https://cdn.example.com/x.png"]
    assert not storage.result_dir.exists()


def test_s3_mode_uploads_through_object_store(storage, monkeypatch):
    uploads = []

    def fake_put(bucket, key, data, *, content_type):
        uploads.append((bucket, key, data, content_type))
        return f"https://cdn.example.com/{key}"

    monkeypatch.setattr(object_store, "put_bytes", fake_put)

    urls = packager.package_images([GeneratedImage(data=b"obj", mime_type="image/jpeg")], storage, "s3")

    bucket, key, data, content_type = uploads[0]
    assert bucket == "bucket"
    assert key.startswith("studio/") and key.endswith(".jpg")
    assert (data, content_type) == (b"obj", "image/jpeg")
    assert urls == [f"https://cdn.example.com/{key}"]


def test_s3_mode_without_bucket_is_a_configuration_error(storage):
    storage.s3_bucket = None

    with pytest.raises(ConfigurationError):
        packager.package_images([GeneratedImage(data=b"obj")], storage, "s3")


def test_put_bytes_prefers_public_base(monkeypatch):
    client = MagicMock()
    monkeypatch.setattr(object_store, "get_client", lambda: client)
    monkeypatch.setenv("R2_PUBLIC_BASE", "https://cdn.example.com/")

    url = object_store.put_bytes("bucket", "studio/a.png", b"x", content_type="image/png")

    assert url == "https://cdn.example.com/studio/a.png"
    client.put_object.assert_called_once_with(Bucket="bucket", Key="studio/a.png", Body=b"x", ContentType="image/png")
    client.generate_presigned_url.assert_not_called()


def test_put_bytes_falls_back_to_presigned_url(monkeypatch):
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://signed.example.com/a.png?sig=1"
    monkeypatch.setattr(object_store, "get_client", lambda: client)
    for name in ("R2_PUBLIC_BASE", "S3_PUBLIC_BASE", "R2_SIGNED_GET_TTL", "S3_SIGNED_GET_TTL"):
        monkeypatch.delenv(name, raising=False)

    url = object_store.put_bytes("bucket", "studio/a.png", b"x", content_type="image/png")

    assert url == "https://signed.example.com/a.png?sig=1"
    assert client.generate_presigned_url.call_args.kwargs["ExpiresIn"] == 900
