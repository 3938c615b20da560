from __future__ import annotations

import pytest

from rulebooks.errors import NotFoundError, PreconditionError, ValidationError
from rulebooks.storage import LocalAssetStorage, pdf_path, thumbnail_path, thumbnail_paths


class _Clock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


def test_signed_upload_is_single_use(tmp_path) -> None:
    storage = LocalAssetStorage(tmp_path, "http://files.local/")
    url = storage.create_signed_upload_url(pdf_path("abc"))
    token = url.rsplit("/", 1)[-1]

    assert url.startswith("http://files.local/storage/upload/")
    assert storage.accept_upload(token, b"%PDF-1.4") == "pdfs/abc.pdf"
    assert (tmp_path / "pdfs" / "abc.pdf").read_bytes() == b"%PDF-1.4"
    with pytest.raises(NotFoundError):
        storage.accept_upload(token, b"again")


def test_expired_upload_url_is_rejected(tmp_path) -> None:
    clock = _Clock()
    storage = LocalAssetStorage(tmp_path, "http://files.local", ttl_seconds=60, clock=clock)
    token = storage.create_signed_upload_url("pdfs/late.pdf").rsplit("/", 1)[-1]

    clock.now += 61
    with pytest.raises(PreconditionError):
        storage.accept_upload(token, b"%PDF-")
    assert not storage.exists("pdfs/late.pdf")


def test_issuing_an_upload_url_drops_expired_grants(tmp_path) -> None:
    clock = _Clock()
    storage = LocalAssetStorage(tmp_path, "http://files.local", ttl_seconds=60, clock=clock)
    abandoned = storage.create_signed_upload_url("pdfs/abandoned.pdf").rsplit("/", 1)[-1]

    clock.now += 61
    fresh = storage.create_signed_upload_url("pdfs/fresh.pdf").rsplit("/", 1)[-1]

    with pytest.raises(NotFoundError):
        storage.accept_upload(abandoned, b"%PDF-")
    assert storage.accept_upload(fresh, b"%PDF-") == "pdfs/fresh.pdf"


def test_paths_cannot_escape_the_root(tmp_path) -> None:
    storage = LocalAssetStorage(tmp_path / "root", "http://files.local")

    assert storage.normalize("pdfs//a b.pdf") == "pdfs/a_b.pdf"
    with pytest.raises(ValidationError):
        storage.normalize("../../etc/passwd")


def test_thumbnail_paths_and_public_urls(tmp_path) -> None:
    storage = LocalAssetStorage(tmp_path, "http://files.local")
    stored = storage.upload(thumbnail_path("abc", "image/jpeg"), b"jpeg", "image/jpeg")

    assert stored == "thumbnails/abc.jpg"
    assert storage.public_url(stored) == "http://files.local/storage/files/thumbnails/abc.jpg"
    assert "thumbnails/abc.jpg" in thumbnail_paths("abc")
    assert thumbnail_path("abc", None) == "thumbnails/abc.png"


def test_remove_skips_missing_files(tmp_path) -> None:
    storage = LocalAssetStorage(tmp_path, "http://files.local")
    storage.upload("pdfs/one.pdf", b"1")

    removed = storage.remove(["pdfs/one.pdf", "pdfs/two.pdf"])

    assert removed == ["pdfs/one.pdf"]
    assert not storage.exists("pdfs/one.pdf")
