from unittest.mock import MagicMock, patch

import pytest
import requests

from app.models.pages import MediaImage, Page, Section, Viewport
from app.services.interfaces import ImageFetchError, StorageError, UploadedImage
from app.services.pages import FileImageStorage, HTTPImageFetcher


def _page():
    return Page(
        id=7,
        owner_id="user-1",
        sections=[
            Section(id=2, order=1, image=MediaImage(id=20, file_path="/media/b.png")),
            Section(
                id=1,
                order=0,
                image=MediaImage(id=10, file_path="/media/a.png"),
                mobile_image=MediaImage(id=11, file_path="/media/a-m.png"),
            ),
        ],
    )


def test_get_page_orders_sections(page_store):
    page_store.add_page(_page())

    page = page_store.get_page(7)

    assert [section.id for section in page.sections] == [1, 2]
    assert page_store.get_page(8) is None


def test_relink_creates_image_above_seeded_ids(page_store):
    page_store.add_page(_page())
    upload = UploadedImage(public_url="/media/new.png", storage_id=1)

    media = page_store.create_image_and_relink(1, Viewport.DESKTOP, upload, 400, 300, "/media/a.png", "user-1")

    assert media.id == 21
    assert (media.width, media.height) == (400, 300)
    assert media.source_type == "restyle-edit"
    assert page_store.get_page(7).sections[0].image is media
    entry = page_store.history[0]
    assert (entry.section_id, entry.previous_image_id, entry.new_image_id) == (1, 10, 21)
    assert entry.action_type == "restyle"


def test_relink_mobile_updates_mobile_image_only(page_store):
    page_store.add_page(_page())
    upload = UploadedImage(public_url="/media/new-m.png", storage_id=1)

    media = page_store.create_image_and_relink(1, Viewport.MOBILE, upload, 200, 300, None, "user-1")

    section = page_store.get_page(7).sections[0]
    assert section.mobile_image is media
    assert section.image.id == 10
    assert page_store.history[0].action_type == "restyle-mobile"


def test_relink_unknown_section_raises(page_store):
    page_store.add_page(_page())
    with pytest.raises(StorageError):
        page_store.create_image_and_relink(
            99, Viewport.DESKTOP, UploadedImage("/media/x.png", 1), 1, 1, None, None
        )


def test_file_storage_writes_and_resolves(tmp_path):
    storage = FileImageStorage(tmp_path / "images", "/media/")

    uploaded = storage.upload(b"png", "a.png")

    assert uploaded.public_url == "/media/a.png"
    assert (tmp_path / "images" / "a.png").read_bytes() == b"png"
    assert storage.resolve("/media/a.png") == tmp_path / "images" / "a.png"
    assert storage.resolve("https://cdn.example.com/a.png") is None


def test_file_storage_refuses_to_overwrite(tmp_path):
    storage = FileImageStorage(tmp_path, "/media")
    storage.upload(b"one", "a.png")
    with pytest.raises(StorageError):
        storage.upload(b"two", "a.png")


def test_fetcher_reads_local_files(tmp_path):
    storage = FileImageStorage(tmp_path, "/media")
    storage.upload(b"local-bytes", "a.png")
    fetcher = HTTPImageFetcher(storage=storage, timeout=1)

    assert fetcher.fetch("/media/a.png") == b"local-bytes"
    with pytest.raises(ImageFetchError):
        fetcher.fetch("/media/missing.png")


def test_fetcher_downloads_remote_urls():
    response = MagicMock()
    response.content = b"remote-bytes"
    with patch("app.services.pages.requests.get", return_value=response) as mock_get:
        data = HTTPImageFetcher(timeout=3).fetch("https://cdn.example.com/a.png")

    assert data == b"remote-bytes"
    mock_get.assert_called_once_with("https://cdn.example.com/a.png", timeout=3)


def test_fetcher_wraps_http_errors():
    with patch("app.services.pages.requests.get", side_effect=requests.exceptions.ConnectionError("down")):
        with pytest.raises(ImageFetchError):
            HTTPImageFetcher(timeout=3).fetch("https://cdn.example.com/a.png")


def test_get_page_leaves_stored_order_untouched(page_store):
    stored = page_store.add_page(_page())

    page = page_store.get_page(7)

    assert [section.id for section in page.sections] == [1, 2]
    assert [section.id for section in stored.sections] == [2, 1]
    # Sections are shared, so a relink is visible through either view.
    assert page.sections[1] is stored.sections[0]
