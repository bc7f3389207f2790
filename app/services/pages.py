from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Dict, List

import requests

from app.config import get_settings
from app.models.pages import MediaImage, Page, SectionImageHistory, Viewport
from app.services.interfaces import ImageFetchError, StorageError, UploadedImage

logger = logging.getLogger(__name__)


class PageStore:
    """
    Simple in-memory page repository.

    This is a minimal abstraction that can later be replaced by a database
    without changing the pipeline; it implements `PageRepository`.
    """

    def __init__(self) -> None:
        self._pages: Dict[int, Page] = {}
        self._history: List[SectionImageHistory] = []
        self._next_image_id = 1
        self._lock = threading.Lock()

    def add_page(self, page: Page) -> Page:
        with self._lock:
            self._pages[page.id] = page
            # Generated image ids stay above every id seeded with the page.
            for section in page.sections:
                for image in (section.image, section.mobile_image):
                    if image is not None:
                        self._next_image_id = max(self._next_image_id, image.id + 1)
        return page

    def get_page(self, page_id: int) -> Page | None:
        with self._lock:
            page = self._pages.get(page_id)
            if page is None:
                return None
            return replace(page, sections=page.ordered_sections())

    def list_pages(self) -> List[Page]:
        return list(self._pages.values())

    @property
    def history(self) -> List[SectionImageHistory]:
        return list(self._history)

    def create_image_and_relink(
        self,
        section_id: int,
        viewport: Viewport,
        upload: UploadedImage,
        width: int,
        height: int,
        source_url: str | None,
        user_id: str | None,
    ) -> MediaImage:
        """Create a MediaImage for the upload, relink the section and record history."""
        with self._lock:
            section = next(
                (s for page in self._pages.values() for s in page.sections if s.id == section_id),
                None,
            )
            if section is None:
                raise StorageError(f"Section {section_id} no longer exists.")

            media = MediaImage(
                id=self._next_image_id,
                file_path=upload.public_url,
                width=width,
                height=height,
                mime="image/png",
                source_url=source_url,
                source_type="restyle-edit",
            )
            self._next_image_id += 1
            previous = section.image_for(viewport)
            if viewport is Viewport.MOBILE:
                section.mobile_image = media
            else:
                section.image = media

            if previous is not None:
                self._history.append(
                    SectionImageHistory(
                        section_id=section_id,
                        user_id=user_id,
                        previous_image_id=previous.id,
                        new_image_id=media.id,
                        action_type="restyle-mobile" if viewport is Viewport.MOBILE else "restyle",
                    )
                )
        return media


class FileImageStorage:
    """
    Filesystem-backed image storage.

    Files are written to `<base_dir>/<filename>` and exposed under
    `<public_base_url>/<filename>`.
    """

    def __init__(self, base_dir: Path, public_base_url: str) -> None:
        self._base_dir = base_dir
        self._public_base_url = public_base_url.rstrip("/")
        self._ids = itertools.count(1)
        self._base_dir.mkdir(parents=True, exist_ok=True)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def upload(self, data: bytes, filename: str, content_type: str = "image/png") -> UploadedImage:
        path = self._base_dir / filename
        if path.exists():
            raise StorageError(f"Refusing to overwrite existing file {filename}.")
        try:
            path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Failed to persist {filename} to disk.") from exc
        return UploadedImage(public_url=f"{self._public_base_url}/{filename}", storage_id=next(self._ids))

    def resolve(self, url: str) -> Path | None:
        """Map a public URL produced by this storage back to its file."""
        prefix = f"{self._public_base_url}/"
        if not url.startswith(prefix):
            return None
        return self._base_dir / url[len(prefix):]


class HTTPImageFetcher:
    """
    Fetch image bytes by URL.

    URLs served by the local storage are read from disk; everything else is
    downloaded over HTTP.
    """

    def __init__(self, storage: FileImageStorage | None = None, timeout: float | None = None) -> None:
        self._storage = storage
        self._timeout = timeout if timeout is not None else get_settings().fetch_timeout_seconds

    def fetch(self, url: str) -> bytes:
        if self._storage is not None:
            local = self._storage.resolve(url)
            if local is not None:
                try:
                    return local.read_bytes()
                except OSError as exc:
                    raise ImageFetchError(f"Failed to read {url}") from exc

        try:
            response = requests.get(url, timeout=self._timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            raise ImageFetchError(f"Failed to download image from {url}") from exc
        return response.content


# Global instances, created on first use so settings loaded from .env apply.
_default_store: PageStore | None = None
_default_storage: FileImageStorage | None = None
_default_fetcher: HTTPImageFetcher | None = None


def get_page_store() -> PageStore:
    """
    Return the process-wide page store.

    Abstracted behind a function so routes can have it overridden in tests.
    """
    global _default_store
    if _default_store is None:
        _default_store = PageStore()
    return _default_store


def get_image_storage() -> FileImageStorage:
    global _default_storage
    if _default_storage is None:
        settings = get_settings()
        _default_storage = FileImageStorage(
            base_dir=settings.storage_dir,
            public_base_url=settings.public_base_url,
        )
    return _default_storage


def get_image_fetcher() -> HTTPImageFetcher:
    global _default_fetcher
    if _default_fetcher is None:
        _default_fetcher = HTTPImageFetcher(storage=get_image_storage())
    return _default_fetcher
