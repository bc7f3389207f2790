"""
Contracts for the collaborators the restyle pipeline depends on.

The pipeline only talks to pages, images, storage and accounts through these
protocols, so tests and alternative backends can substitute their own
implementations. `app.services.pages` and `app.services.accounts` provide the
default in-process ones.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from app.models.pages import MediaImage, Page, Viewport


class StorageError(RuntimeError):
    """Raised when a storage operation fails in a non-recoverable way."""


class ImageFetchError(RuntimeError):
    """Raised when image bytes cannot be retrieved for a URL."""


@dataclass(frozen=True, slots=True)
class UploadedImage:
    """Location of a freshly uploaded image."""

    public_url: str
    storage_id: int


@dataclass(frozen=True, slots=True)
class FeatureAccess:
    allowed: bool
    reason: str = ""
    need_subscription: bool = False


@dataclass(frozen=True, slots=True)
class QuotaStatus:
    allowed: bool
    remaining: int = 0
    reason: str = ""


class PageRepository(Protocol):
    def get_page(self, page_id: int) -> Page | None:
        """Return the page with its sections ordered by display order."""
        ...

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
        """
        Create an image record for `upload` and point the section at it.

        Raises:
            StorageError: the record could not be created or linked.
        """
        ...


class ImageFetcher(Protocol):
    def fetch(self, url: str) -> bytes:
        """
        Raises:
            ImageFetchError: the image could not be retrieved.
        """
        ...


class ImageStorage(Protocol):
    def upload(self, data: bytes, filename: str, content_type: str = "image/png") -> UploadedImage:
        """
        Raises:
            StorageError: the bytes could not be stored.
        """
        ...


class AccountService(Protocol):
    def resolve_token(self, token: str) -> str | None:
        """Map a bearer token to a user id."""
        ...

    def check_feature_access(self, user_id: str, feature: str) -> FeatureAccess:
        ...

    def check_quota(self, user_id: str) -> QuotaStatus:
        ...

    def get_generation_api_key(self, user_id: str) -> str | None:
        ...

    def record_usage(self, user_id: str, feature: str, images: int = 1) -> None:
        ...
