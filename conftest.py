import os
import tempfile
from pathlib import Path

_TMP_ROOT = Path(tempfile.mkdtemp(prefix="restyle-tests-"))
os.environ.setdefault("RESTYLE_STORAGE_DIR", str(_TMP_ROOT / "images"))
os.environ.setdefault("RESTYLE_OUTPUT_LOG", str(_TMP_ROOT / "output.txt"))
os.environ.setdefault("GOOGLE_API_KEY", "test-platform-key")

from typing import Dict, List  # noqa: E402

import cv2  # noqa: E402
import numpy as np  # noqa: E402
import pytest  # noqa: E402

from app.api.v1.schemas import EditOptions  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.models.pages import MediaImage, Page, Section  # noqa: E402
from app.services.accounts import Account, AccountDirectory  # noqa: E402
from app.services.interfaces import ImageFetchError, StorageError, UploadedImage  # noqa: E402
from app.services.pages import PageStore  # noqa: E402


def make_image(width: int, height: int, seed: int = 0) -> np.ndarray:
    """BGR test image whose rows are distinguishable from each other."""
    rows = np.arange(height, dtype=np.uint32).reshape(-1, 1)
    cols = np.arange(width, dtype=np.uint32).reshape(1, -1)
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[..., 0] = ((rows + seed * 37) % 256).astype(np.uint8)
    image[..., 1] = ((rows // 256 + seed * 11) % 256).astype(np.uint8)
    image[..., 2] = ((cols + seed * 53) % 256).astype(np.uint8)
    return image


def make_png(width: int, height: int, seed: int = 0) -> bytes:
    ok, encoded = cv2.imencode(".png", make_image(width, height, seed))
    assert ok
    return encoded.tobytes()


def edit_options(**enabled) -> EditOptions:
    """EditOptions with every category off except those passed as True."""
    return EditOptions.model_validate(
        {
            "people": {"enabled": enabled.get("people", False), "mode": "similar"},
            "text": {"enabled": enabled.get("text", False), "mode": "nuance"},
            "pattern": {"enabled": enabled.get("pattern", False)},
            "objects": {"enabled": enabled.get("objects", False)},
            "color": {"enabled": enabled.get("color", False), "scheme": "blue"},
            "layout": {"enabled": enabled.get("layout", False)},
        }
    )


class FakeFetcher:
    def __init__(self, images: Dict[str, bytes] | None = None):
        self.images: Dict[str, bytes] = dict(images or {})
        self.calls: List[str] = []

    def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        if url not in self.images:
            raise ImageFetchError(f"Failed to download image from {url}")
        return self.images[url]


class FakeStorage:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads: Dict[str, bytes] = {}

    def upload(self, data: bytes, filename: str, content_type: str = "image/png") -> UploadedImage:
        if self.fail:
            raise StorageError("disk full")
        self.uploads[filename] = data
        return UploadedImage(public_url=f"/media/{filename}", storage_id=len(self.uploads))


class FakeRestyler:
    """Echoes the composite back (optionally rescaled) and records every call."""

    def __init__(self, fail_indices=(), scale: float = 1.0):
        self.fail_indices = set(fail_indices)
        self.scale = scale
        self.calls: List[dict] = []

    def restyle(
        self,
        segment,
        edit_options,
        segment_index,
        total_segments,
        style_reference=None,
        design_hints=None,
    ):
        self.calls.append(
            {
                "segment": segment,
                "index": segment_index,
                "total": total_segments,
                "style_reference": style_reference,
                "design_hints": design_hints,
            }
        )
        if segment_index in self.fail_indices:
            return None
        if self.scale == 1.0:
            return segment
        image = cv2.imdecode(np.frombuffer(segment, dtype=np.uint8), cv2.IMREAD_COLOR)
        h, w = image.shape[:2]
        resized = cv2.resize(image, (int(round(w * self.scale)), int(round(h * self.scale))))
        ok, encoded = cv2.imencode(".png", resized)
        assert ok
        return encoded.tobytes()


def build_page(
    heights,
    width: int = 400,
    owner_id: str = "user-1",
    page_id: int = 1,
    mobile_heights=None,
):
    """Create a page whose sections carry generated images; returns (page, images by url)."""
    images: Dict[str, bytes] = {}
    sections = []
    image_id = 100
    for position, height in enumerate(heights):
        section_id = position + 1
        url = f"https://cdn.example.com/p{page_id}/s{section_id}.png"
        images[url] = make_png(width, height, seed=position)
        image = MediaImage(id=image_id, file_path=url, width=width, height=height)
        image_id += 1

        mobile = None
        if mobile_heights is not None and position < len(mobile_heights) and mobile_heights[position]:
            mobile_url = f"https://cdn.example.com/p{page_id}/s{section_id}-m.png"
            images[mobile_url] = make_png(width // 2, mobile_heights[position], seed=position + 10)
            mobile = MediaImage(id=image_id, file_path=mobile_url, width=width // 2, height=mobile_heights[position])
            image_id += 1

        # Stored out of order to prove display order comes from `order`.
        sections.insert(0, Section(id=section_id, order=position, image=image, mobile_image=mobile))
    return Page(id=page_id, owner_id=owner_id, title="Landing", sections=sections), images


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def page_store():
    return PageStore()


@pytest.fixture
def accounts():
    directory = AccountDirectory(platform_api_key="platform-key")
    directory.add_account(Account(user_id="user-1", plan="pro", credits=10), token="token-1")
    return directory
