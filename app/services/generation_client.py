"""
Direct HTTP client for the image-generation service.

Talks to a `generateContent`-style endpoint over `requests`: the request is a
list of parts (inline images and text), the response carries the generated
image as base64 inline data.

All calls go through the process-wide rate limiter. There are no retries:
a failed call simply yields None so the caller can keep the original segment.
"""

import base64
import logging
from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import List, Optional

import requests
from PIL import Image

from app.config import get_settings
from app.services.rate_limiter import GenerationRateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)


def log_to_file(message: str, path: Optional[Path] = None):
    """Append message to the operator log with a timestamp."""
    target = path or get_settings().output_log
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    try:
        with open(target, "a", encoding="utf-8") as f:
            f.write(f"[{timestamp}] {message}\n")
    except OSError as exc:
        logger.warning("Could not write operator log %s: %s", target, exc)


def _guess_mime(data: bytes) -> str:
    try:
        with Image.open(BytesIO(data)) as pil_image:
            fmt = (pil_image.format or "PNG").lower()
    except (OSError, ValueError):
        return "image/png"
    return "image/jpeg" if fmt == "jpeg" else f"image/{fmt}"


def image_part(data: bytes) -> dict:
    """Build an inline image part for a generation request."""
    return {
        "inlineData": {
            "mimeType": _guess_mime(data),
            "data": base64.b64encode(data).decode("utf-8"),
        }
    }


def text_part(text: str) -> dict:
    return {"text": text}


class GenerationHTTPClient:
    """
    Client for one generation model, authenticated with one API key.

    Args:
        api_key: Key for the generation service.
        model: Model identifier, e.g. `gemini-3-pro-image-preview`.
        base_url: API root, without trailing slash.
        timeout: Per-request timeout in seconds. Expiry counts as no result.
        rate_limiter: Shared limiter; defaults to the process-wide instance.
        rate_limit_timeout: Seconds to wait for a limiter token.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        rate_limiter: Optional[GenerationRateLimiter] = None,
        rate_limit_timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        settings = get_settings()
        self.api_key = api_key
        self.model = model or settings.model
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.generation_timeout_seconds
        self.rate_limiter = rate_limiter or get_rate_limiter()
        self.rate_limit_timeout = (
            rate_limit_timeout if rate_limit_timeout is not None else settings.rate_limit_timeout_seconds
        )
        self.session = session or requests.Session()

        if not self.api_key:
            logger.warning("Generation API key not set. Generation calls will be skipped.")

    def is_available(self) -> bool:
        return bool(self.api_key)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def generate_image(self, parts: List[dict], temperature: float) -> Optional[bytes]:
        """
        Send one generation request and return the first image it produced.

        Returns None on a missing key, limiter timeout, HTTP error, request
        timeout, or a response without image data.
        """
        if not self.is_available():
            logger.warning("Generation client not configured. Request skipped.")
            return None

        if not self.rate_limiter.acquire(timeout=self.rate_limit_timeout):
            message = f"RATE LIMITER TIMEOUT after {self.rate_limit_timeout}s - keeping original"
            logger.error(message)
            log_to_file(message)
            return None

        payload = {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "responseModalities": ["IMAGE", "TEXT"],
                "temperature": temperature,
            },
            "toolConfig": {"functionCallingConfig": {"mode": "NONE"}},
        }

        log_to_file(f"Calling {self.model} with {len(parts)} parts (temperature={temperature})")
        try:
            response = self.session.post(
                self.endpoint,
                params={"key": self.api_key},
                headers={"Content-Type": "application/json"},
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            message = f"GENERATION TIMEOUT after {self.timeout}s - keeping original"
            logger.error(message)
            log_to_file(message)
            return None
        except requests.exceptions.RequestException as exc:
            logger.error("Generation request failed: %s", exc)
            log_to_file(f"GENERATION ERROR: {exc}")
            return None

        if response.status_code == 429:
            self.rate_limiter.report_429()
            log_to_file("GENERATION RATE LIMITED (429) - backoff applied")
            return None

        if not response.ok:
            detail = response.text[:500]
            logger.error("Generation API error (%d): %s", response.status_code, detail)
            log_to_file(f"GENERATION API ERROR ({response.status_code}): {detail}")
            return None

        self.rate_limiter.report_success()

        try:
            body = response.json()
        except ValueError as exc:
            logger.error("Generation response was not JSON: %s", exc)
            return None

        image = self._extract_image(body)
        if image is None:
            logger.error("No image data in generation response")
            log_to_file("GENERATION FAILED: no image in response")
            return None

        log_to_file(f"GENERATION SUCCESS ({len(image)} bytes)")
        return image

    @staticmethod
    def _extract_image(body: dict) -> Optional[bytes]:
        candidates = body.get("candidates") or []
        if not candidates:
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        for part in parts:
            inline = part.get("inlineData") or part.get("inline_data") or {}
            data = inline.get("data")
            if data:
                try:
                    return base64.b64decode(data)
                except (ValueError, TypeError) as exc:
                    logger.error("Could not decode inline image data: %s", exc)
                    return None
        return None
