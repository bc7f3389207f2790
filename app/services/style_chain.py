from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class StyleChain:
    """
    Style reference for one pass of a restyle job.

    Holds the processed output of segment 0 of the pass. Later segments read
    it through `get_reference()`; it is written at most once and never
    replaced. A mobile pass can be given the desktop reference as `fallback`
    so its first segment is styled consistently across viewports.
    """

    __slots__ = ("_name", "_reference", "_fallback")

    def __init__(self, name: str = "desktop", fallback: bytes | None = None) -> None:
        self._name = name
        self._reference: bytes | None = None
        self._fallback = fallback

    @property
    def is_set(self) -> bool:
        return self._reference is not None

    def get_reference(self) -> bytes | None:
        """Own reference if established, else the fallback (may be None)."""
        if self._reference is not None:
            return self._reference
        return self._fallback

    def set_if_first(self, index: int, buffer: bytes | None) -> bool:
        """
        Record `buffer` as the reference if it is segment 0's result.

        Returns True only when the reference was set by this call.
        """
        if index != 0 or buffer is None or self._reference is not None:
            return False
        self._reference = buffer
        logger.info("Segment 1 saved as %s style reference for subsequent segments", self._name)
        return True
