"""
Restyle job driver.

A job walks the page's segments strictly in display order, desktop pass
first and the optional mobile pass second. For every segment it plans the
seam adjustment, builds the composite, asks the generation service for a
restyled version (passing the pass's style reference), cuts the segment back
out, stores it and relinks the section, then reports progress.

Problems with the job as a whole (no edits selected, missing or foreign page,
nothing to process, no generation key) abort before any segment is touched
and are reported as a single `error` event. Problems with one segment only
skip that segment; the job always reaches `complete` otherwise.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from app.api.v1.schemas import (
    CompletePayload,
    DesignDefinition,
    EditOptions,
    ErrorPayload,
    ProgressPayload,
    UpdatedSectionPayload,
)
from app.models.pages import BoundaryOverride, MediaImage, Section, SegmentOutcome, UpdatedSection, Viewport
from app.services.accounts import RESTYLE_FEATURE
from app.services.boundaries import plan_segment
from app.services.compositor import expand_segment, fit_to_geometry, image_size, restore_segment
from app.services.generation_client import GenerationHTTPClient
from app.services.interfaces import AccountService, ImageFetcher, ImageStorage, PageRepository
from app.services.progress import EventSink
from app.services.restyler import RemoteRestyler
from app.services.style_chain import StyleChain

logger = logging.getLogger(__name__)

# A section paired with the image it had when the job started. Relinking
# mutates the section, so neighbors are always read from this snapshot.
Segment = Tuple[Section, MediaImage]


class RestyleAbortedError(RuntimeError):
    """Job-fatal condition detected before any segment was processed."""


@dataclass(slots=True)
class RestyleJob:
    """Everything one restyle run needs to know about its request."""

    page_id: int
    user_id: str
    edit_options: EditOptions
    design_definition: DesignDefinition | None = None
    include_mobile: bool = False
    overrides: Dict[int, BoundaryOverride] = field(default_factory=dict)


@dataclass(slots=True)
class RestyleSummary:
    """What a finished run did; mirrors the `complete` event."""

    outcomes: List[SegmentOutcome] = field(default_factory=list)
    aborted: str | None = None

    @property
    def updated(self) -> List[UpdatedSection]:
        return [outcome.updated for outcome in self.outcomes if outcome.updated is not None]

    @property
    def total_count(self) -> int:
        return len(self.outcomes)


def _default_restyler_factory(api_key: str) -> RemoteRestyler:
    return RemoteRestyler(GenerationHTTPClient(api_key=api_key))


class RestyleOrchestrator:
    """
    Drives restyle jobs against a set of collaborators.

    The orchestrator itself is stateless between jobs; all per-job state
    (outcomes, counters, style chains) lives in the `run()` call.
    """

    def __init__(
        self,
        pages: PageRepository,
        fetcher: ImageFetcher,
        storage: ImageStorage,
        accounts: AccountService,
        restyler_factory: Callable[[str], RemoteRestyler] = _default_restyler_factory,
    ) -> None:
        self.pages = pages
        self.fetcher = fetcher
        self.storage = storage
        self.accounts = accounts
        self.restyler_factory = restyler_factory

    def run(
        self,
        job: RestyleJob,
        sink: EventSink,
        cancel: Optional[threading.Event] = None,
    ) -> RestyleSummary:
        """
        Execute `job`, reporting through `sink`.

        Emits any number of `progress` events followed by exactly one
        `complete` or `error` event.
        """
        summary = RestyleSummary()
        try:
            self._execute(job, sink, summary, cancel)
        except RestyleAbortedError as exc:
            logger.error("Restyle for page %s aborted: %s", job.page_id, exc)
            summary.aborted = str(exc)
            sink.emit(ErrorPayload(error=str(exc)))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Restyle for page %s failed unexpectedly", job.page_id)
            summary.aborted = str(exc) or exc.__class__.__name__
            sink.emit(ErrorPayload(error=summary.aborted))
        return summary

    def _validate(self, job: RestyleJob) -> Tuple[List[Segment], List[Segment], RemoteRestyler]:
        page = self.pages.get_page(job.page_id)
        if page is None:
            raise RestyleAbortedError("Page not found")
        if page.owner_id != job.user_id:
            raise RestyleAbortedError("Page not found")

        ordered = page.ordered_sections()
        desktop = [(s, s.image) for s in ordered if s.image is not None and s.image.file_path]
        mobile: List[Segment] = []
        if job.include_mobile:
            mobile = [
                (s, s.mobile_image) for s in ordered if s.mobile_image is not None and s.mobile_image.file_path
            ]

        if not desktop and not mobile:
            raise RestyleAbortedError("No sections with images found")

        api_key = self.accounts.get_generation_api_key(job.user_id)
        if not api_key:
            raise RestyleAbortedError("Generation API key is not configured")

        return desktop, mobile, self.restyler_factory(api_key)

    def _execute(
        self,
        job: RestyleJob,
        sink: EventSink,
        summary: RestyleSummary,
        cancel: Optional[threading.Event],
    ) -> None:
        categories = job.edit_options.enabled_categories()
        if not categories:
            raise RestyleAbortedError("No edit options selected")

        print("\n" + "=" * 60)
        print(f"RESTYLE START - page {job.page_id}")
        print("=" * 60)
        logger.info(
            "Starting restyle for page %s (edits: %s, mobile: %s, overrides: %d)",
            job.page_id,
            ", ".join(categories),
            job.include_mobile,
            len(job.overrides),
        )
        desktop, mobile, restyler = self._validate(job)
        total = len(desktop) + len(mobile)
        sink.emit(ProgressPayload(step="init", message=f"Starting {', '.join(categories)} edits..."))
        logger.info("Found %d desktop and %d mobile segments", len(desktop), len(mobile))

        sink.emit(ProgressPayload(step="prompt", message="Preparing edit instructions..."))

        desktop_chain = StyleChain("desktop")
        self._run_pass(Viewport.DESKTOP, desktop, job, restyler, desktop_chain, sink, summary, total, cancel)

        if mobile:
            sink.emit(ProgressPayload(step="mobile", message="Starting mobile sections..."))
            mobile_chain = StyleChain("mobile", fallback=desktop_chain.get_reference())
            self._run_pass(Viewport.MOBILE, mobile, job, restyler, mobile_chain, sink, summary, total, cancel)

        updated = summary.updated
        print("\n" + "=" * 60)
        print("RESTYLE SUMMARY")
        print("=" * 60)
        print(f"Page: {job.page_id}")
        print(f"Segments updated: {len(updated)}/{summary.total_count}")
        print("=" * 60 + "\n")
        logger.info("Restyle complete for page %s: %d/%d updated", job.page_id, len(updated), summary.total_count)

        sink.emit(
            CompletePayload(
                updated_count=len(updated),
                total_count=summary.total_count,
                sections=[
                    UpdatedSectionPayload(
                        section_id=item.section_id,
                        viewport=item.viewport.value,
                        old_image_id=item.old_image_id,
                        new_image_id=item.new_image_id,
                        new_image_url=item.new_image_url,
                    )
                    for item in updated
                ],
            )
        )

    def _run_pass(
        self,
        viewport: Viewport,
        sections: List[Segment],
        job: RestyleJob,
        restyler: RemoteRestyler,
        chain: StyleChain,
        sink: EventSink,
        summary: RestyleSummary,
        total: int,
        cancel: Optional[threading.Event],
    ) -> None:
        label = "mobile section" if viewport is Viewport.MOBILE else "section"
        for index, (section, _) in enumerate(sections):
            current = summary.total_count + 1
            with_reference = " (with style reference)" if chain.get_reference() is not None else ""
            sink.emit(
                ProgressPayload(
                    step="processing",
                    message=f"Processing {label} {index + 1}/{len(sections)}...{with_reference}",
                    current=current,
                    total=total,
                )
            )

            if cancel is not None and cancel.is_set():
                outcome = SegmentOutcome.skipped(section.id, index, viewport, "cancelled")
            else:
                outcome = self.process_segment(viewport, sections, index, job, restyler, chain)
            summary.outcomes.append(outcome)

            if outcome.is_updated:
                chain.set_if_first(index, outcome.output)
                self._record_usage(job.user_id)
                sink.emit(
                    ProgressPayload(
                        step="updated",
                        message=f"{label.capitalize()} {index + 1}/{len(sections)} updated",
                        current=current,
                        total=total,
                    )
                )
            else:
                sink.emit(
                    ProgressPayload(
                        step="skipped",
                        message=f"{label.capitalize()} {index + 1}/{len(sections)} kept original ({outcome.reason})",
                        current=current,
                        total=total,
                    )
                )

    def process_segment(
        self,
        viewport: Viewport,
        sections: List[Segment],
        index: int,
        job: RestyleJob,
        restyler: RemoteRestyler,
        chain: StyleChain,
    ) -> SegmentOutcome:
        """Run one segment through plan, composite, restyle, restore and persist."""
        section, image = sections[index]
        logger.info("Processing %s segment %d: section %s", viewport.value, index + 1, section.id)

        try:
            own = self.fetcher.fetch(image.file_path)
            _, own_height = image_size(own)

            override = job.overrides.get(section.id)
            predecessor = successor = None
            if override is not None and override.offset_top > 0 and index > 0:
                predecessor = self._fetch_neighbor(*sections[index - 1])
            if override is not None and override.offset_bottom > 0 and index < len(sections) - 1:
                successor = self._fetch_neighbor(*sections[index + 1])

            plan = plan_segment(
                own_height,
                override,
                predecessor_height=predecessor[1] if predecessor else None,
                successor_height=successor[1] if successor else None,
            )
            composite = expand_segment(
                own,
                plan,
                predecessor=predecessor[0] if predecessor else None,
                successor=successor[0] if successor else None,
            )

            result = restyler.restyle(
                composite.data,
                job.edit_options,
                index,
                len(sections),
                style_reference=chain.get_reference(),
                design_hints=job.design_definition,
            )
            if result is None:
                logger.error("Segment %d: generation failed, keeping original", index + 1)
                return SegmentOutcome.skipped(section.id, index, viewport, "no image generated")

            final = fit_to_geometry(restore_segment(result, composite.geometry), composite.geometry)
            width, height = image_size(final)

            filename = f"restyle-{job.page_id}-{viewport.value}-{section.id}-{uuid4().hex[:12]}.png"
            upload = self.storage.upload(final, filename)
            media = self.pages.create_image_and_relink(
                section.id,
                viewport,
                upload,
                width,
                height,
                image.file_path,
                job.user_id,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("Error processing %s segment %d: %s", viewport.value, index + 1, exc)
            return SegmentOutcome.skipped(section.id, index, viewport, str(exc) or exc.__class__.__name__)

        logger.info("Segment %d updated: section %s -> image %s", index + 1, section.id, media.id)
        return SegmentOutcome.updated_with(
            section.id,
            index,
            viewport,
            UpdatedSection(
                section_id=section.id,
                viewport=viewport,
                old_image_id=image.id,
                new_image_id=media.id,
                new_image_url=media.file_path,
            ),
            final,
        )

    def _fetch_neighbor(self, section: Section, image: MediaImage) -> Tuple[bytes, int] | None:
        """Neighbor bytes and height, or None when unavailable."""
        try:
            data = self.fetcher.fetch(image.file_path)
            _, height = image_size(data)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to fetch neighbor section %s, expanding without it: %s", section.id, exc)
            return None
        return data, height

    def _record_usage(self, user_id: str) -> None:
        try:
            self.accounts.record_usage(user_id, RESTYLE_FEATURE)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to record restyle usage for %s: %s", user_id, exc)
