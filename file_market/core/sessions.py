from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable

log = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class BrowseSession:
    viewer_id: str
    owner_id: str       # shop being viewed
    page: int           # 0-based
    expires_at: float


@dataclass(frozen=True)
class UploadDraft:
    name: str
    price_sats: int
    amount: int


@dataclass
class PendingUpload:
    uploader_id: str
    draft: UploadDraft
    expires_at: float


class SessionRegistry:
    """
    RAM-only, time-boxed contexts:
      - browse: viewer_id -> shop + page
      - upload: seller_id -> item draft waiting for its file

    Every key is written only by its own user, so plain dict operations are enough.
    Expiry is wall-clock (clock() in seconds); an entry is gone once expires_at < now.
    """

    def __init__(self, browse_ttl: float, upload_ttl: float, *, clock: Clock = time.time) -> None:
        self.browse_ttl = float(browse_ttl)
        self.upload_ttl = float(upload_ttl)
        self._clock = clock
        self._browse: dict[str, BrowseSession] = {}
        self._uploads: dict[str, PendingUpload] = {}

    # ---------- browse ----------

    def start_browse(self, viewer_id: str, owner_id: str) -> BrowseSession:
        s = BrowseSession(
            viewer_id=str(viewer_id),
            owner_id=str(owner_id),
            page=0,
            expires_at=self._clock() + self.browse_ttl,
        )
        self._browse[s.viewer_id] = s
        return s

    def get_browse(self, viewer_id: str) -> BrowseSession | None:
        key = str(viewer_id)
        s = self._browse.get(key)
        if s is None:
            return None
        if s.expires_at < self._clock():
            self._browse.pop(key, None)
            return None
        return s

    def advance_page(self, viewer_id: str, delta: int) -> BrowseSession | None:
        # upper bound is the store's business: past the end it just returns an empty page
        s = self.get_browse(viewer_id)
        if s is None:
            return None
        s.page = max(0, s.page + int(delta))
        s.expires_at = self._clock() + self.browse_ttl
        return s

    def end_browse(self, viewer_id: str) -> None:
        self._browse.pop(str(viewer_id), None)

    # ---------- uploads ----------

    def start_upload(self, uploader_id: str, draft: UploadDraft) -> PendingUpload:
        p = PendingUpload(
            uploader_id=str(uploader_id),
            draft=draft,
            expires_at=self._clock() + self.upload_ttl,
        )
        self._uploads[p.uploader_id] = p
        return p

    def get_upload(self, uploader_id: str) -> PendingUpload | None:
        key = str(uploader_id)
        p = self._uploads.get(key)
        if p is None:
            return None
        if p.expires_at < self._clock():
            self._uploads.pop(key, None)
            return None
        return p

    def consume_upload(self, uploader_id: str) -> UploadDraft | None:
        p = self.get_upload(uploader_id)
        if p is None:
            return None
        self._uploads.pop(p.uploader_id, None)
        return p.draft

    # ---------- sweeps ----------

    def sweep_browse(self) -> int:
        now = self._clock()
        stale = [k for k, s in self._browse.items() if s.expires_at < now]
        for k in stale:
            self._browse.pop(k, None)
        return len(stale)

    def sweep_uploads(self) -> int:
        now = self._clock()
        stale = [k for k, p in self._uploads.items() if p.expires_at < now]
        for k in stale:
            self._uploads.pop(k, None)
        return len(stale)

    def counts(self) -> tuple[int, int]:
        return len(self._browse), len(self._uploads)


async def _sweep_loop(name: str, sweep: Callable[[], int], interval: float, stop_event: asyncio.Event) -> None:
    log.info("%s sweeper started (every %ss)", name, interval)
    while not stop_event.is_set():
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
            break
        except asyncio.TimeoutError:
            pass

        try:
            cleaned = sweep()
        except Exception as e:
            log.exception("%s sweep failed: %s", name, e)
            continue
        if cleaned > 0:
            log.info("Cleaned %s expired %s entries", cleaned, name)
    log.info("%s sweeper stopped", name)


async def run_sweeper(
    registry: SessionRegistry,
    stop_event: asyncio.Event,
    *,
    session_interval: float = 60,
    upload_interval: float = 30,
) -> None:
    """
    Two independent fixed-interval loops; returns once stop_event is set.
    """
    await asyncio.gather(
        _sweep_loop("browse session", registry.sweep_browse, session_interval, stop_event),
        _sweep_loop("pending upload", registry.sweep_uploads, upload_interval, stop_event),
    )
