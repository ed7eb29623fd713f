"""Saved-tracks catalog and the paginated sync engine.

A sync is always a full resync: the catalog and the pending selection are
emptied before the first page is requested. Pages are fetched strictly one
after another because each request's offset depends on the previous page.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Iterator, List, Optional, Set, Tuple

import httpx

from .client import SpotifyClient
from .errors import FetchFailed

logger = logging.getLogger(__name__)

PAGE_SIZE = 50


@dataclass(frozen=True)
class TrackRecord:
    id: str
    title: str
    artists: Tuple[str, ...] = ()
    cover_url: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def uri(self) -> str:
        return f"spotify:track:{self.id}"

    @property
    def artist_line(self) -> str:
        return ", ".join(self.artists)

    @property
    def label(self) -> str:
        return f"{self.artist_line} - {self.title}" if self.artist_line else self.title

    @classmethod
    def from_payload(cls, track_obj: Any) -> Optional["TrackRecord"]:
        """Build a record from a Spotify track object; None if it has no id."""

        if not isinstance(track_obj, dict):
            return None

        track_id = str(track_obj.get("id") or "").strip()
        if not track_id:
            return None

        artists = []
        for a in track_obj.get("artists") or []:
            if isinstance(a, dict) and str(a.get("name") or "").strip():
                artists.append(str(a["name"]).strip())

        album = track_obj.get("album") if isinstance(track_obj.get("album"), dict) else {}
        images = album.get("images") if isinstance(album.get("images"), list) else []
        cover_url = ""
        if images and isinstance(images[0], dict):
            cover_url = str(images[0].get("url") or "")

        return cls(
            id=track_id,
            title=str(track_obj.get("name") or ""),
            artists=tuple(artists),
            cover_url=cover_url,
            raw=track_obj,
        )


class Catalog:
    """Track id -> TrackRecord, iterated in the order the server reported."""

    def __init__(self):
        self._tracks: Dict[str, TrackRecord] = {}

    def add(self, record: TrackRecord) -> None:
        self._tracks[record.id] = record

    def discard(self, track_id: str) -> None:
        self._tracks.pop(track_id, None)

    def clear(self) -> None:
        self._tracks.clear()

    def get(self, track_id: str) -> Optional[TrackRecord]:
        return self._tracks.get(track_id)

    def ids(self) -> List[str]:
        return list(self._tracks)

    def __len__(self) -> int:
        return len(self._tracks)

    def __iter__(self) -> Iterator[TrackRecord]:
        return iter(list(self._tracks.values()))

    def __contains__(self, track_id: object) -> bool:
        return track_id in self._tracks


@dataclass
class LibraryContext:
    """Per-session library state handed explicitly to every operation."""

    catalog: Catalog = field(default_factory=Catalog)
    selection: Set[str] = field(default_factory=set)

    def toggle(self, track_id: str) -> bool:
        """Flip selection for ``track_id``; returns True when now selected."""

        if track_id not in self.catalog:
            return False
        if track_id in self.selection:
            self.selection.discard(track_id)
            return False
        self.selection.add(track_id)
        return True

    def reset(self) -> None:
        self.catalog.clear()
        self.selection.clear()


@dataclass(frozen=True)
class SyncProgress:
    loaded: int
    total: int


async def iter_sync(client: SpotifyClient, context: LibraryContext) -> AsyncIterator[SyncProgress]:
    """Fetch every saved track into ``context.catalog``, yielding once per page.

    A failing page raises FetchFailed; pages merged before it are kept.
    """

    context.reset()
    offset = 0

    while True:
        try:
            resp = await client.saved_tracks_page(limit=PAGE_SIZE, offset=offset)
        except httpx.HTTPError as e:
            raise FetchFailed(str(e)) from e

        if not resp.is_success:
            raise FetchFailed(resp.text, status_code=resp.status_code)

        try:
            page = resp.json()
        except json.JSONDecodeError as e:
            raise FetchFailed(resp.text, status_code=resp.status_code) from e

        if not isinstance(page, dict):
            raise FetchFailed(resp.text, status_code=resp.status_code)

        items = page.get("items") or []
        try:
            total = int(page.get("total") or 0)
        except (TypeError, ValueError) as e:
            raise FetchFailed(resp.text, status_code=resp.status_code) from e
        if not items:
            logger.debug("Empty page at offset %d; sync complete", offset)
            break

        for item in items:
            record = TrackRecord.from_payload(item.get("track") if isinstance(item, dict) else None)
            if record is not None:
                context.catalog.add(record)

        offset += len(items)
        logger.debug("Loaded %d / %d saved tracks", offset, total)
        yield SyncProgress(loaded=offset, total=total)

        if offset >= total:
            break


async def sync_all(
    client: SpotifyClient,
    context: LibraryContext,
    *,
    on_progress: Optional[Callable[[SyncProgress], None]] = None,
) -> Catalog:
    async for progress in iter_sync(client, context):
        if on_progress is not None:
            on_progress(progress)
    return context.catalog
