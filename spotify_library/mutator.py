import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import httpx

from .client import SpotifyClient
from .errors import InsufficientScope, RemoveFailed
from .library import LibraryContext
from .token_manager import AuthSession

logger = logging.getLogger(__name__)

# Spotify rejects larger uris lists on DELETE /me/library.
BATCH_SIZE = 40
REQUIRED_SCOPE = "user-library-modify"


@dataclass(frozen=True)
class RemovalResult:
    """Ids confirmed removed, plus the failure that stopped the run (if any)."""

    removed_ids: Tuple[str, ...] = ()
    error: Optional[RemoveFailed] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def chunk_ids(ids: Sequence[str], size: int) -> List[List[str]]:
    return [list(ids[i : i + size]) for i in range(0, len(ids), size)]


def to_track_uris(ids: Iterable[str]) -> List[str]:
    return [f"spotify:track:{i}" for i in ids]


async def remove_tracks(
    ids: Iterable[str],
    session: Optional[AuthSession],
    client: SpotifyClient,
    *,
    batch_size: int = BATCH_SIZE,
) -> RemovalResult:
    """Delete ``ids`` from the saved library in sequential batches.

    Batches are all-or-nothing; the first failing batch stops the run and
    the ids of every earlier batch are still reported as removed.
    """

    ordered = list(dict.fromkeys(ids))
    if not ordered:
        return RemovalResult()

    if session is None or not session.has_scope(REQUIRED_SCOPE):
        raise InsufficientScope(REQUIRED_SCOPE)

    removed: List[str] = []
    batches = chunk_ids(ordered, batch_size)
    for index, batch in enumerate(batches, start=1):
        try:
            resp = await client.remove_from_library(to_track_uris(batch))
        except httpx.HTTPError as e:
            logger.warning("Remove batch %d/%d failed: %s", index, len(batches), e)
            return RemovalResult(tuple(removed), RemoveFailed(str(e)))

        if not resp.is_success:
            logger.warning("Remove batch %d/%d failed with HTTP %d", index, len(batches), resp.status_code)
            return RemovalResult(tuple(removed), RemoveFailed(resp.text, status_code=resp.status_code))

        removed.extend(batch)
        logger.debug("Removed batch %d/%d (%d tracks)", index, len(batches), len(batch))

    return RemovalResult(tuple(removed))


def apply_removal(context: LibraryContext, result: RemovalResult) -> None:
    """Drop confirmed removals from the catalog and the pending selection."""

    for track_id in result.removed_ids:
        context.catalog.discard(track_id)
        context.selection.discard(track_id)
