"""Spotify saved-library pruning core: PKCE auth, paginated sync, batched removal.

The presentation layer (menus/) only calls into these modules and receives
plain data back; nothing here prompts or prints.
"""

from .auth import AuthState, SpotifyPKCEAuth
from .client import SpotifyClient
from .errors import (
    ApiError,
    FetchFailed,
    InsufficientScope,
    MissingCredentials,
    RemoveFailed,
    SpotifyLibraryError,
    TokenExchangeFailed,
)
from .library import Catalog, LibraryContext, SyncProgress, TrackRecord, iter_sync, sync_all
from .mutator import RemovalResult, apply_removal, remove_tracks
from .storage import JsonFileStore, MemoryStore
from .token_manager import AuthSession, TokenManager

__all__ = [
    "ApiError",
    "AuthSession",
    "AuthState",
    "Catalog",
    "FetchFailed",
    "InsufficientScope",
    "JsonFileStore",
    "LibraryContext",
    "MemoryStore",
    "MissingCredentials",
    "RemovalResult",
    "RemoveFailed",
    "SpotifyClient",
    "SpotifyLibraryError",
    "SpotifyPKCEAuth",
    "SyncProgress",
    "TokenExchangeFailed",
    "TokenManager",
    "TrackRecord",
    "apply_removal",
    "iter_sync",
    "remove_tracks",
    "sync_all",
]
