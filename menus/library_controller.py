import logging
from typing import Any, Callable, Dict, List, Optional

from spotify_library.auth import SpotifyPKCEAuth
from spotify_library.client import SpotifyClient
from spotify_library.errors import InsufficientScope, SpotifyLibraryError
from spotify_library.library import LibraryContext, SyncProgress, iter_sync
from spotify_library.mutator import REQUIRED_SCOPE, RemovalResult, apply_removal, remove_tracks
from spotify_library.token_manager import AuthSession

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], SpotifyClient]

STATUS_FINALIZING_LOGIN = "Finalizing Spotify login..."
STATUS_LOGIN_FAILED = "Login failed. Check your Client ID and redirect URI."
STATUS_CLIENT_ID_REQUIRED = "Enter your Spotify Client ID to connect."
STATUS_NOT_CONNECTED = "Not connected to Spotify. Connect first."
STATUS_LOAD_FAILED = "Failed to load liked songs"
STATUS_REMOVING = "Removing selected tracks..."
STATUS_MISSING_SCOPE = "Remove failed: missing user-library-modify scope. Sign out and reconnect."
STATUS_TOKEN_REJECTED = "Remove failed: Spotify rejected the token. Sign out and reconnect."
STATUS_REMOVE_FAILED = "Failed to remove selected tracks"
STATUS_REMOVED = "Selected tracks removed"

_STATUS_LEVELS = {
    STATUS_LOGIN_FAILED: logging.ERROR,
    STATUS_LOAD_FAILED: logging.ERROR,
    STATUS_MISSING_SCOPE: logging.ERROR,
    STATUS_TOKEN_REJECTED: logging.ERROR,
    STATUS_REMOVE_FAILED: logging.ERROR,
    STATUS_CLIENT_ID_REQUIRED: logging.WARNING,
    STATUS_NOT_CONNECTED: logging.WARNING,
}


class LibraryController:
    """Drives the user-facing operations and keeps the view state honest.

    Every action catches its own failures, leaves a short message in
    ``status`` and resets ``loading`` on every exit path.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        auth: SpotifyPKCEAuth,
        *,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.config = config or {}
        self.auth = auth
        self.client_factory = client_factory or self._default_client
        self.context = LibraryContext()
        self.status = ""
        self.count = ""
        self.loading = False
        self._had_session = auth.session is not None

    def _default_client(self, access_token: str) -> SpotifyClient:
        return SpotifyClient(access_token, timeout=float(self.config.get("http_timeout", 30)))

    # -----------------
    # View state
    # -----------------

    @property
    def connected(self) -> bool:
        return self._current_session() is not None

    @property
    def status_level(self) -> int:
        """logging level matching the current status message."""
        return _STATUS_LEVELS.get(self.status, logging.INFO)

    def _current_session(self) -> Optional[AuthSession]:
        session = self.auth.current_session()
        if session is None and self._had_session:
            # Expired underneath us: drop what was loaded for that session.
            self._disconnect_view()
        self._had_session = session is not None
        return session

    def can_connect(self, client_id: str) -> bool:
        return not self.connected and bool(str(client_id or "").strip())

    def can_sign_out(self) -> bool:
        return self.connected

    def can_remove(self) -> bool:
        return self.connected and bool(self.context.selection) and not self.loading

    def set_loading(self, is_loading: bool, message: Optional[str] = None) -> None:
        self.loading = is_loading
        if message:
            self.status = message

    def selected_ids(self) -> List[str]:
        """Pending selection in catalog order."""
        return [i for i in self.context.catalog.ids() if i in self.context.selection]

    def _disconnect_view(self) -> None:
        self.context.reset()
        self.count = "0 total tracks"
        self._had_session = False

    # -----------------
    # Actions
    # -----------------

    def connect_url(self, client_id: str) -> Optional[str]:
        try:
            url = self.auth.begin_auth(client_id)
        except ValueError:
            self.status = STATUS_CLIENT_ID_REQUIRED
            return None
        self.status = ""
        return url

    async def finish_connect(
        self,
        code: Optional[str],
        state: Optional[str] = None,
        *,
        client_id: Optional[str] = None,
        on_progress: Optional[Callable[[SyncProgress], None]] = None,
    ) -> bool:
        if not code:
            return False

        self.set_loading(True, STATUS_FINALIZING_LOGIN)
        try:
            await self.auth.complete_auth(code, state, client_id=client_id)
        except SpotifyLibraryError as e:
            logger.warning("Spotify login failed: %s", e)
            self.status = STATUS_LOGIN_FAILED
            return False
        finally:
            self.set_loading(False)

        self.status = ""
        return await self.reload(on_progress=on_progress)

    async def reload(self, *, on_progress: Optional[Callable[[SyncProgress], None]] = None) -> bool:
        session = self._current_session()
        if session is None:
            self._disconnect_view()
            self.status = STATUS_NOT_CONNECTED
            return False

        self.set_loading(True)
        try:
            async with self.client_factory(session.access_token) as client:
                async for progress in iter_sync(client, self.context):
                    self.count = f"{progress.loaded} / {progress.total} loaded"
                    if on_progress is not None:
                        on_progress(progress)
            self.count = f"{len(self.context.catalog)} total tracks"
            return True
        except SpotifyLibraryError as e:
            logger.warning("Loading liked songs failed: %s", e)
            self.status = STATUS_LOAD_FAILED
            return False
        finally:
            self.set_loading(False)

    async def remove_selected(self) -> Optional[RemovalResult]:
        ids = self.selected_ids()
        if not ids:
            return None

        if self._current_session() is None:
            self._disconnect_view()
            self.status = STATUS_NOT_CONNECTED
            return None

        try:
            session = self.auth.require_scope(REQUIRED_SCOPE)
        except InsufficientScope:
            logger.warning("Granted scopes lack %s", REQUIRED_SCOPE)
            self.status = STATUS_MISSING_SCOPE
            return None

        self.set_loading(True, STATUS_REMOVING)
        try:
            async with self.client_factory(session.access_token) as client:
                result = await remove_tracks(ids, session, client)
        finally:
            self.set_loading(False)

        apply_removal(self.context, result)
        self.count = f"{len(self.context.catalog)} total tracks"
        if result.error is None:
            self.status = STATUS_REMOVED
        elif result.error.forbidden:
            logger.warning("Spotify rejected the token: %s", result.error)
            self.status = STATUS_TOKEN_REJECTED
        else:
            logger.warning("%s", result.error)
            self.status = STATUS_REMOVE_FAILED
        return result

    def sign_out(self) -> None:
        self.auth.sign_out()
        self._disconnect_view()
        self.status = ""
