import enum
import json
import logging
import math
import time
import urllib.parse
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

from .errors import InsufficientScope, MissingCredentials, TokenExchangeFailed
from .pkce import SecureRandomSource, generate_pkce_pair
from .token_manager import AuthSession, TokenManager

logger = logging.getLogger(__name__)

SPOTIFY_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"
SPOTIFY_AUTHORIZE_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/authorize"
SPOTIFY_TOKEN_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/api/token"

# Must match the Redirect URI registered in the Spotify dashboard exactly.
REDIRECT_URI = "http://127.0.0.1:8000/"

REQUESTED_SCOPES = ("user-library-read", "user-library-modify")

_AUTH_QUERY_PARAMS = ("code", "state")


class AuthState(enum.Enum):
    DISCONNECTED = "disconnected"
    AWAITING_REDIRECT = "awaiting_redirect"
    EXCHANGING = "exchanging"
    CONNECTED = "connected"


def spotify_app_setup_instructions(*, redirect_uri: str = REDIRECT_URI) -> str:
    """Return user-facing setup instructions for creating a Spotify Developer app."""

    return (
        "Spotify app setup:\n"
        "1) Go to https://developer.spotify.com/dashboard\n"
        "2) Create an app (or select an existing app)\n"
        f"3) Add this Redirect URI in the app settings: {redirect_uri}\n"
        "4) Copy the Client ID into config.json as spotify_client_id (or enter it when connecting)\n\n"
        "Notes:\n"
        "- This tool uses Authorization Code + PKCE (no client secret required).\n"
        "- Redirect URI must match *exactly* what you configure in the Spotify dashboard.\n"
    )


def extract_code_from_redirect_url(redirect_url: str) -> Dict[str, str]:
    """Parse a redirect URL and return {"code": ..., "state": ..., "error": ...} (missing keys omitted)."""

    parsed = urllib.parse.urlparse(str(redirect_url or "").strip())
    qs = urllib.parse.parse_qs(parsed.query)
    out: Dict[str, str] = {}
    for key in ("code", "state", "error"):
        if qs.get(key):
            out[key] = str(qs[key][0])
    return out


def strip_auth_params(url: str) -> str:
    """Remove ``code``/``state`` from a URL so the authorization code cannot be replayed."""

    parsed = urllib.parse.urlparse(str(url or ""))
    kept = [
        (k, v)
        for k, v in urllib.parse.parse_qsl(parsed.query, keep_blank_values=True)
        if k not in _AUTH_QUERY_PARAMS
    ]
    return urllib.parse.urlunparse(parsed._replace(query=urllib.parse.urlencode(kept)))


class SpotifyPKCEAuth:
    """Spotify OAuth (Authorization Code + PKCE) helper.

    Flow: ``begin_auth`` -> user agent visits the returned URL -> Spotify
    redirects to ``REDIRECT_URI`` -> ``complete_auth`` with the echoed
    ``code``/``state``.

    The verifier is also sent as the OAuth ``state``. Spotify echoes it back,
    which lets ``complete_auth`` recover the verifier when local storage was
    lost between the two halves of the flow. This conflates the anti-forgery
    token with the PKCE secret (the verifier travels through the browser and
    its history), so treat it as a known weakness, not a pattern to copy.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        token_manager: TokenManager,
        *,
        http_client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        random_source: Optional[SecureRandomSource] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or {}
        self.token_manager = token_manager
        self.http_client_factory = http_client_factory or self._default_http_client
        self.random_source = random_source
        self.clock = clock
        self.state = AuthState.DISCONNECTED
        self.session: Optional[AuthSession] = None

    def _default_http_client(self) -> httpx.AsyncClient:
        timeout = float(self.config.get("http_timeout", 30.0))
        return httpx.AsyncClient(timeout=timeout, follow_redirects=False)

    # -----------------
    # Session lifecycle
    # -----------------

    def load(self) -> Optional[AuthSession]:
        """Restore a persisted session at startup (expired ones are dropped)."""

        self.session = self.token_manager.restore()
        self.state = AuthState.CONNECTED if self.session else AuthState.DISCONNECTED
        return self.session

    def current_session(self) -> Optional[AuthSession]:
        """Return the live session, signing out first if it has expired."""

        if self.session is not None and self.session.is_expired(self.clock()):
            logger.info("Spotify session expired; signing out")
            self.sign_out()
        return self.session

    @property
    def connected(self) -> bool:
        return self.current_session() is not None

    def require_scope(self, scope: str) -> AuthSession:
        session = self.current_session()
        if session is None or not session.has_scope(scope):
            raise InsufficientScope(scope)
        return session

    def sign_out(self) -> None:
        self.token_manager.clear()
        self.session = None
        self.state = AuthState.DISCONNECTED

    # -----------------
    # Authorization code flow
    # -----------------

    def stored_client_id(self) -> Optional[str]:
        return self.token_manager.stored_client_id() or (str(self.config.get("spotify_client_id", "")).strip() or None)

    def get_authorize_url(self, *, client_id: str, code_challenge: str, state: str) -> str:
        params: Dict[str, str] = {
            "client_id": client_id,
            "response_type": "code",
            "redirect_uri": REDIRECT_URI,
            "code_challenge_method": "S256",
            "code_challenge": code_challenge,
            "scope": " ".join(REQUESTED_SCOPES),
            "state": state,
            "show_dialog": "true" if self.config.get("spotify_show_dialog", True) else "false",
        }
        return f"{SPOTIFY_AUTHORIZE_URL}?{urllib.parse.urlencode(params)}"

    def begin_auth(self, client_id: str) -> str:
        """Prepare the redirect and return the authorize URL to navigate to."""

        client_id = str(client_id or "").strip()
        if not client_id:
            raise ValueError("A Spotify Client ID is required to connect.")

        self.token_manager.remember_client_id(client_id)
        pkce = generate_pkce_pair(random_source=self.random_source)
        self.token_manager.remember_verifier(pkce.code_verifier)

        url = self.get_authorize_url(
            client_id=client_id,
            code_challenge=pkce.code_challenge,
            state=pkce.code_verifier,
        )
        self.state = AuthState.AWAITING_REDIRECT
        return url

    async def complete_auth(
        self,
        code: str,
        state_param: Optional[str] = None,
        *,
        client_id: Optional[str] = None,
    ) -> AuthSession:
        """Exchange an authorization code for an access token and persist it."""

        verifier = self.token_manager.consume_verifier(state_param)
        client_id = str(client_id or "").strip() or self.stored_client_id()
        if not verifier or not client_id:
            self.state = AuthState.DISCONNECTED
            raise MissingCredentials("Missing code verifier or client ID.")

        self.state = AuthState.EXCHANGING
        session: Optional[AuthSession] = None
        try:
            status_code, payload = await self._post_form(
                SPOTIFY_TOKEN_URL,
                {
                    "client_id": client_id,
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": REDIRECT_URI,
                    "code_verifier": verifier,
                },
            )
            session = self._persist_token_response(payload, status_code=status_code)
        finally:
            self.state = AuthState.CONNECTED if session is not None else AuthState.DISCONNECTED

        self.session = session
        logger.info("Spotify token granted for scopes: %s", session.scope_string)
        return session

    def _persist_token_response(self, payload: Dict[str, Any], *, status_code: int) -> AuthSession:
        body = json.dumps(payload)

        access_token = str(payload.get("access_token") or "")
        if not access_token:
            raise TokenExchangeFailed(body, status_code=status_code)

        try:
            expires_in = float(payload.get("expires_in") or 0)
        except (TypeError, ValueError) as e:
            raise TokenExchangeFailed(body, status_code=status_code) from e
        if not math.isfinite(expires_in):
            raise TokenExchangeFailed(body, status_code=status_code)

        return self.token_manager.persist(access_token, expires_in, payload.get("scope"))

    async def _post_form(self, url: str, form: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        data = {k: str(v) for k, v in (form or {}).items() if v is not None}

        try:
            async with self.http_client_factory() as client:
                resp = await client.post(
                    url,
                    data=data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            raise TokenExchangeFailed(str(e)) from e

        if not resp.is_success:
            raise TokenExchangeFailed(resp.text, status_code=resp.status_code)

        try:
            payload = resp.json()
        except json.JSONDecodeError as e:
            raise TokenExchangeFailed(resp.text, status_code=resp.status_code) from e

        if not isinstance(payload, dict):
            raise TokenExchangeFailed(resp.text, status_code=resp.status_code)

        return resp.status_code, payload
