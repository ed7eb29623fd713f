from typing import Optional


class SpotifyLibraryError(RuntimeError):
    """Base class for every failure raised by spotify_library."""


class MissingCredentials(SpotifyLibraryError):
    """No code verifier or client id was available at token-exchange time."""


class InsufficientScope(SpotifyLibraryError):
    """The granted scopes do not include the one an operation needs."""

    def __init__(self, scope: str):
        super().__init__(f"Missing required scope: {scope}")
        self.scope = scope


class ApiError(SpotifyLibraryError):
    """A Spotify HTTP call failed.

    ``status_code`` is None when the request never produced a response
    (connection errors, timeouts). ``body`` keeps the raw response text.
    """

    action = "Spotify request"

    def __init__(self, body: str = "", *, status_code: Optional[int] = None):
        self.body = body or ""
        self.status_code = status_code
        if status_code is None:
            message = f"{self.action} failed: {self.body}"
        else:
            message = f"{self.action} failed (HTTP {status_code}): {self.body}"
        super().__init__(message)


class TokenExchangeFailed(ApiError):
    action = "Token exchange"


class FetchFailed(ApiError):
    action = "Loading saved tracks"


class RemoveFailed(ApiError):
    action = "Remove"

    @property
    def forbidden(self) -> bool:
        # Spotify answers 403 when the token itself is no longer accepted.
        return self.status_code == 403
