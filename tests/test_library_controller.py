"""Presentation-layer tests: controller status/loading handling, the
selection checkbox and config validation.

No real network: every Spotify endpoint is served by httpx.MockTransport.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import tempfile
import types
import unittest
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

# Ensure imports like `menus.*` and `spotify_library.*` work even when executed from repo root.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config import DEFAULT_CONFIG, load_config, update_config, validate_config
from menus import library_controller as lc
from menus import library_menu
from menus.library_controller import LibraryController
from spotify_library.auth import SPOTIFY_TOKEN_URL, AuthState, SpotifyPKCEAuth
from spotify_library.client import SpotifyClient
from spotify_library.library import TrackRecord
from spotify_library.storage import MemoryStore, StorageKeys
from spotify_library.token_manager import TokenManager


# -------------------------
# Fakes
# -------------------------


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeSpotify:
    """Token endpoint + saved-tracks + library delete, all in one handler."""

    def __init__(self, total: int = 120, *, token_status: int = 200, token_payload=None, fail_page_offset=None, delete_status: int = 200, scope="user-library-read user-library-modify"):
        self.total = total
        self.token_status = token_status
        self.token_payload = token_payload
        self.fail_page_offset = fail_page_offset
        self.delete_status = delete_status
        self.scope = scope
        self.calls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == SPOTIFY_TOKEN_URL:
            self.calls.append("token")
            if self.token_status != 200:
                return httpx.Response(self.token_status, text='{"error":"invalid_grant"}')
            if self.token_payload is not None:
                return httpx.Response(200, json=self.token_payload)
            return httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600, "scope": self.scope})

        if request.url.path == "/v1/me/tracks":
            offset = int(request.url.params["offset"])
            self.calls.append(f"page:{offset}")
            if offset == self.fail_page_offset:
                return httpx.Response(502, text="bad gateway")
            items = [
                {"track": {"id": f"id{i}", "name": f"Song {i}", "artists": [{"name": "Band"}]}}
                for i in range(offset, min(offset + 50, self.total))
            ]
            return httpx.Response(200, json={"items": items, "total": self.total})

        if request.url.path == "/v1/me/library":
            self.calls.append(f"delete:{len(request.url.params['uris'].split(','))}")
            return httpx.Response(self.delete_status, text="" if self.delete_status == 200 else "denied")

        return httpx.Response(404)


def _controller(spotify: FakeSpotify, *, scopes: str = "user-library-read user-library-modify", connected: bool = True, clock: FakeClock | None = None):
    clock = clock or FakeClock()
    store = MemoryStore({StorageKeys.client_id: "abc123"})
    if connected:
        store.set(StorageKeys.token, "at-123")
        store.set(StorageKeys.expires, str(clock.now + 3600))
        store.set(StorageKeys.scopes, scopes)

    transport = httpx.MockTransport(spotify)
    auth = SpotifyPKCEAuth(
        {},
        TokenManager(store, clock=clock),
        http_client_factory=lambda: httpx.AsyncClient(transport=transport),
        clock=clock,
    )
    auth.load()
    controller = LibraryController({}, auth, client_factory=lambda token: SpotifyClient(token, transport=transport))
    return controller, store


# -------------------------
# Simple questionary mocks
# -------------------------


@dataclass
class _Askable:
    """Mimic questionary prompt objects that return a value from .ask()."""

    value: Any

    def ask(self):
        return self.value


class _QuestionaryMock:
    """A minimal questionary stub that returns queued answers and captures args."""

    def __init__(self):
        # Preserve the real Choice constructor so production code can build choices.
        import questionary as _real_questionary

        self.Choice = _real_questionary.Choice
        self._queue: list[Any] = []
        self.last_checkbox_choices = None

    def queue(self, *answers: Any) -> None:
        self._queue.extend(list(answers))

    def checkbox(self, message: str, choices: list[Any]):
        self.last_checkbox_choices = choices
        if not self._queue:
            raise AssertionError("QuestionaryMock queue exhausted")
        return _Askable(self._queue.pop(0))


class _PatchModuleAttr:
    """Context manager to temporarily patch module attributes."""

    def __init__(self, module: types.ModuleType, attr: str, value: Any):
        self.module = module
        self.attr = attr
        self.value = value
        self._old = None

    def __enter__(self):
        self._old = getattr(self.module, self.attr)
        setattr(self.module, self.attr, self.value)

    def __exit__(self, exc_type, exc, tb):
        setattr(self.module, self.attr, self._old)


# -------------------------
# Tests
# -------------------------


class TestReload(unittest.IsolatedAsyncioTestCase):
    async def test_reload_fills_catalog_and_count(self):
        spotify = FakeSpotify(120)
        controller, _ = _controller(spotify)
        seen = []

        ok = await controller.reload(on_progress=lambda p: seen.append((p.loaded, p.total, controller.count)))

        self.assertTrue(ok)
        self.assertEqual(len(controller.context.catalog), 120)
        self.assertEqual(controller.count, "120 total tracks")
        self.assertEqual(seen[0], (50, 120, "50 / 120 loaded"))
        self.assertFalse(controller.loading)
        self.assertEqual(controller.status, "")

    async def test_reload_failure_sets_status_and_clears_loading(self):
        spotify = FakeSpotify(120, fail_page_offset=100)
        controller, _ = _controller(spotify)

        ok = await controller.reload()

        self.assertFalse(ok)
        self.assertEqual(controller.status, lc.STATUS_LOAD_FAILED)
        self.assertFalse(controller.loading)
        self.assertEqual(len(controller.context.catalog), 100)

    async def test_reload_with_expired_token_signs_out_without_network(self):
        clock = FakeClock()
        spotify = FakeSpotify()
        controller, store = _controller(spotify, clock=clock)
        clock.now += 3600

        ok = await controller.reload()

        self.assertFalse(ok)
        self.assertEqual(spotify.calls, [])
        self.assertEqual(controller.status, lc.STATUS_NOT_CONNECTED)
        self.assertIsNone(store.get(StorageKeys.token))
        self.assertFalse(controller.connected)


class TestConnect(unittest.IsolatedAsyncioTestCase):
    async def test_blank_client_id_sets_status(self):
        controller, _ = _controller(FakeSpotify(), connected=False)
        self.assertIsNone(controller.connect_url(""))
        self.assertEqual(controller.status, lc.STATUS_CLIENT_ID_REQUIRED)
        self.assertFalse(controller.can_connect(""))
        self.assertTrue(controller.can_connect("abc123"))

    async def test_finish_connect_exchanges_then_loads(self):
        spotify = FakeSpotify(3)
        controller, store = _controller(spotify, connected=False)
        url = controller.connect_url("abc123")
        self.assertIsNotNone(url)
        verifier = store.get(StorageKeys.verifier)

        ok = await controller.finish_connect("code", verifier)

        self.assertTrue(ok)
        self.assertEqual(spotify.calls, ["token", "page:0"])
        self.assertTrue(controller.connected)
        self.assertEqual(controller.count, "3 total tracks")
        self.assertFalse(controller.loading)

    async def test_finish_connect_failure_reports_and_clears_loading(self):
        spotify = FakeSpotify(token_status=400)
        controller, _ = _controller(spotify, connected=False)
        controller.connect_url("abc123")

        ok = await controller.finish_connect("bad", None)

        self.assertFalse(ok)
        self.assertEqual(controller.status, lc.STATUS_LOGIN_FAILED)
        self.assertFalse(controller.loading)
        self.assertFalse(controller.connected)

    async def test_malformed_token_payload_is_reported_not_raised(self):
        spotify = FakeSpotify(token_payload={"access_token": "x", "expires_in": "soon"})
        controller, store = _controller(spotify, connected=False)
        controller.connect_url("abc123")

        ok = await controller.finish_connect("code", None)

        self.assertFalse(ok)
        self.assertEqual(spotify.calls, ["token"])
        self.assertEqual(controller.status, lc.STATUS_LOGIN_FAILED)
        self.assertEqual(controller.auth.state, AuthState.DISCONNECTED)
        self.assertFalse(controller.loading)
        self.assertFalse(controller.connected)
        self.assertIsNone(store.get(StorageKeys.token))

    async def test_finish_connect_without_code_does_nothing(self):
        spotify = FakeSpotify()
        controller, _ = _controller(spotify, connected=False)
        self.assertFalse(await controller.finish_connect(None))
        self.assertEqual(spotify.calls, [])


class TestSessionExpiry(unittest.IsolatedAsyncioTestCase):
    async def test_noticing_expiry_clears_loaded_view(self):
        clock = FakeClock()
        spotify = FakeSpotify(3)
        controller, _ = _controller(spotify, clock=clock)
        await controller.reload()
        controller.context.toggle("id1")
        self.assertEqual(controller.count, "3 total tracks")

        clock.now += 3600
        self.assertFalse(controller.connected)

        self.assertEqual(len(controller.context.catalog), 0)
        self.assertEqual(controller.context.selection, set())
        self.assertEqual(controller.count, "0 total tracks")
        self.assertFalse(controller.can_remove())

    async def test_never_connected_view_is_left_alone(self):
        controller, _ = _controller(FakeSpotify(), connected=False)
        self.assertFalse(controller.connected)
        self.assertEqual(controller.count, "")


class TestStatusLevel(unittest.IsolatedAsyncioTestCase):
    async def test_levels_follow_the_outcome(self):
        controller, _ = _controller(FakeSpotify(120, fail_page_offset=50))
        self.assertEqual(controller.status_level, logging.INFO)

        await controller.reload()
        self.assertEqual(controller.status_level, logging.ERROR)

        controller.sign_out()
        await controller.reload()
        self.assertEqual(controller.status, lc.STATUS_NOT_CONNECTED)
        self.assertEqual(controller.status_level, logging.WARNING)

    async def test_success_message_is_info(self):
        controller, _ = _controller(FakeSpotify(3))
        await controller.reload()
        controller.context.toggle("id0")
        await controller.remove_selected()
        self.assertEqual(controller.status, lc.STATUS_REMOVED)
        self.assertEqual(controller.status_level, logging.INFO)


class TestRemoveSelected(unittest.IsolatedAsyncioTestCase):
    async def _loaded(self, spotify: FakeSpotify, **kwargs):
        controller, store = _controller(spotify, **kwargs)
        await controller.reload()
        spotify.calls.clear()
        return controller, store

    async def test_remove_updates_catalog_selection_and_status(self):
        spotify = FakeSpotify(120)
        controller, _ = await self._loaded(spotify)
        for i in range(45):
            controller.context.toggle(f"id{i}")
        self.assertTrue(controller.can_remove())

        result = await controller.remove_selected()

        self.assertTrue(result.ok)
        self.assertEqual(spotify.calls, ["delete:40", "delete:5"])
        self.assertEqual(controller.context.selection, set())
        self.assertEqual(len(controller.context.catalog), 75)
        self.assertEqual(controller.status, lc.STATUS_REMOVED)
        self.assertEqual(controller.count, "75 total tracks")
        self.assertFalse(controller.loading)

    async def test_forbidden_reports_token_problem(self):
        spotify = FakeSpotify(10, delete_status=403)
        controller, _ = await self._loaded(spotify)
        controller.context.toggle("id1")

        result = await controller.remove_selected()

        self.assertTrue(result.error.forbidden)
        self.assertEqual(controller.status, lc.STATUS_TOKEN_REJECTED)
        self.assertIn("id1", controller.context.catalog)
        self.assertFalse(controller.loading)

    async def test_other_failure_reports_generic_status(self):
        spotify = FakeSpotify(10, delete_status=500)
        controller, _ = await self._loaded(spotify)
        controller.context.toggle("id1")

        await controller.remove_selected()

        self.assertEqual(controller.status, lc.STATUS_REMOVE_FAILED)

    async def test_missing_scope_fails_fast(self):
        spotify = FakeSpotify(10)
        controller, _ = await self._loaded(spotify, scopes="user-library-read")
        controller.context.toggle("id1")

        result = await controller.remove_selected()

        self.assertIsNone(result)
        self.assertEqual(spotify.calls, [])
        self.assertEqual(controller.status, lc.STATUS_MISSING_SCOPE)
        self.assertFalse(controller.loading)

    async def test_nothing_selected_is_a_no_op(self):
        spotify = FakeSpotify(10)
        controller, _ = await self._loaded(spotify)
        self.assertFalse(controller.can_remove())
        self.assertIsNone(await controller.remove_selected())
        self.assertEqual(spotify.calls, [])

    async def test_sign_out_resets_view_and_storage(self):
        spotify = FakeSpotify(10)
        controller, store = await self._loaded(spotify)
        controller.context.toggle("id1")

        controller.sign_out()

        self.assertFalse(controller.connected)
        self.assertFalse(controller.can_sign_out())
        self.assertEqual(len(controller.context.catalog), 0)
        self.assertEqual(controller.context.selection, set())
        self.assertEqual(controller.count, "0 total tracks")
        self.assertIsNone(store.get(StorageKeys.token))
        self.assertEqual(store.get(StorageKeys.client_id), "abc123")


class TestSelectionMenu(unittest.TestCase):
    def _context(self):
        controller, _ = _controller(FakeSpotify(), connected=False)
        context = controller.context
        context.catalog.add(TrackRecord(id="a", title="Wolves", artists=("Selena Gomez", "Marshmello")))
        context.catalog.add(TrackRecord(id="b", title="Happy Where We Are", artists=("Tritonal",)))
        context.selection.add("b")
        return context

    def test_checkbox_lists_tracks_with_current_selection_checked(self):
        import menus.selection_menu as sm

        context = self._context()
        q = _QuestionaryMock()
        q.queue(["a"])

        with _PatchModuleAttr(sm, "questionary", q):
            selected = sm.select_tracks_for_removal(context)

        self.assertEqual(selected, {"a"})
        titles = [c.title for c in q.last_checkbox_choices]
        self.assertEqual(titles, ["Selena Gomez, Marshmello - Wolves", "Tritonal - Happy Where We Are"])
        checked = {c.value: bool(c.checked) for c in q.last_checkbox_choices}
        self.assertEqual(checked, {"a": False, "b": True})

    def test_cancel_keeps_previous_selection(self):
        import menus.selection_menu as sm

        context = self._context()
        q = _QuestionaryMock()
        q.queue(None)

        with _PatchModuleAttr(sm, "questionary", q):
            selected = sm.select_tracks_for_removal(context)

        self.assertEqual(selected, {"b"})


class TestConfig(unittest.TestCase):
    def test_defaults_validate(self):
        ok, errors = validate_config(dict(DEFAULT_CONFIG))
        self.assertTrue(ok, errors)

    def test_invalid_values_are_reported(self):
        config = dict(DEFAULT_CONFIG, http_timeout=True, log_level="LOUD", spotify_callback_timeout=1)
        ok, errors = validate_config(config)
        self.assertFalse(ok)
        self.assertEqual(len(errors), 3)

    def test_load_creates_missing_file_and_update_validates(self):
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "config.json")
            config = load_config(path)
            self.assertTrue(os.path.exists(path))
            self.assertEqual(config["spotify_session_file"], "data/spotify_session.json")

            ok, _ = update_config("spotify_client_id", "abc123", path)
            self.assertTrue(ok)
            ok, message = update_config("log_level", "LOUD", path)
            self.assertFalse(ok)
            self.assertIn("log_level", message)

            with open(path, "r", encoding="utf-8") as f:
                self.assertEqual(json.load(f)["spotify_client_id"], "abc123")

    def test_update_checks_only_the_changed_field(self):
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "nested", "config.json")
            load_config(path)

            self.assertEqual(update_config("nope", 1, path)[0], False)
            ok, message = update_config("http_timeout", True, path)
            self.assertFalse(ok)
            self.assertIn("int/float", message)
            self.assertTrue(update_config("http_timeout", 12.5, path)[0])
            self.assertEqual(load_config(path)["http_timeout"], 12.5)

    def test_client_id_entered_at_connect_is_saved(self):
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "config.json")
            config = load_config(path)

            library_menu._remember_client_id(config, "fresh-id", path)

            self.assertEqual(config["spotify_client_id"], "fresh-id")
            self.assertEqual(load_config(path)["spotify_client_id"], "fresh-id")


if __name__ == "__main__":
    unittest.main(verbosity=2)
