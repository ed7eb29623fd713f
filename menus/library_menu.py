import asyncio
import logging
import time
import webbrowser
from typing import Any, Callable, Dict

import questionary
from tqdm import tqdm

from config import CONFIG_PATH, update_config
from menus.library_controller import LibraryController
from menus.selection_menu import select_tracks_for_removal
from spotify_library.auth import (
    REDIRECT_URI,
    SpotifyPKCEAuth,
    extract_code_from_redirect_url,
    spotify_app_setup_instructions,
)
from spotify_library.callback_server import wait_for_redirect
from spotify_library.library import SyncProgress
from spotify_library.storage import JsonFileStore, MemoryStore
from spotify_library.token_manager import TokenManager
from utils.logger import log_error, log_info, log_success, log_warning

CONNECT = "Connect Spotify"
RELOAD = "Reload liked songs"
SELECT = "Select tracks to remove"
REMOVE = "Remove selected tracks"
SIGN_OUT = "Sign out"
SETUP_HELP = "Spotify app setup help"
EXIT = "Exit"


def build_controller(config: Dict[str, Any]) -> LibraryController:
    if config.get("spotify_cache_tokens", True):
        store = JsonFileStore(config.get("spotify_session_file") or "data/spotify_session.json")
    else:
        store = MemoryStore()
    auth = SpotifyPKCEAuth(config, TokenManager(store))
    auth.load()
    return LibraryController(config, auth)


class _SyncProgressBar:
    """tqdm bar fed by SyncProgress events (total is only known after page 1)."""

    def __init__(self):
        self.bar = tqdm(total=None, desc="Loading liked songs", unit="track")

    def __call__(self, progress: SyncProgress) -> None:
        if self.bar.total != progress.total:
            self.bar.total = progress.total
        self.bar.update(progress.loaded - self.bar.n)

    def close(self) -> None:
        self.bar.close()


def _run_with_progress(action: Callable[[Callable[[SyncProgress], None]], Any]) -> Any:
    bar = _SyncProgressBar()
    try:
        return asyncio.run(action(bar))
    finally:
        bar.close()


def _report(controller: LibraryController) -> None:
    if not controller.status:
        return
    if controller.status_level >= logging.ERROR:
        log_error(controller.status)
    elif controller.status_level >= logging.WARNING:
        log_warning(controller.status)
    else:
        log_info(controller.status)


def _menu_choices(controller: LibraryController) -> list:
    connected = controller.connected
    selected = len(controller.context.selection)
    return [
        # The client id is asked for inside the connect flow, so only a live session blocks it.
        questionary.Choice(CONNECT, disabled="Connected" if connected else None),
        questionary.Choice(RELOAD, disabled=None if connected else "not connected"),
        questionary.Choice(SELECT, disabled=None if connected and len(controller.context.catalog) else "nothing loaded"),
        questionary.Choice(
            f"{REMOVE} ({selected})",
            value=REMOVE,
            disabled=None if controller.can_remove() else "nothing selected",
        ),
        questionary.Choice(SIGN_OUT, disabled=None if controller.can_sign_out() else "not connected"),
        SETUP_HELP,
        EXIT,
    ]


def _obtain_redirect(config: Dict[str, Any], auth_url: str) -> Dict[str, str]:
    log_info("\n" + "=" * 72)
    log_info("SPOTIFY AUTHENTICATION")
    log_info("=" * 72)
    log_info("1) Approve access in the browser window that opens (or open the URL yourself).")
    log_info(f"2) Spotify will redirect you to {REDIRECT_URI}.")
    log_info("")
    log_info(f"Authorize URL:\n{auth_url}")
    log_info("=" * 72)

    if config.get("spotify_open_browser", True):
        try:
            webbrowser.open(auth_url)
        except webbrowser.Error as e:
            log_warning(f"Could not open a browser: {e}")

    if config.get("spotify_callback_server", True):
        try:
            log_info("Waiting for Spotify to redirect back...")
            params = wait_for_redirect(timeout=float(config.get("spotify_callback_timeout", 300)))
            if params:
                return params
            log_warning("No redirect received in time.")
        except OSError as e:
            log_warning(f"Could not listen on {REDIRECT_URI}: {e}")

    pasted = questionary.text("Paste the full redirect URL (preferred) OR just the code=... value:").ask()
    pasted = (pasted or "").strip()
    if not pasted:
        return {}
    if "http://" in pasted or "https://" in pasted:
        return extract_code_from_redirect_url(pasted)
    return {"code": pasted}


def _remember_client_id(config: Dict[str, Any], client_id: str, config_path: str = CONFIG_PATH) -> None:
    """Write a newly entered client id back to config.json."""

    if not client_id or config.get("spotify_client_id") == client_id:
        return
    try:
        ok, message = update_config("spotify_client_id", client_id, config_path)
    except OSError as e:
        log_warning(f"Could not save the Client ID to {config_path}: {e}")
        return
    if not ok:
        log_warning(message)
        return
    config["spotify_client_id"] = client_id


def connect(controller: LibraryController, config: Dict[str, Any], config_path: str = CONFIG_PATH) -> None:
    client_id = questionary.text(
        "Spotify Client ID:",
        default=controller.auth.stored_client_id() or "",
    ).ask()
    client_id = (client_id or "").strip()

    auth_url = controller.connect_url(client_id)
    if not auth_url:
        _report(controller)
        return
    _remember_client_id(config, client_id, config_path)

    params = _obtain_redirect(config, auth_url)
    if params.get("error"):
        log_error(f"Spotify returned an error: {params['error']}")
        return
    if not params.get("code"):
        log_warning("No authorization code received. Cancelling login.")
        return

    ok = _run_with_progress(
        lambda bar: controller.finish_connect(params["code"], params.get("state"), client_id=client_id, on_progress=bar)
    )
    _report(controller)
    if ok:
        session = controller.auth.session
        if session is not None:
            exp_str = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(session.expires_at))
            log_success(f"Connected. Token expires at: {exp_str}")
        log_info(controller.count)


def reload(controller: LibraryController) -> None:
    ok = _run_with_progress(lambda bar: controller.reload(on_progress=bar))
    _report(controller)
    if ok:
        log_info(controller.count)


def remove(controller: LibraryController) -> None:
    count = len(controller.selected_ids())
    if not questionary.confirm(f"Remove {count} track(s) from your Liked Songs?", default=False).ask():
        return

    result = asyncio.run(controller.remove_selected())
    _report(controller)
    if result is not None and result.removed_ids and not result.ok:
        log_warning(f"{len(result.removed_ids)} track(s) were removed before the failure.")
    log_info(controller.count)


def library_menu(config: Dict[str, Any], config_path: str = CONFIG_PATH) -> None:
    """Main loop: connect, load, select and prune the user's Liked Songs."""

    controller = build_controller(config)
    if controller.connected:
        reload(controller)

    while True:
        header = f"🎵 Liked Songs — {controller.count}" if controller.count else "🎵 Liked Songs"
        choice = questionary.select(header, choices=_menu_choices(controller)).ask()

        if choice == CONNECT:
            connect(controller, config, config_path)

        elif choice == RELOAD:
            reload(controller)

        elif choice == SELECT:
            controller.context.selection = select_tracks_for_removal(controller.context)
            log_info(f"{len(controller.context.selection)} track(s) selected.")

        elif choice == REMOVE:
            remove(controller)

        elif choice == SIGN_OUT:
            controller.sign_out()
            log_info("Signed out.")

        elif choice == SETUP_HELP:
            log_info(spotify_app_setup_instructions())

        elif choice == EXIT or choice is None:
            log_info("Exiting program...")
            break
