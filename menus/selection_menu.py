import questionary

from spotify_library.library import LibraryContext
from utils.logger import log_info, log_warning


def select_tracks_for_removal(context: LibraryContext) -> set:
    """Let the user pick which saved tracks to mark for removal.

    - Shows every track in the catalog, in library order.
    - Tracks already in the selection start checked.

    Returns the new selection (a set of track ids). Cancelling the prompt
    keeps the previous selection.
    """

    if not len(context.catalog):
        log_warning("Your library is empty (or not loaded yet).")
        return set(context.selection)

    choices = [
        questionary.Choice(
            title=record.label,
            value=record.id,
            checked=(record.id in context.selection),
        )
        for record in context.catalog
    ]

    selected = questionary.checkbox(
        "Select tracks to remove from Liked Songs (space toggles, enter confirms):",
        choices=choices,
    ).ask()

    if selected is None:
        log_info("Selection cancelled; keeping previous selection.")
        return set(context.selection)

    if not selected:
        log_info("💡 Use ↑↓ to move, SPACE to select, ENTER to confirm.")

    return {track_id for track_id in selected if track_id in context.catalog}
