import json
import sys

from config import load_config, validate_config
from menus.library_menu import library_menu
from utils.logger import log_error, log_info, setup_logging


def main() -> int:
    try:
        config = load_config()
    except json.JSONDecodeError as e:
        setup_logging()
        log_error(f"Config file contains invalid JSON: {e}")
        return 1
    except (OSError, ValueError) as e:
        setup_logging()
        log_error(f"Error loading config: {e}")
        return 1

    setup_logging(config.get("log_level", "INFO"))

    is_valid, errors = validate_config(config)
    if not is_valid:
        for err in errors:
            log_error(err)
        log_error("Please fix config.json and try again.")
        return 1

    try:
        library_menu(config)
    except KeyboardInterrupt:
        log_info("Interrupted. Exiting program...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
