# Logging helpers shared by the CLI and menus
