"""Command-line entry point: bootstrap, export, import and prune the board store."""
