"""
Common utilities for taskzones.

Modules:
- archive: ZIP export/import of the board document and its images
- config: environment-driven configuration
- deadline: countdown text for card deadlines
"""

__all__ = [
    "archive",
    "config",
    "deadline",
]
