"""
Path utilities for swisscut.
"""

from pathlib import Path


def get_data_dir() -> Path:
    """
    Get the data directory for storing the database.

    Returns:
        .swisscut/ in the current working directory
    """
    data_dir = Path.cwd() / ".swisscut"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir
