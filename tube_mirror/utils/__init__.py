"""
Utility functions for tube-mirror.

This module provides common utility functions used across the application:
    - Filename sanitization for view directories and symlink names
      (using yt-dlp's sanitize_filename)
    - Human-readable byte sizes
    - Bounded parallel fan-out for filesystem scans

Usage:
    from tube_mirror.utils import (
        sanitize_filename,
        format_file_size,
        ensure_directory,
        run_in_parallel,
    )
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Iterable, TypeVar

from tqdm import tqdm
from yt_dlp.utils import sanitize_filename as yt_dlp_sanitize


T = TypeVar("T")
R = TypeVar("R")

# Most filesystems cap a name at 255 bytes; leave room for suffixes
_MAX_FILENAME_BYTES = 200

# Default fan-out for directory scans
DEFAULT_SCAN_WORKERS = 8


def sanitize_filename(name: str, restricted: bool = False) -> str:
    """
    Sanitize a string for use as a file or directory name.

    Uses yt-dlp's sanitize_filename, which replaces path separators and
    characters invalid on Windows with full-width lookalikes.

    Args:
        name: The string to sanitize (e.g. "<title>_<id>.mkv").
        restricted: If True, use only ASCII characters.

    Returns:
        A sanitized name, or "Unknown" if nothing usable remains.
        Names longer than 200 UTF-8 bytes are truncated, keeping the extension.
    """
    if not name:
        return "Unknown"

    result = yt_dlp_sanitize(name, restricted=restricted)

    if len(result.encode("utf-8")) > _MAX_FILENAME_BYTES:
        stem, dot, ext = result.rpartition(".")
        if not dot or not 0 < len(ext) <= 10:
            stem, ext = result, ""
        suffix = f".{ext}" if ext else ""
        budget = _MAX_FILENAME_BYTES - len(suffix.encode("utf-8"))
        stem = stem.encode("utf-8")[:budget].decode("utf-8", errors="ignore")
        result = f"{stem.rstrip(' .')}{suffix}"

    return result if result else "Unknown"


def format_file_size(size_bytes: int) -> str:
    """
    Format a size in bytes with binary units.

    Examples:
        format_file_size(512)      # "512 B"
        format_file_size(1536)     # "1.5 KiB"
        format_file_size(1048576)  # "1.0 MiB"
    """
    if size_bytes < 0:
        return "0 B"

    units = ["B", "KiB", "MiB", "GiB", "TiB"]
    size = float(size_bytes)
    unit_index = 0

    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1

    if unit_index == 0:
        return f"{int(size)} {units[unit_index]}"
    return f"{size:.1f} {units[unit_index]}"


def ensure_directory(path: Path) -> Path:
    """
    Ensure a directory exists, creating it and its parents if necessary.

    Returns:
        The same path (for chaining).
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def run_in_parallel(
    func: Callable[[T], R],
    items: Iterable[T],
    num_threads: int = DEFAULT_SCAN_WORKERS,
    description: str = "Processing",
    show_progress: bool = False
) -> list[tuple[T, R | Exception]]:
    """
    Run a function on multiple items with a bounded thread pool.

    Every submitted call has finished when this returns; nothing keeps
    running in the background.

    Args:
        func: Function to call for each item.
        items: Iterable of items to process.
        num_threads: Maximum number of concurrent calls.
        description: Description for the progress bar.
        show_progress: Whether to show a tqdm progress bar.

    Returns:
        List of (item, result) tuples in input order, where result is
        either the return value or the Exception the call raised.
    """
    items_list = list(items)
    if not items_list:
        return []

    results: dict[int, R | Exception] = {}

    with ThreadPoolExecutor(max_workers=max(1, min(num_threads, len(items_list)))) as executor:
        future_to_index = {
            executor.submit(func, item): index
            for index, item in enumerate(items_list)
        }

        iterator = as_completed(future_to_index)
        if show_progress:
            iterator = tqdm(
                iterator,
                total=len(items_list),
                desc=description,
                unit="item"
            )

        for future in iterator:
            index = future_to_index[future]
            try:
                results[index] = future.result()
            except Exception as e:
                results[index] = e

    return [(item, results[index]) for index, item in enumerate(items_list)]
