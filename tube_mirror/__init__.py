"""
tube-mirror: Keep a deduplicated local mirror of YouTube playlists and channels.

Videos are fetched with yt-dlp into a content-addressed store, each exactly
once, and exposed through directories of symlinks that mirror the remote
playlists and channels they came from.

Architecture:
    One run processes a URL list to completion (or purges a selection):

    Instance lock (core/instance_lock.py)
        - At most one process per data directory (Unix socket rendezvous)

    Catalog (core/catalog.py)
        - stats.json: what was fetched, checked, tombstoned
        - Persisted after every change

    Sync (sync/)
        - Query each URL's entry list through yt-dlp (youtube/)
        - Diff it against the catalog
        - Fetch the missing videos (download/), classify failures
        - Ensure the symlink views (core/file_manager.py)

    Purge (purge/)
        - Tombstone, unlink and free the videos named by the delete directory

Modules:
    core/       - Configuration, catalog, lock, logging, storage, exceptions
    youtube/    - URL classification, snapshot models, yt-dlp runner
    download/   - Single-video fetch, ffprobe, failure classification
    sync/       - Incremental sync engine
    purge/      - Deletion engine
    utils/      - Filename sanitizing, size formatting, bounded fan-out
    cli.py      - Command-line interface

Usage:
    Command Line:
        tube-mirror
        tube-mirror --urls urls.txt
        tube-mirror --delete

    Python API:
        from tube_mirror.core import Catalog, InstanceLock, load_config
        from tube_mirror.sync import SyncEngine
"""

__version__ = "0.3.0"
