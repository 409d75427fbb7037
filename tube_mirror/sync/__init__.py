"""
Incremental sync module for tube-mirror.

Usage:
    from tube_mirror.sync import SyncEngine

    engine = SyncEngine(catalog, ytdlp, fetcher, store, views, query_timeout=600)
    engine.process_url_file(url_file)
    engine.log_stats()
"""

from tube_mirror.sync.engine import (
    SyncEngine,
    SyncPlan,
    SyncStats,
    plan_entries,
    playlist_unchanged,
)

__all__ = [
    "SyncEngine",
    "SyncPlan",
    "SyncStats",
    "plan_entries",
    "playlist_unchanged",
]
