"""
Deletion of mirrored videos for tube-mirror.

The user selects videos for removal by placing symlinks to them (usually
copies of view entries) in the delete directory, playlists/to_delete by
default. A purge run then, for each selected video:

    1. tombstones the id in deleted_videos, so no later sync fetches it again
    2. removes every view symlink pointing at it
    3. removes every artifact store file of the id (media and sidecars)
    4. persists the catalog and logs the reclaimed size

Which view symlinks point at which id is computed once up front by scanning
the three view roots; the scan fans out over the view directories with a
bounded thread pool.

Usage:
    deleter = Deleter(catalog, store, data_dir)
    stats = deleter.delete_videos(data_dir / "playlists" / "to_delete")
    print(f"Freed {format_file_size(stats.freed_bytes)}")
"""

import os
from dataclasses import dataclass
from pathlib import Path

from tube_mirror.core.catalog import Catalog
from tube_mirror.core.exceptions import ConfigError, ConsistencyError
from tube_mirror.core.file_manager import VIEW_ROOTS, ArtifactStore, artifact_id_from_name
from tube_mirror.core.logger import get_logger
from tube_mirror.core.progress import DeletionProgressBar
from tube_mirror.utils import DEFAULT_SCAN_WORKERS, format_file_size, run_in_parallel

logger = get_logger(__name__)


@dataclass
class DeletionStats:
    """
    Outcome of one purge run.

    Attributes:
        deleted: Videos removed.
        skipped: Delete directory entries that could not be handled.
        symlinks_removed: View symlinks unlinked.
        freed_bytes: Bytes reclaimed from the artifact store.
    """
    deleted: int = 0
    skipped: int = 0
    symlinks_removed: int = 0
    freed_bytes: int = 0


def link_target_id(link: Path) -> str:
    """Id of the video a symlink points at, from its target's basename."""
    return artifact_id_from_name(os.path.basename(os.readlink(link)))


def _scan_view_dir(view_dir: Path) -> list[tuple[str, Path]]:
    entries = []
    for entry in view_dir.iterdir():
        if entry.is_symlink():
            entries.append((link_target_id(entry), entry))
    return entries


class Deleter:
    """
    Removes user-selected videos from every view and from the store.

    Attributes:
        catalog: Open catalog receiving the tombstones.
        store: Artifact store holding the files.
        base_dir: Data directory containing the view roots.
        num_threads: Fan-out of the index scan.
    """

    def __init__(
        self,
        catalog: Catalog,
        store: ArtifactStore,
        base_dir: Path,
        num_threads: int = DEFAULT_SCAN_WORKERS,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.base_dir = base_dir
        self.num_threads = num_threads

    def build_index(self) -> dict[str, list[Path]]:
        """
        Map every video id to the view symlinks pointing at it.

        Returns:
            Dict of id -> symlink paths across playlists/, channels/ and
            explicit_channels/.
        """
        logger.info("loading symlink dir entries")

        view_dirs = []
        for root in VIEW_ROOTS:
            root_dir = self.base_dir / root
            if not root_dir.is_dir():
                continue
            view_dirs.extend(
                entry for entry in sorted(root_dir.iterdir())
                if entry.is_dir() and not entry.is_symlink()
            )

        index: dict[str, list[Path]] = {}
        symlinks = 0

        for view_dir, result in run_in_parallel(
            _scan_view_dir,
            view_dirs,
            num_threads=self.num_threads,
            description="Scanning views",
        ):
            if isinstance(result, Exception):
                logger.error(f"Failed to scan {view_dir}: {result}")
                continue
            for video_id, link in result:
                index.setdefault(video_id, []).append(link)
                symlinks += 1

        logger.info(
            f"finished loading symlink dir entries, found {len(index)} unique videos "
            f"and {symlinks} symlinks"
        )
        return index

    def delete_videos(self, delete_dir: Path) -> DeletionStats:
        """
        Purge every video named by a symlink in delete_dir.

        Non-symlink entries and ids without any view symlink are logged and
        skipped; the remaining entries are still processed.
        Entries already unlinked by an earlier entry for the same id are
        skipped quietly.

        Raises:
            ConfigError: If delete_dir is not a directory.
            CatalogError: If a tombstone cannot be persisted.
        """
        if not delete_dir.is_dir():
            raise ConfigError(
                f"Delete directory not found: {delete_dir}",
                details={"path": str(delete_dir)}
            )

        index = self.build_index()
        entries = sorted(delete_dir.iterdir())
        logger.info(f"found {len(entries)} videos to delete")

        stats = DeletionStats()

        with DeletionProgressBar(total=len(entries)) as progress:
            for entry in entries:
                try:
                    deleted = self._delete_entry(entry, index, stats)
                except ConsistencyError as e:
                    logger.error(str(e))
                    stats.skipped += 1
                    progress.update(deleted=False)
                    continue
                if deleted:
                    stats.deleted += 1
                progress.update(deleted=deleted)

        logger.info(f"freed {format_file_size(stats.freed_bytes)}")
        return stats

    def _delete_entry(self, entry: Path, index: dict[str, list[Path]], stats: DeletionStats) -> bool:
        # An earlier entry for the same id already unlinked this one
        if not os.path.lexists(entry):
            logger.debug(f"{entry.name} already removed")
            return False

        if not entry.is_symlink():
            raise ConsistencyError(
                f"non symlink in delete dir {entry.name}",
                details={"path": str(entry)}
            )

        video_id = link_target_id(entry)
        symlinks = index.get(video_id)
        if not symlinks:
            raise ConsistencyError(
                f"inconsistent state, no symlinks for {video_id}",
                details={"video_id": video_id, "path": str(entry)}
            )

        self.catalog.mark_deleted(video_id)

        for link in symlinks:
            if os.path.lexists(link):
                link.unlink()
                stats.symlinks_removed += 1
        if os.path.lexists(entry):
            entry.unlink()

        freed = self.store.remove(video_id)
        stats.freed_bytes += freed

        logger.info(f"{video_id} freed {format_file_size(freed)}")
        return True
