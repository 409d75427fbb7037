"""
Command-line interface for tube-mirror.

This module implements the CLI using Click, with rich-click for the
help output colors.

Commands:
    tube-mirror                         Sync every URL of the configured URL list
    tube-mirror --urls <file>           Sync every URL of another URL list
    tube-mirror --delete                Purge the videos linked from the delete directory
    tube-mirror --delete <dir>          Purge the videos linked from another directory

Options:
    --config <config.yaml>              Configuration file (default: ./config.yaml)
    --verbose                           Show debug output on the console

Usage:
    # Mirror everything listed in <data dir>/urls.txt
    tube-mirror

    # Mirror a different list
    tube-mirror --urls ~/lists/music.txt

    # Remove videos: symlink them into playlists/to_delete first
    cp -P ~/Videos/TubeMirror/playlists/Some_PL123/*.mkv ~/Videos/TubeMirror/playlists/to_delete/
    tube-mirror --delete

Startup sequence:
    1. Load config.yaml and apply the command-line overrides
    2. Create the data directory and set up logging under <data>/logs
    3. Acquire the single-instance lock (exit 3 if another run is live)
    4. Open stats.json, count the instance, create the view roots and execs/
    5. Run the sync or the purge
    6. Flush stats.json and release the lock, whatever happened

Exit codes:
    0    success
    1    configuration or unexpected error
    2    stats.json could not be read or written
    3    another instance is running, or the lock is unusable
    4    any other tube-mirror error
    130  interrupted
"""

import dataclasses
import sys
from pathlib import Path
from typing import Optional

import rich_click as click

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100
click.rich_click.OPTION_GROUPS = {
    "cli": [
        {
            "name": "Actions",
            "options": ["--urls", "--delete"],
        },
        {
            "name": "Options",
            "options": ["--config", "--verbose"],
        },
        {
            "name": "Info",
            "options": ["--version", "--help"],
        },
    ],
}

from tube_mirror import __version__
from tube_mirror.core import (
    Catalog,
    CatalogError,
    Config,
    ConfigError,
    InstanceLock,
    InstanceLockError,
    MirrorError,
    STATS_FILENAME,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from tube_mirror.core.file_manager import ArtifactStore, ViewBuilder
from tube_mirror.download import VideoFetcher
from tube_mirror.purge import Deleter
from tube_mirror.sync import SyncEngine
from tube_mirror.utils import ensure_directory, format_file_size
from tube_mirror.youtube import EXECS_DIRNAME, YtDlp

logger = get_logger(__name__)


# Sentinel for a bare --delete (use the configured directory)
_CONFIGURED_DELETE_DIR = ""


@click.command()
@click.option(
    "--urls",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    metavar="<file>",
    help="URL list to sync (default: input.url_file of config.yaml)"
)
@click.option(
    "--delete", "delete_dir",
    is_flag=False,
    flag_value=_CONFIGURED_DELETE_DIR,
    default=None,
    metavar="[<dir>]",
    help="Delete the videos symlinked from this directory (default: input.delete_directory)"
)
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    metavar="<config.yaml>",
    help="Configuration file (default: ./config.yaml)"
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Show debug output on the console"
)
@click.option(
    "--version",
    is_flag=True,
    help="Show version and exit."
)
@click.pass_context
def cli(
    ctx: click.Context,
    urls: Optional[Path],
    delete_dir: Optional[str],
    config_path: Optional[Path],
    verbose: bool,
    version: bool
) -> None:
    """
    tube-mirror: Keep a deduplicated local mirror of YouTube playlists and channels.

    Every video is downloaded once into a content-addressed store and shown
    in per-playlist and per-channel directories of symlinks.

    \b
    SYNC:
        tube-mirror                          # URL list from config.yaml
        tube-mirror --urls urls.txt          # Another URL list

    \b
    DELETE:
        tube-mirror --delete                 # playlists/to_delete
        tube-mirror --delete ~/to_delete     # Another directory
    """
    if version:
        click.echo(f"tube-mirror {__version__}")
        ctx.exit(0)

    if urls is not None and delete_dir is not None:
        raise click.UsageError("Cannot use both --urls and --delete")

    _run(
        config_path=config_path,
        urls=urls,
        delete_dir=delete_dir,
        verbose=verbose,
    )


def _run(
    config_path: Optional[Path],
    urls: Optional[Path],
    delete_dir: Optional[str],
    verbose: bool,
) -> None:
    """
    Execute one sync or purge run.

    Raises:
        SystemExit: On fatal errors (with appropriate exit code).
    """
    lock: InstanceLock | None = None
    catalog: Catalog | None = None

    try:
        config = _load_configuration(config_path, urls, delete_dir)
        data_dir = ensure_directory(config.output.directory)

        setup_logging(data_dir, verbose=verbose)
        logger.info(f"tube-mirror {__version__} starting in {data_dir}")

        lock = InstanceLock(data_dir, config.lock_name)
        if not lock.acquire():
            click.echo("Another instance is already running", err=True)
            sys.exit(3)

        catalog = _initialize_catalog(data_dir)

        store = ArtifactStore(data_dir)
        views = ViewBuilder(data_dir, store)
        views.ensure_roots()
        ensure_directory(data_dir / EXECS_DIRNAME)

        if delete_dir is not None:
            _run_delete(config, catalog, store)
        else:
            _run_sync(config, catalog, store, views)

        logger.info("tube-mirror completed successfully")

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        logger.error(f"Configuration error: {e.message}")
        sys.exit(1)

    except CatalogError as e:
        click.echo(f"Catalog error: {e.message}", err=True)
        logger.error(f"Catalog error: {e.message}", exc_info=True)
        sys.exit(2)

    except InstanceLockError as e:
        click.echo(f"Instance lock error: {e.message}", err=True)
        logger.error(f"Instance lock error: {e.message}", exc_info=True)
        sys.exit(3)

    except MirrorError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        sys.exit(4)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error")
        sys.exit(1)

    finally:
        _close(catalog, lock)
        shutdown_logging()


def _load_configuration(
    config_path: Optional[Path],
    urls: Optional[Path],
    delete_dir: Optional[str],
) -> Config:
    """
    Load config.yaml and apply the command-line overrides.

    Raises:
        ConfigError: If configuration is invalid or missing.
    """
    config = load_config(config_path)

    overrides = {}
    if urls is not None:
        overrides["url_file"] = urls.expanduser().resolve()
    if delete_dir:
        overrides["delete_directory"] = Path(delete_dir).expanduser().resolve()

    if overrides:
        config = dataclasses.replace(
            config, input=dataclasses.replace(config.input, **overrides)
        )
    return config


def _initialize_catalog(data_dir: Path) -> Catalog:
    """
    Open stats.json and count this startup.

    Raises:
        CatalogError: If stats.json cannot be opened, parsed or written.
    """
    catalog = Catalog(data_dir / STATS_FILENAME)
    catalog.open()
    catalog.load()
    instance = catalog.begin_instance()
    logger.debug(f"Instance number {instance}")
    return catalog


def _close(catalog: Catalog | None, lock: InstanceLock | None) -> None:
    """Flush the catalog and release the lock. Errors are logged, not raised."""
    if catalog is not None:
        try:
            catalog.close()
        except CatalogError as e:
            click.echo(f"Catalog error: {e.message}", err=True)
            logger.error(f"Failed to flush catalog: {e.message}")
    if lock is not None:
        lock.release()


def _run_sync(
    config: Config,
    catalog: Catalog,
    store: ArtifactStore,
    views: ViewBuilder,
) -> None:
    """Sync every URL of the URL list."""
    data_dir = config.output.directory

    ytdlp = YtDlp(config.downloader, data_dir, catalog)
    fetcher = VideoFetcher(catalog, ytdlp, store, prober_binary=config.prober.binary)
    engine = SyncEngine(
        catalog,
        ytdlp,
        fetcher,
        store,
        views,
        query_timeout=config.downloader.query_timeout,
    )

    logger.info("=" * 60)
    logger.info(f"SYNC: {config.input.url_file}")
    logger.info("=" * 60)

    engine.process_url_file(config.input.url_file)
    engine.log_stats()


def _run_delete(config: Config, catalog: Catalog, store: ArtifactStore) -> None:
    """Purge the videos linked from the delete directory."""
    deleter = Deleter(catalog, store, config.output.directory)

    logger.info("=" * 60)
    logger.info(f"DELETE: {config.input.delete_directory}")
    logger.info("=" * 60)

    stats = deleter.delete_videos(config.input.delete_directory)

    logger.info("=" * 60)
    logger.info("DELETE COMPLETE")
    logger.info("=" * 60)
    logger.info(f"Videos deleted:    {stats.deleted}")
    logger.info(f"Entries skipped:   {stats.skipped}")
    logger.info(f"Symlinks removed:  {stats.symlinks_removed}")
    logger.info(f"Space freed:       {format_file_size(stats.freed_bytes)}")
    logger.info("=" * 60)


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `tube-mirror` from the command line.
    """
    cli()


if __name__ == "__main__":
    main()
