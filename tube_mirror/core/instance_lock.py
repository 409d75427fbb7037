"""
Single-instance coordination for tube-mirror.

At most one live process may work on a data directory. The rendezvous point
is a Unix domain socket in the system temp directory: the holder keeps a
listening socket bound to it for the lifetime of the run, and a starting
process probes it by connecting.

    connect succeeds               -> another instance is live, acquire() is False
    FileNotFoundError / refused    -> nobody holds it; remove the stale socket
                                      file, bind, listen, acquire() is True
    bind fails with EADDRINUSE     -> another instance won the race, acquire() is False
    anything else                  -> InstanceLockError (fatal setup failure)

Probing, stale socket removal and binding run under a file lock next to the
socket, so two processes starting together cannot both reclaim the socket.

The socket name is derived from the lock name and a digest of the resolved
data directory, so different data directories never contend.

Usage:
    lock = InstanceLock(data_dir)
    if not lock.acquire():
        sys.exit(3)
    try:
        ...
    finally:
        lock.release()
"""

import errno
import hashlib
import os
import socket
import tempfile
from pathlib import Path

from filelock import FileLock, Timeout

from tube_mirror.core.exceptions import InstanceLockError
from tube_mirror.core.logger import get_logger

logger = get_logger(__name__)


DEFAULT_LOCK_NAME = "tube-mirror"
PROBE_MESSAGE = b"check-existing-instance"
PROBE_TIMEOUT = 5.0
GUARD_TIMEOUT = 30.0


def socket_path_for(data_dir: Path, name: str = DEFAULT_LOCK_NAME) -> Path:
    """
    Return the rendezvous socket path for a data directory.

    Kept short because AF_UNIX paths are limited to ~100 bytes.
    """
    digest = hashlib.sha1(str(data_dir.resolve()).encode("utf-8")).hexdigest()[:16]
    return Path(tempfile.gettempdir()) / f"{name}-{digest}.sock"


class InstanceLock:
    """
    Exclusive per-data-directory lock backed by a listening Unix socket.

    Attributes:
        data_dir: Data directory being protected.
        socket_path: Rendezvous point in the temp directory.
        guard_path: File lock serializing probe, cleanup and bind.
    """

    def __init__(self, data_dir: Path, name: str = DEFAULT_LOCK_NAME) -> None:
        self.data_dir = data_dir
        self.socket_path = socket_path_for(data_dir, name)
        self.guard_path = self.socket_path.with_suffix(".guard")
        self._guard = FileLock(str(self.guard_path), timeout=GUARD_TIMEOUT)
        self._server: socket.socket | None = None

    def __enter__(self) -> "InstanceLock":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    @property
    def held(self) -> bool:
        return self._server is not None

    def acquire(self) -> bool:
        """
        Try to become the single live instance.

        Returns:
            True if this process now holds the lock, False if another
            instance already holds it or wins a simultaneous start.

        Raises:
            InstanceLockError: If probing or binding fails for any reason
                               other than "no holder" or "address in use".
        """
        if self._server is not None:
            return True

        logger.debug(f"Probing instance lock {self.socket_path}")

        try:
            with self._guard:
                server = self._bind_unless_held()
        except Timeout as e:
            raise InstanceLockError(
                f"Timed out waiting for instance lock guard {self.guard_path}",
                details={"path": str(self.guard_path), "original_error": str(e)}
            ) from e
        except OSError as e:
            raise InstanceLockError(
                f"Failed to open instance lock guard: {e}",
                details={"path": str(self.guard_path), "original_error": str(e)}
            ) from e

        if server is None:
            logger.error("another instance is already running, aborting")
            return False

        self._server = server
        logger.debug(f"Instance lock acquired {self.socket_path}")
        return True

    def release(self) -> None:
        """
        Release the lock. Safe to call when acquire() failed or was never
        called, and safe to call more than once.
        """
        server, self._server = self._server, None
        if server is None:
            return

        try:
            with self._guard:
                self._close_and_unlink(server)
        except Timeout:
            logger.warning(f"Timed out waiting for {self.guard_path}, releasing anyway")
            self._close_and_unlink(server)

        logger.debug("Instance lock released")

    def _bind_unless_held(self) -> socket.socket | None:
        if self._probe_existing_holder():
            return None

        server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            server.bind(str(self.socket_path))
            server.listen(16)
        except OSError as e:
            server.close()
            if e.errno == errno.EADDRINUSE:
                return None
            raise InstanceLockError(
                f"Failed to bind instance lock: {e}",
                details={"path": str(self.socket_path), "original_error": str(e)}
            ) from e
        return server

    def _close_and_unlink(self, server: socket.socket) -> None:
        server.close()
        try:
            os.unlink(self.socket_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove lock socket {self.socket_path}: {e}")

    def _probe_existing_holder(self) -> bool:
        client = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        client.settimeout(PROBE_TIMEOUT)
        try:
            client.connect(str(self.socket_path))
            client.sendall(PROBE_MESSAGE)
            return True
        except socket.timeout:
            # A holder whose backlog is full still counts as live
            return True
        except (FileNotFoundError, ConnectionRefusedError):
            self._remove_stale_socket()
            return False
        except OSError as e:
            raise InstanceLockError(
                f"Failed to probe instance lock: {e}",
                details={"path": str(self.socket_path), "original_error": str(e)}
            ) from e
        finally:
            client.close()

    def _remove_stale_socket(self) -> None:
        try:
            os.unlink(self.socket_path)
            logger.debug(f"Removed stale lock socket {self.socket_path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            raise InstanceLockError(
                f"Failed to remove stale lock socket: {e}",
                details={"path": str(self.socket_path), "original_error": str(e)}
            ) from e
