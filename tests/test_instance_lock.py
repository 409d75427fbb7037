# tests/test_instance_lock.py
"""Test single-instance coordination"""

import socket
import threading

from tube_mirror.core.instance_lock import InstanceLock, socket_path_for


class TestInstanceLock:
    """Test acquiring and releasing the lock"""

    def test_acquire_and_release(self, temp_dir):
        """Test a free lock can be taken"""
        lock = InstanceLock(temp_dir, "tm-test")
        try:
            assert lock.acquire() is True
            assert lock.held
            assert lock.socket_path.exists()
        finally:
            lock.release()
        assert not lock.held
        assert not lock.socket_path.exists()

    def test_second_instance_is_refused(self, temp_dir):
        """Test a live holder makes acquire() return False"""
        first = InstanceLock(temp_dir, "tm-test")
        second = InstanceLock(temp_dir, "tm-test")
        try:
            assert first.acquire() is True
            assert second.acquire() is False
            assert not second.held
        finally:
            second.release()
            first.release()

    def test_reacquire_after_release(self, temp_dir):
        """Test the lock is free again once released"""
        first = InstanceLock(temp_dir, "tm-test")
        assert first.acquire() is True
        first.release()

        second = InstanceLock(temp_dir, "tm-test")
        try:
            assert second.acquire() is True
        finally:
            second.release()

    def test_stale_socket_is_reclaimed(self, temp_dir):
        """Test a socket file left by a dead process does not block"""
        path = socket_path_for(temp_dir, "tm-test")
        dead = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        dead.bind(str(path))
        dead.close()
        assert path.exists()

        lock = InstanceLock(temp_dir, "tm-test")
        try:
            assert lock.acquire() is True
        finally:
            lock.release()

    def test_release_without_acquire(self, temp_dir):
        """Test release is safe when nothing was acquired"""
        lock = InstanceLock(temp_dir, "tm-test")
        lock.release()
        lock.release()
        assert not lock.held

    def test_different_directories_do_not_contend(self, temp_dir):
        """Test locks are per data directory"""
        (temp_dir / "a").mkdir()
        (temp_dir / "b").mkdir()
        first = InstanceLock(temp_dir / "a", "tm-test")
        second = InstanceLock(temp_dir / "b", "tm-test")
        try:
            assert first.acquire() is True
            assert second.acquire() is True
        finally:
            first.release()
            second.release()

    def test_context_manager_releases(self, temp_dir):
        """Test leaving the with-block releases the lock"""
        with InstanceLock(temp_dir, "tm-test") as lock:
            assert lock.acquire() is True
        assert not lock.held

    def test_simultaneous_starts(self, temp_dir):
        """Test exactly one of two racing starts wins and the other sees contention"""
        for _ in range(20):
            locks = [InstanceLock(temp_dir, "tm-test") for _ in range(2)]
            barrier = threading.Barrier(len(locks))
            outcomes = [None] * len(locks)

            def start(index):
                barrier.wait()
                try:
                    outcomes[index] = locks[index].acquire()
                except Exception as e:
                    outcomes[index] = e

            threads = [threading.Thread(target=start, args=(i,)) for i in range(len(locks))]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

            try:
                assert all(isinstance(o, bool) for o in outcomes), outcomes
                assert sorted(outcomes) == [False, True]
                assert locks[0].socket_path.exists()
            finally:
                for lock in locks:
                    lock.release()

    def test_address_in_use_is_contention(self, temp_dir, monkeypatch):
        """Test losing the bind race reports False instead of raising"""
        first = InstanceLock(temp_dir, "tm-test")
        second = InstanceLock(temp_dir, "tm-test")
        monkeypatch.setattr(second, "_probe_existing_holder", lambda: False)
        try:
            assert first.acquire() is True
            assert second.acquire() is False
            assert not second.held
            assert first.socket_path.exists()
        finally:
            second.release()
            first.release()
