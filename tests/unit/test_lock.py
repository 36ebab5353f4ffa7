"""Unit tests for the sidecar token lock."""

import os
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from gworkspace_cli.auth.exceptions import LockTimeoutError
from gworkspace_cli.auth.lock import _remove_stale_lock, acquire_lock, file_lock, get_lock_path


@pytest.mark.unit
class TestAcquireLock:
    """Tests for acquire_lock()."""

    def test_should_create_lock_file_with_pid(self, tmp_path: Path) -> None:
        """Verify the lock file exists while held and records our PID."""
        target = tmp_path / "token.json"
        release = acquire_lock(target)

        lock_path = get_lock_path(target)
        assert lock_path == tmp_path / "token.json.lock"
        assert lock_path.read_text() == str(os.getpid())
        assert (lock_path.stat().st_mode & 0o777) == 0o600

        release()
        assert not lock_path.exists()

    def test_release_should_be_idempotent(self, tmp_path: Path) -> None:
        """Verify calling release twice does not raise."""
        target = tmp_path / "token.json"
        release = acquire_lock(target)

        release()
        release()

        assert not get_lock_path(target).exists()

    def test_release_should_not_remove_another_holders_lock(self, tmp_path: Path) -> None:
        """Verify a second release does not delete a lock taken after the first."""
        target = tmp_path / "token.json"
        first = acquire_lock(target)
        first()
        second = acquire_lock(target)

        first()

        assert get_lock_path(target).exists()
        second()

    def test_should_time_out_when_lock_is_held(self, tmp_path: Path) -> None:
        """Verify a fresh lock held elsewhere produces LockTimeoutError."""
        target = tmp_path / "token.json"
        release = acquire_lock(target)

        try:
            with pytest.raises(LockTimeoutError) as exc_info:
                acquire_lock(target, timeout=0.2, poll_interval=0.01)
        finally:
            release()

        assert "timeout waiting for lock" in str(exc_info.value)
        assert exc_info.value.remediation is None

    def test_should_reclaim_stale_lock(self, tmp_path: Path) -> None:
        """Verify a lock older than the staleness age is removed and re-acquired."""
        target = tmp_path / "token.json"
        lock_path = get_lock_path(target)
        lock_path.write_text("99999")
        old = time.time() - 60
        os.utime(lock_path, (old, old))

        # No wait budget: reclaiming must not depend on polling.
        release = acquire_lock(target, timeout=0)

        assert lock_path.read_text() == str(os.getpid())
        release()

    def test_should_keep_lock_taken_over_during_reclaim(self, tmp_path: Path) -> None:
        """Verify a lock replaced after the staleness check is not removed."""
        lock_path = get_lock_path(tmp_path / "token.json")
        lock_path.write_text("99999")
        old = time.time() - 60
        os.utime(lock_path, (old, old))
        real_read_text = Path.read_text

        def replaced_by_new_holder(self: Path, *args: object, **kwargs: object) -> str:
            # Another waiter reclaims the stale lock and a new holder takes it.
            holder = real_read_text(self)
            self.unlink()
            self.write_text("12345")
            return holder

        with patch.object(Path, "read_text", autospec=True, side_effect=replaced_by_new_holder):
            assert _remove_stale_lock(lock_path, 30.0) is False

        assert lock_path.read_text() == "12345"

    def test_should_not_reclaim_recent_lock(self, tmp_path: Path) -> None:
        """Verify a lock younger than the staleness age is left in place."""
        target = tmp_path / "token.json"
        lock_path = get_lock_path(target)
        lock_path.write_text("99999")

        with pytest.raises(LockTimeoutError):
            acquire_lock(target, timeout=0.1, poll_interval=0.01)

        assert lock_path.read_text() == "99999"

    def test_should_respect_custom_stale_age(self, tmp_path: Path) -> None:
        """Verify stale_after can shorten the reclaim threshold."""
        target = tmp_path / "token.json"
        lock_path = get_lock_path(target)
        lock_path.write_text("99999")
        old = time.time() - 5
        os.utime(lock_path, (old, old))

        release = acquire_lock(target, timeout=0.5, stale_after=1.0)

        assert lock_path.read_text() == str(os.getpid())
        release()


@pytest.mark.unit
class TestFileLock:
    """Tests for the file_lock() context manager."""

    def test_should_release_on_exit(self, tmp_path: Path) -> None:
        """Verify the lock is removed when the block exits normally."""
        target = tmp_path / "token.json"

        with file_lock(target):
            assert get_lock_path(target).exists()

        assert not get_lock_path(target).exists()

    def test_should_release_on_exception(self, tmp_path: Path) -> None:
        """Verify the lock is removed when the block raises."""
        target = tmp_path / "token.json"

        with pytest.raises(RuntimeError):
            with file_lock(target):
                raise RuntimeError("boom")

        assert not get_lock_path(target).exists()
