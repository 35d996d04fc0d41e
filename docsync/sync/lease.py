"""Expiring, token-owned lease serializing sync passes."""

import json
import os
import socket
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

import structlog

from docsync.errors import SyncInProgressError

log = structlog.stdlib.get_logger()


@dataclass(frozen=True)
class LeaseHandle:
    """Proof of lease ownership returned by ``acquire``."""

    token: str
    owner: str
    expires_at: float


class SyncLease:
    """Ensures at most one pass runs per source/store pair.

    The lease is a JSON file ``{token, owner, expires_at}`` created with
    O_EXCL. A lease whose ``expires_at`` has passed may be taken over, which
    recovers from crashed passes. Release deletes the file only if it still
    carries our token. Without a path the lease is process-local.
    """

    POLL_INTERVAL_SECONDS: float = 0.5

    def __init__(
        self,
        path: str | Path | None,
        ttl_seconds: float = 1800,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._path = Path(path) if path is not None else None
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._sleep = sleep
        self._local_lock = threading.Lock()
        self._local_handle: LeaseHandle | None = None
        self._owner = f"{socket.gethostname()}:{os.getpid()}"

    def try_acquire(self) -> LeaseHandle | None:
        """Take the lease if it is free or expired. Returns None when held."""
        if not self._local_lock.acquire(blocking=False):
            return None

        handle = LeaseHandle(
            token=uuid.uuid4().hex,
            owner=self._owner,
            expires_at=self._clock() + self._ttl_seconds,
        )
        try:
            acquired = self._path is None or self._create_lease_file(handle)
        except BaseException:
            self._local_lock.release()
            raise

        if not acquired:
            self._local_lock.release()
            return None

        self._local_handle = handle
        log.info("sync_lease_acquired", owner=handle.owner, ttl_seconds=self._ttl_seconds)
        return handle

    def acquire(self, wait_seconds: float = 0.0) -> LeaseHandle:
        """
        Take the lease, waiting up to ``wait_seconds`` for a running pass.

        Raises:
            SyncInProgressError: If the lease is still held after waiting
        """
        deadline = self._clock() + wait_seconds
        while True:
            handle = self.try_acquire()
            if handle is not None:
                return handle
            if self._clock() >= deadline:
                holder = self._read_lease_file()
                log.warning(
                    "sync_lease_busy",
                    holder=holder.get("owner") if holder else None,
                    waited_seconds=wait_seconds,
                )
                raise SyncInProgressError("Another sync pass is already running")
            self._sleep(self.POLL_INTERVAL_SECONDS)

    def release(self, handle: LeaseHandle) -> None:
        """Release the lease if ``handle`` still owns it."""
        if self._local_handle is None or self._local_handle.token != handle.token:
            log.warning("sync_lease_release_not_owner", owner=handle.owner)
            return

        try:
            if self._path is not None:
                current = self._read_lease_file()
                if current and current.get("token") == handle.token:
                    self._path.unlink(missing_ok=True)
                else:
                    log.warning("sync_lease_taken_over", owner=handle.owner)
        finally:
            self._local_handle = None
            self._local_lock.release()
        log.info("sync_lease_released", owner=handle.owner)

    @contextmanager
    def hold(self, wait_seconds: float = 0.0) -> Iterator[LeaseHandle]:
        handle = self.acquire(wait_seconds)
        try:
            yield handle
        finally:
            self.release(handle)

    def _create_lease_file(self, handle: LeaseHandle) -> bool:
        assert self._path is not None
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(
            {"token": handle.token, "owner": handle.owner, "expires_at": handle.expires_at}
        )

        for _ in range(2):
            try:
                fd = os.open(self._path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                current = self._read_lease_file()
                if current is not None:
                    expires_at = current.get("expires_at", 0)
                else:
                    # Unreadable while another process is still writing it.
                    try:
                        expires_at = self._path.stat().st_mtime + self._ttl_seconds
                    except FileNotFoundError:
                        continue
                if expires_at > self._clock():
                    return False
                log.warning(
                    "sync_lease_expired_takeover",
                    previous_owner=current.get("owner") if current else None,
                )
                self._path.unlink(missing_ok=True)
                continue

            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            return True

        return False

    def _read_lease_file(self) -> dict | None:
        if self._path is None:
            return None
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            log.warning("sync_lease_unreadable", path=str(self._path), error=str(e))
            return None
