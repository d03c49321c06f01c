"""
Ephemeral Store — In-memory secret blobs with view limits and expiry.

Provides the lifecycle API used by the drop service:
- ``put(id, blob, max_views, expiry)`` — admit a blob
- ``get_with_reason(id)`` — burn one view and return the blob, or say why not
- ``delete(id)`` — manual revoke
- ``sweep()`` — drop entries nobody came back for
- ``start()`` / ``stop()`` — background sweeper bound to the event loop

Every operation runs under one ``threading.Lock`` and never awaits while
holding it, so the store is safe from asyncio handlers and worker threads
alike. Contents are process-local: a restart loses everything.

Security Note:
    The store never parses blobs. Identifiers are bearer capabilities;
    only their first 8 characters are ever logged.
"""
import time
import asyncio
import logging
import threading
from enum import Enum
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger("burnenv.store")

_DEFAULT_SWEEP_INTERVAL = 30.0
_DEFAULT_SWEEP_BATCH = 1024


class Reason(str, Enum):
    """Outcome of a retrieval attempt."""

    SUCCESS = "success"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


@dataclass
class StoredSecret:
    blob: bytes
    views_remaining: int
    expiry: float


def _short(secret_id: str) -> str:
    return secret_id[:8]


class EphemeralStore:
    """Burn-on-read secret store.

    Args:
        sweep_interval: Seconds between background expiry sweeps.
        sweep_batch: Entries examined per lock acquisition while sweeping.
        clock: Source of "now" in seconds since epoch.
    """

    def __init__(
        self,
        sweep_interval: float = _DEFAULT_SWEEP_INTERVAL,
        sweep_batch: int = _DEFAULT_SWEEP_BATCH,
        clock: Callable[[], float] = time.time,
    ):
        self._secrets: dict[str, StoredSecret] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._sweep_batch = max(1, sweep_batch)
        self._stop_event: Optional[asyncio.Event] = None
        self._sweeper: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._secrets)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def put(self, secret_id: str, blob: bytes, max_views: int, expiry: float) -> None:
        """Insert or overwrite a secret.

        Args:
            secret_id: Random identifier chosen by the caller.
            blob: Serialized envelope, stored as-is.
            max_views: Successful retrievals allowed before the entry burns.
            expiry: Absolute expiry, seconds since epoch.
        """
        with self._lock:
            self._secrets[secret_id] = StoredSecret(
                blob=blob,
                views_remaining=max_views,
                expiry=expiry,
            )
        logger.debug("Stored secret %s (max_views=%d)", _short(secret_id), max_views)

    def get_with_reason(self, secret_id: str) -> tuple[Optional[bytes], Reason]:
        """Retrieve a blob, consuming one view.

        Expiry is checked before the view counter, so an expired entry is
        reported as EXPIRED however many views it had left. The check and
        the decrement happen under a single lock acquisition: two callers
        racing for the last view cannot both succeed.

        Args:
            secret_id: Identifier returned at creation.

        Returns:
            ``(blob, Reason.SUCCESS)`` or ``(None, reason)``.
        """
        with self._lock:
            secret = self._secrets.get(secret_id)
            if secret is None:
                reason = Reason.NOT_FOUND
            elif self._clock() >= secret.expiry:
                del self._secrets[secret_id]
                reason = Reason.EXPIRED
            elif secret.views_remaining <= 0:
                del self._secrets[secret_id]
                reason = Reason.EXHAUSTED
            else:
                secret.views_remaining -= 1
                if secret.views_remaining == 0:
                    del self._secrets[secret_id]
                reason = Reason.SUCCESS
        if reason is Reason.SUCCESS:
            logger.debug(
                "Served secret %s (%d view(s) left)",
                _short(secret_id), secret.views_remaining,
            )
            return secret.blob, reason
        logger.debug("Secret %s unavailable: %s", _short(secret_id), reason.value)
        return None, reason

    def get(self, secret_id: str) -> Optional[bytes]:
        """Retrieve a blob, consuming one view; None when unavailable."""
        blob, _ = self.get_with_reason(secret_id)
        return blob

    def delete(self, secret_id: str) -> bool:
        """Remove a secret unconditionally.

        Returns:
            True if an entry was removed, False if there was none.
        """
        with self._lock:
            removed = self._secrets.pop(secret_id, None) is not None
        if removed:
            logger.debug("Revoked secret %s", _short(secret_id))
        return removed

    def sweep(self) -> int:
        """Delete every expired entry.

        The key snapshot is taken once; afterwards at most ``sweep_batch``
        entries are examined per lock acquisition so foreground requests
        interleave with a long sweep.

        Returns:
            Number of entries removed.
        """
        removed = 0
        for chunk in self._sweep_chunks():
            removed += self._sweep_chunk(chunk)
        return removed

    # ------------------------------------------------------------------
    # Sweep helpers
    # ------------------------------------------------------------------

    def _sweep_chunks(self) -> list[list[str]]:
        with self._lock:
            ids = list(self._secrets)
        size = self._sweep_batch
        return [ids[i:i + size] for i in range(0, len(ids), size)]

    def _sweep_chunk(self, ids: list[str]) -> int:
        removed = 0
        with self._lock:
            now = self._clock()
            for secret_id in ids:
                secret = self._secrets.get(secret_id)
                if secret is not None and now >= secret.expiry:
                    del self._secrets[secret_id]
                    removed += 1
        return removed

    async def _sweep_async(self) -> int:
        removed = 0
        for chunk in self._sweep_chunks():
            removed += self._sweep_chunk(chunk)
            # let request handlers in between chunks
            await asyncio.sleep(0)
        return removed

    async def _sweep_loop(self) -> None:
        stop = self._stop_event
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._sweep_interval)
            except asyncio.TimeoutError:
                pass
            if stop.is_set():
                break
            try:
                removed = await self._sweep_async()
            except Exception:
                logger.exception("Expiry sweep failed; retrying next tick")
                continue
            if removed:
                logger.debug("Sweep removed %d expired secret(s)", removed)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def start(self) -> None:
        """Start the background sweeper on the running event loop."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._sweeper = asyncio.create_task(self._sweep_loop())
        logger.info("Expiry sweeper started (interval=%ss)", self._sweep_interval)

    async def stop(self) -> None:
        """Signal the sweeper to stop and wait for it to finish."""
        if self._sweeper is None:
            return
        self._stop_event.set()
        await self._sweeper
        self._sweeper = None
        self._stop_event = None
        logger.info("Expiry sweeper stopped")
