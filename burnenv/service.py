"""
Drop Service — create / retrieve / revoke on top of the store.

Glues the admission policy to the ephemeral store. The raw request body is
what gets stored and what a later retrieval hands back, byte for byte.
"""
import secrets
import logging
from typing import Callable, Optional

from .policy import AdmissionPolicy, parse_request
from .store import EphemeralStore, Reason

logger = logging.getLogger("burnenv.service")

# 128 bits; collisions are treated as impossible and never checked
_ID_BYTES = 16


def new_drop_id() -> str:
    """Return a fresh random identifier (32 hex characters)."""
    return secrets.token_hex(_ID_BYTES)


class DropService:
    """Create, retrieve and revoke drops.

    Args:
        store: Ephemeral store owning every admitted blob.
        policy: Admission policy applied before anything is stored.
        id_factory: Callable producing new identifiers.
    """

    def __init__(
        self,
        store: EphemeralStore,
        policy: Optional[AdmissionPolicy] = None,
        id_factory: Callable[[], str] = new_drop_id,
    ):
        self.store = store
        self.policy = policy or AdmissionPolicy()
        self._new_id = id_factory

    def create(self, raw: bytes, now: Optional[float] = None) -> str:
        """Admit a raw envelope and store it under a new identifier.

        Args:
            raw: JSON request body.
            now: Override for the current time (seconds since epoch).

        Returns:
            The new drop identifier.

        Raises:
            StructuralError: If the body is malformed or misses a field.
            BoundsError: If size, expiry or max_views are out of range.
        """
        request = self.policy.admit(parse_request(raw), now=now)
        drop_id = self._new_id()
        self.store.put(drop_id, raw, request.max_views, request.expiry)
        logger.info(
            "Created drop %s (max_views=%d, expiry=%d)",
            drop_id[:8], request.max_views, request.expiry,
        )
        return drop_id

    def retrieve(self, drop_id: str) -> tuple[Optional[bytes], Reason]:
        return self.store.get_with_reason(drop_id)

    def revoke(self, drop_id: str) -> bool:
        removed = self.store.delete(drop_id)
        logger.info("Revoke drop %s: %s", drop_id[:8], "removed" if removed else "absent")
        return removed
