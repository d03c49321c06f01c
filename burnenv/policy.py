"""
Admission Policy — Structural and bounds checks for inbound drops.

The server never decrypts or decodes envelopes. It only checks that the
text fields are present and reasonably sized, and that the lifecycle the
sender asked for (expiry, max_views) fits the configured window.

Every rule has its own code so clients can tell rejections apart;
evaluation has no side effects and never touches the store.
"""
import time
import logging
from typing import Callable, NamedTuple, Optional

import orjson
from pydantic import BaseModel, StrictInt, StrictStr, ValidationError

from .config import PolicyLimits
from .exceptions import BoundsError, StructuralError

logger = logging.getLogger("burnenv.policy")

_STRUCTURAL_CODES = frozenset({"missing_ciphertext", "missing_salt", "missing_iv"})
# lifecycle and kdf fields have no meaningful empty value
_REQUIRED_FIELDS = ("kdf", "expiry", "max_views")


class KDFWire(BaseModel):
    """Key-derivation parameters as sent on the wire (shape only)."""

    algorithm: StrictStr
    time: StrictInt
    memory: StrictInt
    threads: StrictInt


class DropRequest(BaseModel):
    """Create request as it arrives on the wire.

    Binary fields stay base64 text: the server stores them untouched.
    Missing binary fields default to empty values so each one is reported
    by its own admission rule instead of a generic parse error.

    Fields are strictly typed: the raw body is stored and served as-is,
    so a string expiry or a boolean view count is rejected, not coerced.
    """

    ciphertext: StrictStr = ""
    salt: StrictStr = ""
    iv: StrictStr = ""
    kdf: KDFWire
    expiry: StrictInt
    max_views: StrictInt


class Violation(NamedTuple):
    code: str
    message: str
    status: int = 400


def parse_request(raw: bytes) -> DropRequest:
    """Parse a raw JSON body into a DropRequest.

    Args:
        raw: Request body bytes.

    Returns:
        Structurally valid DropRequest (bounds not yet checked).

    Raises:
        StructuralError: On invalid JSON, a missing kdf/expiry/max_views
            or wrongly typed fields.
    """
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as err:
        raise StructuralError("invalid JSON", code="invalid_json") from err
    if not isinstance(data, dict):
        raise StructuralError("invalid payload structure")
    for name in _REQUIRED_FIELDS:
        if name not in data:
            raise StructuralError(
                f"missing required field: {name}", code=f"missing_{name}",
            )
    try:
        return DropRequest.model_validate(data)
    except ValidationError:
        raise StructuralError("invalid payload structure") from None


class AdmissionPolicy:
    """Bounds checks for a create request.

    Args:
        limits: Size, expiry and view-count limits.
        clock: Source of "now" in seconds since epoch.
    """

    def __init__(
        self,
        limits: Optional[PolicyLimits] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.limits = limits or PolicyLimits()
        self._clock = clock

    def evaluate(self, request: DropRequest, now: Optional[float] = None) -> Optional[Violation]:
        """Return the first violated rule, or None if the request is admissible.

        Args:
            request: Parsed create request.
            now: Override for the current time (seconds since epoch).
        """
        limits = self.limits
        # required fields
        if not request.ciphertext:
            return Violation("missing_ciphertext", "missing required field: ciphertext")
        if not request.salt:
            return Violation("missing_salt", "missing required field: salt")
        if not request.iv:
            return Violation("missing_iv", "missing required field: iv")
        # sizes
        if len(request.ciphertext) > limits.max_ciphertext_len:
            return Violation(
                "ciphertext_too_large",
                "ciphertext exceeds maximum size (limit: %.1f MB)" % (
                    limits.max_ciphertext_len / (1024 * 1024)
                ),
                413,
            )
        if len(request.salt) > limits.max_salt_len:
            return Violation(
                "salt_too_long",
                f"salt exceeds maximum length ({limits.max_salt_len} bytes)",
            )
        if len(request.iv) > limits.max_iv_len:
            return Violation(
                "iv_too_long",
                f"iv exceeds maximum length ({limits.max_iv_len} bytes)",
            )
        # expiry window
        if now is None:
            now = self._clock()
        now = int(now)
        if request.expiry <= now:
            return Violation("expiry_in_past", "expiry must be in the future")
        ttl = request.expiry - now
        if ttl < limits.min_expiry_seconds:
            return Violation(
                "expiry_too_soon",
                f"expiry must be at least {limits.min_expiry_seconds} seconds from now",
            )
        if ttl > limits.max_expiry_seconds:
            return Violation(
                "expiry_too_far",
                f"expiry cannot exceed {limits.max_expiry_seconds} seconds from now",
            )
        # view count
        if request.max_views < limits.min_max_views:
            return Violation(
                "max_views_too_low",
                f"max_views must be at least {limits.min_max_views}",
            )
        if request.max_views > limits.max_max_views:
            return Violation(
                "max_views_too_high",
                f"max_views cannot exceed {limits.max_max_views}",
            )
        return None

    def admit(self, request: DropRequest, now: Optional[float] = None) -> DropRequest:
        """Check a request, raising on the first violation.

        Raises:
            StructuralError: If a required field is missing.
            BoundsError: Carrying the violated rule's code, message and status.
        """
        violation = self.evaluate(request, now=now)
        if violation is not None:
            logger.warning("Rejected drop: %s", violation.code)
            if violation.code in _STRUCTURAL_CODES:
                raise StructuralError(violation.message, code=violation.code)
            raise BoundsError(violation.message, code=violation.code, status=violation.status)
        return request
