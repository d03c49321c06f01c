"""
Envelope Codec — Password-based sealing of secrets into portable envelopes.

- Key derivation: Argon2id(password, salt) → 32-byte key
- Encryption: AES-256-GCM(key, nonce) → ciphertext + 16B tag
- Wire format: flat JSON {ciphertext, salt, iv, kdf, expiry, max_views},
  binary fields as standard base64.

The KDF parameters travel inside the envelope, so an envelope sealed with
today's defaults still opens after the defaults change.

Security Note:
    Never log plaintext, passwords, derived keys or ciphertext values.
    Salt and nonce are fresh random values for every seal; a repeated
    (key, nonce) pair breaks AES-GCM.
"""
import os
import base64
import binascii
import logging
from typing import Any, Optional, Union

import orjson
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from .exceptions import AuthFailure, StructuralError

logger = logging.getLogger("burnenv.crypto")

KDF_ALGORITHM = "argon2id"
KDF_TIME_COST = 3
KDF_MEMORY_COST = 64 * 1024  # KiB (64 MiB)
KDF_PARALLELISM = 4
KEY_LENGTH = 32  # AES-256
SALT_SIZE = 16
NONCE_SIZE = 12  # 96-bit GCM nonce

_BINARY_FIELDS = ("ciphertext", "salt", "nonce")


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class KDFParams(BaseModel):
    """Argon2id parameters recorded alongside the ciphertext.

    Upper bounds keep a hostile envelope from asking the opener for
    unbounded memory or time.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    algorithm: str = Field(default=KDF_ALGORITHM)
    time_cost: int = Field(default=KDF_TIME_COST, ge=1, le=16, alias="time")
    memory_cost: int = Field(default=KDF_MEMORY_COST, ge=8, le=1024 * 1024, alias="memory")
    parallelism: int = Field(default=KDF_PARALLELISM, ge=1, le=255, alias="threads")

    @model_validator(mode="after")
    def validate_memory(self) -> "KDFParams":
        """Argon2 needs at least 8 KiB of memory per lane."""
        if self.memory_cost < 8 * self.parallelism:
            raise ValueError(
                f"memory cost {self.memory_cost} KiB is below the Argon2 "
                f"minimum for {self.parallelism} lane(s)"
            )
        return self


class Envelope(BaseModel):
    """Sealed secret plus the lifecycle policy the sender attached to it.

    Immutable: ``expiry`` and ``max_views`` are attached after sealing with
    :meth:`with_policy`, which returns a new envelope.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    ciphertext: bytes
    salt: bytes
    nonce: bytes = Field(alias="iv")
    kdf: KDFParams
    expiry: int = Field(default=0, strict=True)
    max_views: int = Field(default=0, strict=True)

    @field_validator(*_BINARY_FIELDS, mode="before")
    @classmethod
    def decode_binary(cls, v: Any) -> Any:
        """Accept base64 text (wire form) or raw bytes."""
        if isinstance(v, str):
            try:
                return base64.b64decode(v, validate=True)
            except (binascii.Error, ValueError) as err:
                raise ValueError(f"invalid base64: {err}") from err
        return v

    @field_validator(*_BINARY_FIELDS)
    @classmethod
    def require_non_empty(cls, v: bytes) -> bytes:
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_serializer(*_BINARY_FIELDS)
    def encode_binary(self, v: bytes) -> str:
        return base64.b64encode(v).decode("ascii")

    def with_policy(self, expiry: int, max_views: int) -> "Envelope":
        """Return a copy carrying the given expiry instant and view limit.

        Args:
            expiry: Absolute expiry, seconds since epoch.
            max_views: Number of successful retrievals allowed.

        Returns:
            New Envelope; the original is left untouched.
        """
        return self.model_copy(
            update={"expiry": int(expiry), "max_views": int(max_views)}
        )


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(password: str, salt: bytes, params: KDFParams) -> bytes:
    """Derive a 32-byte AES key from a password using Argon2id.

    Args:
        password: User password.
        salt: 16-byte random salt.
        params: Argon2id cost parameters.

    Returns:
        32-byte derived key.

    Raises:
        StructuralError: If the parameters name an unsupported algorithm.
    """
    if params.algorithm != KDF_ALGORITHM:
        raise StructuralError(
            f"unsupported kdf algorithm: {params.algorithm!r}",
            code="unsupported_kdf",
        )
    return hash_secret_raw(
        secret=password.encode("utf-8"),
        salt=salt,
        time_cost=params.time_cost,
        memory_cost=params.memory_cost,
        parallelism=params.parallelism,
        hash_len=KEY_LENGTH,
        type=Type.ID,
    )


# ---------------------------------------------------------------------------
# Seal / open
# ---------------------------------------------------------------------------

def seal(plaintext: bytes, password: str, kdf: Optional[KDFParams] = None) -> Envelope:
    """Encrypt plaintext under a password.

    A fresh salt and nonce are drawn from ``os.urandom`` on every call.
    The returned envelope has ``expiry`` and ``max_views`` set to 0; the
    caller decides lifecycle policy with :meth:`Envelope.with_policy`.

    Args:
        plaintext: Secret bytes, must not be empty.
        password: Password, must not be empty.
        kdf: Argon2id parameters; process defaults when omitted.

    Returns:
        Sealed Envelope.

    Raises:
        ValueError: If plaintext or password is empty.
    """
    if not plaintext:
        raise ValueError("plaintext cannot be empty")
    if not password:
        raise ValueError("password cannot be empty")
    params = kdf or KDFParams()
    salt = os.urandom(SALT_SIZE)
    nonce = os.urandom(NONCE_SIZE)
    key = derive_key(password, salt, params)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)
    logger.debug(
        "Sealed %d byte(s) with %s t=%d m=%d p=%d",
        len(plaintext), params.algorithm,
        params.time_cost, params.memory_cost, params.parallelism,
    )
    return Envelope(ciphertext=ciphertext, salt=salt, nonce=nonce, kdf=params)


def open_envelope(envelope: Envelope, password: str) -> bytes:
    """Decrypt an envelope with a password.

    The key is re-derived with the KDF parameters stored in the envelope,
    not the process defaults.

    Args:
        envelope: Envelope produced by :func:`seal`.
        password: Password used when sealing.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        ValueError: If password is empty.
        StructuralError: If salt or nonce have the wrong length.
        AuthFailure: On wrong password or any tampering.
    """
    if not password:
        raise ValueError("password cannot be empty")
    if len(envelope.salt) != SALT_SIZE:
        raise StructuralError("invalid salt length", code="invalid_salt")
    if len(envelope.nonce) != NONCE_SIZE:
        raise StructuralError("invalid iv length", code="invalid_iv")
    key = derive_key(password, envelope.salt, envelope.kdf)
    try:
        return AESGCM(key).decrypt(envelope.nonce, envelope.ciphertext, None)
    except InvalidTag:
        raise AuthFailure() from None


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def serialize_envelope(envelope: Envelope) -> bytes:
    """Encode an envelope to its JSON wire form.

    Returns:
        orjson-encoded bytes with every wire field present.
    """
    return orjson.dumps(envelope.model_dump(by_alias=True))


def deserialize_envelope(data: Union[bytes, str]) -> Envelope:
    """Decode an envelope from its JSON wire form.

    Args:
        data: JSON bytes or text.

    Returns:
        Parsed Envelope.

    Raises:
        StructuralError: On invalid JSON, missing fields or bad encodings.
    """
    try:
        raw = orjson.loads(data)
    except orjson.JSONDecodeError as err:
        raise StructuralError("invalid JSON", code="invalid_json") from err
    if not isinstance(raw, dict):
        raise StructuralError("envelope must be a JSON object")
    for name in ("ciphertext", "salt", "iv"):
        if not raw.get(name):
            raise StructuralError(
                f"missing required field: {name}", code=f"missing_{name}",
            )
    # zero defaults only describe a freshly sealed envelope, never the wire
    for name in ("kdf", "expiry", "max_views"):
        if name not in raw:
            raise StructuralError(
                f"missing required field: {name}", code=f"missing_{name}",
            )
    try:
        return Envelope.model_validate(raw)
    except ValidationError as err:
        fields = sorted({
            ".".join(str(part) for part in error["loc"]) for error in err.errors()
        })
        raise StructuralError(
            f"invalid envelope field(s): {', '.join(fields)}"
        ) from None
