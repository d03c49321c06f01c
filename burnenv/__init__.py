"""BurnEnv — Self-destructing encrypted secret drops.

Security Note (Threat Model):
    Secrets are sealed client-side with Argon2id + AES-256-GCM; the drop
    server stores only the sealed envelope and never sees plaintext or
    the password. Stored envelopes live in process memory only and are
    lost on restart. Password strength is the sender's responsibility:
    a captured envelope can be attacked offline.
"""
from .version import __version__
from .exceptions import (
    BurnEnvError,
    StructuralError,
    BoundsError,
    AuthFailure,
    RemoteError,
)
from .crypto import (
    Envelope,
    KDFParams,
    seal,
    open_envelope,
    serialize_envelope,
    deserialize_envelope,
)
from .store import EphemeralStore, Reason
from .policy import AdmissionPolicy, DropRequest, Violation, parse_request
from .config import BurnConfig, PolicyLimits
from .service import DropService, new_drop_id

__all__ = [
    "__version__",
    "BurnEnvError",
    "StructuralError",
    "BoundsError",
    "AuthFailure",
    "RemoteError",
    "Envelope",
    "KDFParams",
    "seal",
    "open_envelope",
    "serialize_envelope",
    "deserialize_envelope",
    "EphemeralStore",
    "Reason",
    "AdmissionPolicy",
    "DropRequest",
    "Violation",
    "parse_request",
    "BurnConfig",
    "PolicyLimits",
    "DropService",
    "new_drop_id",
]
