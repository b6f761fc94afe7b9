"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond wire mapping).
Stores and routes do the work.

Layer rule: no imports from api/, web/, core/, dashboard/, or cache/.
"""

from __future__ import annotations

from dataclasses import dataclass

# Fixed literal marking validity intent. Not a security control -- the HMAC is.
STATUS_VALID = "valid"


@dataclass(frozen=True)
class SessionPayload:
    """Contents of a session token. Never persisted server-side.

    expires_at is an absolute timestamp in milliseconds since the epoch.
    """

    subject_id: str
    expires_at: int
    status: str = STATUS_VALID

    def to_dict(self) -> dict:
        return {"status": self.status, "subjectId": self.subject_id, "expiresAt": self.expires_at}


@dataclass
class Credential:
    """A registered hardware credential (the first 12 chars of its OTPs).

    yubikey_id is always stored lower-cased. is_paying is profile data for
    the dashboard; the auth core only cares whether the record exists.
    """

    yubikey_id: str
    is_paying: bool = False
    created_at: str | None = None
