import base64
import hashlib
import hmac
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from ttreviews.config.settings import Settings
from ttreviews.moderation.domain.exceptions import ConfigurationError


class AdminAuthError(Exception):
    """Token rejected, or identity lacks the required role."""
    pass


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("ascii"))


def _b64url_encode(value: bytes) -> str:
    return base64.urlsafe_b64encode(value).decode("ascii").rstrip("=")


ROLE_RANK = {"viewer": 1, "operator": 2, "admin": 3}


@dataclass(frozen=True)
class AdminIdentity:
    sub: str
    email: Optional[str]
    roles: List[str]
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def rank(self) -> int:
        return max((ROLE_RANK.get(role, 0) for role in self.roles), default=0)

    @property
    def is_admin(self) -> bool:
        return self.rank >= ROLE_RANK["admin"]


class AdminSessionVerifier:
    """
    HS256 session-token verifier for the admin surface.

    A verified identity whose email is listed in `admin_emails` is promoted
    to the admin role regardless of the roles carried in the token.
    """

    def __init__(
        self,
        secret: str,
        issuer: str = "",
        leeway_seconds: int = 30,
        admin_emails: Iterable[str] = (),
    ):
        self.secret = (secret or "").encode("utf-8")
        self.issuer = issuer
        self.leeway_seconds = leeway_seconds
        self.admin_emails: FrozenSet[str] = frozenset(email.strip().lower() for email in admin_emails if email.strip())

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdminSessionVerifier":
        return cls(
            secret=settings.ADMIN_JWT_SECRET,
            issuer=settings.ADMIN_JWT_ISSUER,
            admin_emails=settings.admin_emails,
        )

    def verify(self, token: str) -> AdminIdentity:
        if not self.secret:
            raise ConfigurationError("ADMIN_JWT_SECRET not configured")

        parts = (token or "").split(".")
        if len(parts) != 3:
            raise AdminAuthError("Malformed token")
        header_b64, payload_b64, signature_b64 = parts

        try:
            header = json.loads(_b64url_decode(header_b64))
            provided_sig = _b64url_decode(signature_b64)
        except ValueError as exc:
            raise AdminAuthError("Malformed token") from exc
        if not isinstance(header, dict) or header.get("alg") != "HS256":
            raise AdminAuthError("Unsupported algorithm")

        signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
        expected_sig = hmac.new(self.secret, signing_input, hashlib.sha256).digest()
        if not hmac.compare_digest(expected_sig, provided_sig):
            raise AdminAuthError("Invalid signature")

        try:
            payload = json.loads(_b64url_decode(payload_b64))
        except ValueError as exc:
            raise AdminAuthError("Malformed token") from exc

        now = int(datetime.now(timezone.utc).timestamp())
        exp = payload.get("exp")
        if exp is not None and now > int(exp) + self.leeway_seconds:
            raise AdminAuthError("Session expired")
        nbf = payload.get("nbf")
        if nbf is not None and now + self.leeway_seconds < int(nbf):
            raise AdminAuthError("Session not active yet")
        if self.issuer and payload.get("iss") != self.issuer:
            raise AdminAuthError("Invalid issuer")

        roles = payload.get("roles") or []
        if isinstance(roles, str):
            roles = [roles]
        roles = [str(role) for role in roles]
        email = payload.get("email")
        if email and str(email).lower() in self.admin_emails and "admin" not in roles:
            roles.append("admin")

        return AdminIdentity(
            sub=str(payload.get("sub", "unknown")),
            email=str(email) if email else None,
            roles=roles,
            raw=payload,
        )

    def issue_for_tests(self, claims: Dict[str, Any]) -> str:
        """
        Test helper used by unit tests.
        """
        header = {"alg": "HS256", "typ": "JWT"}
        header_b64 = _b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
        payload_b64 = _b64url_encode(json.dumps(claims, separators=(",", ":")).encode("utf-8"))
        signature = hmac.new(
            self.secret,
            f"{header_b64}.{payload_b64}".encode("ascii"),
            hashlib.sha256,
        ).digest()
        return f"{header_b64}.{payload_b64}.{_b64url_encode(signature)}"


def require_role(identity: AdminIdentity, required_role: str) -> None:
    if required_role not in ROLE_RANK:
        raise AdminAuthError(f"Unknown role: {required_role}")
    if identity.rank < ROLE_RANK[required_role]:
        raise AdminAuthError(f"Insufficient role: requires {required_role}")
