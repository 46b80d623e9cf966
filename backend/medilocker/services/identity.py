"""Identity boundary: turns an identity-provider bearer token into a principal.

The engine never sees raw credentials past this point; every service call
takes the verified ``subject_id`` and ``role`` instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from medilocker.config import settings
from medilocker.errors import AuthError
from medilocker.models import UserRole
from medilocker.utils.time import utcnow

logger = logging.getLogger("medilocker.identity")


@dataclass(frozen=True)
class Principal:
    subject_id: str
    role: UserRole
    claims: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_doctor(self) -> bool:
        return self.role == UserRole.doctor

    @property
    def is_patient(self) -> bool:
        return self.role == UserRole.patient

    @property
    def display_name(self) -> str | None:
        return self.claims.get("name")

    @property
    def email(self) -> str | None:
        return self.claims.get("email")


class IdentityVerifier:
    """Verify HS/RS-signed JWTs issued by the external identity provider."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        issuer: str | None = None,
        audience: str | None = None,
    ) -> None:
        self.secret = secret
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience

    def verify(self, token: str | None) -> Principal:
        if not token:
            raise AuthError("Missing bearer token")
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except ExpiredSignatureError:
            raise AuthError("Token has expired") from None
        except JWTError as exc:
            logger.info("Rejected bearer token: %s", exc)
            raise AuthError() from None

        subject_id = claims.get("sub")
        if not subject_id:
            raise AuthError("Token has no subject")
        try:
            role = UserRole(claims.get("role", ""))
        except ValueError:
            raise AuthError("Token carries no recognised role") from None
        return Principal(subject_id=str(subject_id), role=role, claims=claims)

    def issue(
        self,
        subject_id: str,
        role: UserRole | str,
        expires_in: timedelta = timedelta(minutes=15),
        **extra_claims: Any,
    ) -> str:
        """Mint a token the verifier accepts (local development and tests)."""
        now: datetime = utcnow()
        claims: dict[str, Any] = {
            "sub": subject_id,
            "role": str(role),
            "iat": now,
            "exp": now + expires_in,
            **extra_claims,
        }
        if self.issuer:
            claims["iss"] = self.issuer
        if self.audience:
            claims["aud"] = self.audience
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)


_verifier: IdentityVerifier | None = None


def get_identity_verifier() -> IdentityVerifier:
    """Get the process-wide verifier built from settings."""
    global _verifier
    if _verifier is None:
        _verifier = IdentityVerifier(
            secret=settings.identity_jwt_secret or "",
            algorithm=settings.identity_jwt_algorithm,
            issuer=settings.identity_issuer,
            audience=settings.identity_audience,
        )
    return _verifier
