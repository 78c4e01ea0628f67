"""Access gate: every file-touching endpoint requires a signed token.

Tokens are HS256 JWTs signed with ``JWT_SECRET``. They carry no per-file state
and no expiry is enforced; verification is a pure function of token and secret.

Print a token for the configured secret with::

    python -m svgconv_backend.auth
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import jwt
from fastapi import Request

from .config import API_KEY_HEADER, load_settings
from .errors import AuthenticationError


logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def issue_token(secret: str, role: str = "admin") -> str:
    if not secret:
        raise ValueError("JWT_SECRET is not configured")
    return jwt.encode({"role": role}, secret, algorithm=ALGORITHM)


class AccessGate:
    def __init__(self, secret: str, header_name: str = API_KEY_HEADER) -> None:
        self._secret = secret
        self.header_name = header_name
        if not secret:
            logger.error("JWT_SECRET is empty; every request will be rejected")

    def verify(self, token: Optional[str]) -> dict[str, Any]:
        """Return the token claims or raise AuthenticationError.

        Missing and invalid tokens get the same error; only the log line
        tells them apart.
        """
        if not token:
            logger.info("Rejected request: token missing")
            raise AuthenticationError("Unauthorized")
        if not self._secret:
            logger.info("Rejected request: no secret configured")
            raise AuthenticationError("Unauthorized")
        try:
            return jwt.decode(token, self._secret, algorithms=[ALGORITHM])
        except jwt.InvalidTokenError as exc:
            logger.info("Rejected request: invalid token (%s)", exc.__class__.__name__)
            raise AuthenticationError("Unauthorized") from exc


def get_access_gate(request: Request) -> AccessGate:
    try:
        return request.app.state.access_gate  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover
        raise RuntimeError("AccessGate is not configured") from exc


def authenticate_request(request: Request) -> dict[str, Any]:
    """Verify the credential header of ``request``; raises AuthenticationError."""
    gate = get_access_gate(request)
    return gate.verify(request.headers.get(gate.header_name))


if __name__ == "__main__":
    print(issue_token(load_settings().jwt_secret))
