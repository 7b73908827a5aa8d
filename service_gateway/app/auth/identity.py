"""
Identity resolution for the gateway.

Two mutually exclusive authentication schemes are supported, selected per
deployment through the ``auth_type`` setting:

- ``xrh``: an upstream gateway has already authenticated the caller and
  forwards the identity as base64-encoded JSON in ``x-rh-identity``.
- ``jwt``: the caller sends ``Authorization: Bearer <token>``. The token
  signature is verified upstream; only its claims are read here.

Either way the result is an immutable ``Identity`` value that handlers
receive through FastAPI dependency injection.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from jose import JWTError, jwt

from shared.errors import MalformedAuthTokenError, MissingAuthTokenError
from shared.logging import get_logger, set_identity_context

XRH_AUTH_TOKEN_HEADER = "x-rh-identity"
JWT_AUTH_TOKEN_HEADER = "Authorization"

AUTH_TYPE_XRH = "xrh"
AUTH_TYPE_JWT = "jwt"


@dataclass(frozen=True)
class Identity:
    """Authenticated org/user/account triple for one request."""

    org_id: int
    user_id: str
    account_number: str = ""


class IdentityResolver:
    """Resolve the caller identity from the deployment's auth header."""

    def __init__(self, auth_type: str = AUTH_TYPE_XRH):
        if auth_type not in (AUTH_TYPE_XRH, AUTH_TYPE_JWT):
            raise ValueError(f"Unsupported auth type: {auth_type}")
        self.auth_type = auth_type
        self.logger = get_logger("gateway.identity")

    @property
    def header_name(self) -> str:
        """Name of the header carrying identity for the active scheme."""
        if self.auth_type == AUTH_TYPE_JWT:
            return JWT_AUTH_TOKEN_HEADER
        return XRH_AUTH_TOKEN_HEADER

    async def __call__(self, request: Request) -> Identity:
        """FastAPI dependency returning the request's identity."""
        return self.get_auth_token(request)

    def get_auth_token(self, request: Request) -> Identity:
        """Return the identity for ``request``, resolving it at most once."""
        identity = getattr(request.state, "identity", None)
        if identity is None:
            identity = self.resolve(request)
            request.state.identity = identity
            set_identity_context(org_id=identity.org_id, user_id=identity.user_id)
            self.logger.debug(
                "Request identity resolved",
                auth_type=self.auth_type,
                org_id=identity.org_id,
                user_id=identity.user_id
            )
        return identity

    def get_current_user_id(self, request: Request) -> str:
        """User ID projection of the resolved identity."""
        return self.get_auth_token(request).user_id

    def get_current_org_id(self, request: Request) -> int:
        """Org ID projection of the resolved identity."""
        return self.get_auth_token(request).org_id

    def resolve(self, request: Request) -> Identity:
        """Decode the identity header without touching request state."""
        raw_value = request.headers.get(self.header_name)
        if raw_value is None or not raw_value.strip():
            self.logger.warning("Missing auth token", header=self.header_name)
            raise MissingAuthTokenError()

        if self.auth_type == AUTH_TYPE_JWT:
            return self._decode_bearer(raw_value)
        return self._decode_xrh(raw_value)

    def _decode_bearer(self, header_value: str) -> Identity:
        """Read identity claims from a bearer JWT."""
        parts = header_value.split()
        if len(parts) == 1 and parts[0].lower() == "bearer":
            raise MissingAuthTokenError()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            self.logger.warning("Authorization header is not a bearer token")
            raise MalformedAuthTokenError()

        try:
            claims = jwt.get_unverified_claims(parts[1])
        except JWTError as exc:
            self.logger.warning("Unable to decode JWT", error=str(exc))
            raise MalformedAuthTokenError(details={"error": str(exc)}) from exc

        return self._identity_from_payload(claims)

    def _decode_xrh(self, header_value: str) -> Identity:
        """Read identity from a base64-encoded x-rh-identity document."""
        try:
            decoded = base64.b64decode(header_value.strip(), validate=True)
            document = json.loads(decoded)
        except (binascii.Error, ValueError) as exc:
            self.logger.warning("Unable to decode identity header", error=str(exc))
            raise MalformedAuthTokenError(details={"error": str(exc)}) from exc

        return self._identity_from_payload(document)

    def _identity_from_payload(self, payload: Any) -> Identity:
        """Build an Identity from either the nested or the flat claim layout."""
        if not isinstance(payload, dict):
            raise MalformedAuthTokenError(details={"error": "identity payload is not an object"})

        body: Dict[str, Any] = payload.get("identity", payload)
        if not isinstance(body, dict):
            raise MalformedAuthTokenError(details={"error": "identity payload is not an object"})

        raw_org_id = body.get("org_id")
        if raw_org_id is None and isinstance(body.get("internal"), dict):
            raw_org_id = body["internal"].get("org_id")
        org_id = _parse_org_id(raw_org_id)
        if org_id is None:
            raise MalformedAuthTokenError(details={"error": "org_id is missing or invalid"})

        user = body.get("user")
        user_id = user.get("user_id") if isinstance(user, dict) else body.get("user_id")
        if user_id is None or str(user_id).strip() == "":
            raise MalformedAuthTokenError(details={"error": "user_id is missing"})

        account_number = body.get("account_number") or ""
        return Identity(org_id=org_id, user_id=str(user_id), account_number=str(account_number))


def _parse_org_id(value: Any) -> Optional[int]:
    """Org IDs arrive as ints in tokens and as strings in identity headers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        org_id = value
    elif isinstance(value, str) and value.isascii() and value.isdigit():
        org_id = int(value)
    else:
        return None
    return org_id if org_id > 0 else None
