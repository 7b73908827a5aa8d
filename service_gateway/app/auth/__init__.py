"""
Authentication helpers for the gateway service.
"""

from .identity import (
    AUTH_TYPE_JWT,
    AUTH_TYPE_XRH,
    JWT_AUTH_TOKEN_HEADER,
    XRH_AUTH_TOKEN_HEADER,
    Identity,
    IdentityResolver,
)

__all__ = [
    "AUTH_TYPE_JWT",
    "AUTH_TYPE_XRH",
    "Identity",
    "IdentityResolver",
    "JWT_AUTH_TOKEN_HEADER",
    "XRH_AUTH_TOKEN_HEADER",
]
