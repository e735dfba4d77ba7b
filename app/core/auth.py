import time
from typing import Optional, Dict, Any

import requests
from fastapi import Header
from jose import jwt, JWTError
from jose.utils import base64url_decode
from loguru import logger

from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.backends import default_backend

from app.core.config import (
    AUTH_VERIFY_MODE,
    AUTH_JWT_SECRET,
    AUTH_JWKS_URL,
    JWKS_TTL_SECONDS,
)
from app.core.errors import AuthorizationFailure, NearbyError


# JWKS cache (simple in-memory cache)
_JWKS_CACHE: Dict[str, Any] = {"ts": 0, "jwks": None}


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------
def _get_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthorizationFailure("Missing Authorization header")

    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthorizationFailure("Invalid Authorization header format")

    token = parts[1].strip()
    if not token:
        raise AuthorizationFailure("Missing bearer token")

    return token


# ------------------------------------------------------------
# JWKS Fetch + Cache
# ------------------------------------------------------------
def _fetch_jwks() -> Dict[str, Any]:
    if not AUTH_JWKS_URL:
        raise NearbyError("AUTH_JWKS_URL not set (required for JWKS mode)")

    try:
        resp = requests.get(AUTH_JWKS_URL, timeout=10)
        data = resp.json()
    except (requests.RequestException, ValueError) as exc:
        raise NearbyError(f"Could not load JWKS: {exc}") from exc

    if resp.status_code != 200 or "keys" not in data:
        raise NearbyError(f"Invalid JWKS response: HTTP {resp.status_code}")

    return data


def _get_cached_jwks(force_refresh: bool = False) -> Dict[str, Any]:
    now = time.time()

    if (
        not force_refresh
        and _JWKS_CACHE["jwks"]
        and now - _JWKS_CACHE["ts"] < JWKS_TTL_SECONDS
    ):
        return _JWKS_CACHE["jwks"]

    jwks = _fetch_jwks()
    _JWKS_CACHE["jwks"] = jwks
    _JWKS_CACHE["ts"] = now

    return jwks


def _find_key(jwks: Dict[str, Any], kid: str) -> Optional[Dict[str, Any]]:
    return next((k for k in jwks["keys"] if k.get("kid") == kid), None)


# ------------------------------------------------------------
# JWK → Public Key
# ------------------------------------------------------------
def _b64_int(value: str) -> int:
    return int.from_bytes(base64url_decode(value.encode()), "big")


def _public_key_from_jwk(jwk: Dict[str, Any]):
    kty = jwk.get("kty")

    if kty == "EC":
        numbers = ec.EllipticCurvePublicNumbers(
            _b64_int(jwk["x"]),
            _b64_int(jwk["y"]),
            ec.SECP256R1(),
        )
    elif kty == "RSA":
        numbers = rsa.RSAPublicNumbers(_b64_int(jwk["e"]), _b64_int(jwk["n"]))
    else:
        raise AuthorizationFailure(f"Unsupported key type: {kty}")

    return numbers.public_key(default_backend())


# ------------------------------------------------------------
# Verification Modes
# ------------------------------------------------------------
def _verify_jwt_hs256(token: str) -> Dict[str, Any]:
    if not AUTH_JWT_SECRET:
        raise NearbyError("AUTH_JWT_SECRET not set")

    try:
        return jwt.decode(
            token,
            AUTH_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )
    except JWTError:
        raise AuthorizationFailure("Invalid or expired token")


def _verify_jwt_jwks(token: str) -> Dict[str, Any]:
    try:
        header = jwt.get_unverified_header(token)
    except JWTError:
        raise AuthorizationFailure("Invalid token header")

    alg = header.get("alg")
    kid = header.get("kid")
    logger.debug(f"[auth] header.alg={alg} header.kid={kid}")

    if not kid:
        raise AuthorizationFailure("Token missing kid")

    if alg not in ("ES256", "RS256"):
        raise AuthorizationFailure(f"Unsupported JWT alg: {alg}")

    key_data = _find_key(_get_cached_jwks(), kid)
    if not key_data:
        # key rotation: refresh once
        key_data = _find_key(_get_cached_jwks(force_refresh=True), kid)

    if not key_data:
        raise AuthorizationFailure("Public key not found for kid")

    try:
        return jwt.decode(
            token,
            _public_key_from_jwk(key_data),
            algorithms=[alg],
            options={"verify_aud": False},
        )
    except JWTError:
        raise AuthorizationFailure("Invalid or expired token")


# ------------------------------------------------------------
# Gate
# ------------------------------------------------------------
def resolve_user_id(authorization: Optional[str]) -> str:
    """
    Validate a bearer credential and return the user id it belongs to.

    Stateless apart from the JWKS key cache. Raises AuthorizationFailure for
    anything the caller sent wrong.
    """
    token = _get_bearer_token(authorization)

    if AUTH_VERIFY_MODE == "hs256":
        payload = _verify_jwt_hs256(token)
    elif AUTH_VERIFY_MODE == "jwks":
        payload = _verify_jwt_jwks(token)
    else:
        raise NearbyError(f"Invalid AUTH_VERIFY_MODE: {AUTH_VERIFY_MODE}")

    sub = payload.get("sub")
    if sub is None or str(sub).strip() == "":
        raise AuthorizationFailure("Token missing sub claim")

    return str(sub)


def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
) -> str:
    user_id = resolve_user_id(authorization)
    logger.debug(f"[auth] user_id={user_id}")
    return user_id
