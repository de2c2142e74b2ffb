"""
Request authentication.

User routes carry a Supabase access token with the profile id in the `sub`
claim. Projects on asymmetric signing keys issue ES256 tokens verified
against the project's JWKS (SUPABASE_URL); legacy projects issue HS256
tokens signed with SUPABASE_JWT_SECRET. Cron routes carry an X-API-Key from
the API_KEYS allow-list.
"""
import hmac
import logging
from typing import Iterable, Optional

import jwt

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
JWKS_PATH = "/auth/v1/.well-known/jwks.json"
JWKS_TIMEOUT = 5


class AuthError(Exception):
    """Authentication failed; the message is safe to return to the client."""

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def jwks_url_for(supabase_url: str) -> str:
    return supabase_url.rstrip("/") + JWKS_PATH


class JwtVerifier:
    """
    Verifies Supabase access tokens.

    ES256 tokens need a JWKS source, HS256 tokens need the shared secret.
    A token whose algorithm has no configured key is rejected.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        jwks_url: Optional[str] = None,
        jwks_client=None,
    ):
        self.secret = secret
        if jwks_client is None and jwks_url:
            jwks_client = jwt.PyJWKClient(jwks_url, timeout=JWKS_TIMEOUT)
        self.jwks_client = jwks_client

    @property
    def algorithms(self) -> list:
        algorithms = []
        if self.jwks_client is not None:
            algorithms.append("ES256")
        if self.secret:
            algorithms.append("HS256")
        return algorithms

    def verify(self, token: str) -> dict:
        """
        Verify a token and return its claims.

        Raises:
            AuthError: with the reason the token was rejected; status 503
                when the JWKS endpoint cannot be reached
        """
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError:
            raise AuthError("malformed token")

        alg = header.get("alg")
        if alg not in self.algorithms:
            raise AuthError(f"unsupported algorithm: {alg}")

        try:
            key = self._signing_key(token, alg)
            return jwt.decode(token, key, algorithms=[alg], options={"verify_aud": False})
        except jwt.PyJWKClientConnectionError as e:
            logger.error(f"[auth] JWKS fetch failed: {e}")
            raise AuthError(f"Authentication service unavailable: {e}", status_code=503)
        except jwt.PyJWKClientError as e:
            logger.warning(f"[auth] JWKS key lookup failed: {e}")
            raise AuthError(str(e))
        except jwt.ExpiredSignatureError:
            raise AuthError("token expired")
        except jwt.ImmatureSignatureError:
            raise AuthError("token not yet valid")
        except jwt.InvalidSignatureError:
            raise AuthError("signature verification failed")
        except jwt.DecodeError:
            raise AuthError("malformed token")
        except jwt.InvalidTokenError as e:
            raise AuthError(str(e) or "invalid token")

    def _signing_key(self, token: str, alg: str):
        if alg == "ES256":
            return self.jwks_client.get_signing_key_from_jwt(token).key
        return self.secret


def authenticate_bearer(authorization: Optional[str], verifier: JwtVerifier) -> str:
    """
    Profile id from an `Authorization: Bearer <jwt>` header.

    Raises:
        AuthError: "Missing Authorization header" or "Invalid token: <reason>"
            (status 503 when the key source is unavailable)
    """
    if not authorization:
        raise AuthError("Missing Authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Invalid token: expected Bearer token")

    try:
        claims = verifier.verify(token.strip())
    except AuthError as e:
        if e.status_code != 401:
            raise
        raise AuthError(f"Invalid token: {e.message}")

    profile_id = claims.get("sub")
    if not profile_id:
        raise AuthError("Invalid token: missing sub claim")
    return str(profile_id)


def authenticate_api_key(provided: Optional[str], valid_keys: Iterable[str]) -> None:
    """
    Raises:
        AuthError: when the key is missing or not in the allow-list
    """
    if not provided:
        raise AuthError(f"Missing {API_KEY_HEADER} header")
    provided_bytes = provided.encode("utf-8")
    if not any(hmac.compare_digest(provided_bytes, key.encode("utf-8")) for key in valid_keys):
        raise AuthError("Invalid API key")
