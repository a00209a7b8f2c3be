"""
Provider token (JWT) issuing and caching for APNS.

Tokens are signed with ES256 using the account's .p8 auth key and cached per
account (bundle identifier). Apple rejects tokens older than one hour and
throttles accounts that refresh too often, so a token is reused until it
ages past the expiry window and is only re-minted early when the gateway
rejects it.
"""

import base64
import logging
import threading
import time
from typing import Callable, Dict, Optional

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from apnsender.push.constants import (
    JWT_ALGORITHM,
    JWT_TOKEN_LIFETIME_SECONDS,
    P8_KEY_FOOTER,
    P8_KEY_HEADER,
)
from apnsender.push.models import CachedToken, SigningMaterial

logger = logging.getLogger(__name__)


def clean_p8_key(p8_key: Optional[str]) -> Optional[str]:
    """
    Strip PEM armor from a .p8 key.

    Drops the BEGIN/END PRIVATE KEY lines and joins the base64 body lines
    with no separator. Input without armor, and empty input, is returned
    unchanged.
    """
    if not p8_key:
        return p8_key

    lines = p8_key.strip().splitlines()
    armored = False

    if lines and lines[0].strip().startswith(P8_KEY_HEADER):
        lines.pop(0)
        armored = True

    if lines and lines[-1].strip().startswith(P8_KEY_FOOTER):
        lines.pop()
        armored = True

    if not armored:
        return p8_key

    return "".join(line.strip() for line in lines)


def load_signing_key(private_key: Optional[str]) -> ec.EllipticCurvePrivateKey:
    """
    Load a P-256 private key from .p8 contents (PEM-armored or bare base64).

    Raises:
        ValueError: If the key cannot be decoded or is not a P-256 EC key
    """
    cleaned = clean_p8_key(private_key) or ""

    try:
        key = serialization.load_der_private_key(
            base64.b64decode(cleaned),
            password=None,
        )
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise ValueError(f"APNS key is not a valid PKCS#8 private key: {e}") from e

    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise ValueError("APNS key must be an EC private key (ES256)")
    if not isinstance(key.curve, ec.SECP256R1):
        raise ValueError(f"APNS key must use the P-256 curve, got {key.curve.name}")

    return key


class APNSTokenProvider:
    """
    Issues and caches APNS provider tokens, one per account.

    The cache is a plain dict guarded by a lock that is only held while an
    entry is read or replaced. Signing happens outside the lock, so two
    callers racing on the same expired account may both mint a token; the
    last one stored wins and both tokens are valid.

    Usage:
        provider = APNSTokenProvider()
        token = provider.get_token(config.bundle_id, config.signing_material())

    Attributes:
        expiry_seconds: Age after which a cached token is re-minted
    """

    def __init__(
        self,
        expiry_seconds: float = JWT_TOKEN_LIFETIME_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the token provider.

        Args:
            expiry_seconds: Token reuse window in seconds (default 50 minutes)
            clock: Returns the current time in epoch seconds
        """
        self.expiry_seconds = expiry_seconds
        self._clock = clock
        self._tokens: Dict[str, CachedToken] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)

    def __contains__(self, account: str) -> bool:
        with self._lock:
            return account in self._tokens

    def get_token(self, account: str, signing_material: SigningMaterial) -> str:
        """
        Return a valid token for the account, minting one if needed.

        Args:
            account: Bundle identifier the token is cached under
            signing_material: Team ID, key ID and private key to sign with

        Returns:
            Compact JWT for the authorization header

        Raises:
            ValueError: If the private key cannot be loaded
        """
        now = self._clock()

        with self._lock:
            cached = self._tokens.get(account)
            if cached is not None:
                if now - cached.issued_at < self.expiry_seconds:
                    return cached.token
                del self._tokens[account]

        if cached is not None:
            logger.debug(
                "APNS token expired, re-minting",
                extra={"account": account, "age_seconds": int(now - cached.issued_at)},
            )

        token = self.mint_token(account, signing_material, issued_at=now)

        with self._lock:
            self._tokens[account] = CachedToken(token=token, issued_at=now)

        return token

    def mint_token(
        self,
        account: str,
        signing_material: SigningMaterial,
        issued_at: Optional[float] = None,
    ) -> str:
        """
        Sign a new token without touching the cache.

        Args:
            account: Bundle identifier (used for logging only)
            signing_material: Team ID, key ID and private key to sign with
            issued_at: Issue time in epoch seconds (defaults to now)

        Returns:
            Compact JWT with ES256 header {"alg", "kid"} and claims {"iss", "iat"}
        """
        if issued_at is None:
            issued_at = self._clock()

        private_key = load_signing_key(signing_material.private_key)

        payload = {
            "iss": signing_material.team_id,
            "iat": int(issued_at),
        }
        headers = {
            "alg": JWT_ALGORITHM,
            "kid": clean_p8_key(signing_material.key_id),
        }

        token = jwt.encode(
            payload,
            private_key,
            algorithm=JWT_ALGORITHM,
            headers=headers,
        )

        logger.debug(
            "Generated new APNS JWT",
            extra={
                "account": account,
                "team_id": signing_material.team_id,
                "key_id": headers["kid"],
            }
        )

        return token

    def invalidate_token(self, account: str) -> None:
        """Drop the cached token for the account, if there is one."""
        with self._lock:
            removed = self._tokens.pop(account, None)

        if removed is not None:
            logger.info("APNS token invalidated", extra={"account": account})
