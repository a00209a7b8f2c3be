"""
APNS push delivery.

This package contains:
- APNSTokenProvider - Cached ES256 provider tokens, one per account
- APNSSender - HTTP/2 delivery with bounded retry and re-authentication
- Models for account configuration, notification payloads and results
"""

from apnsender.push.apns_sender import (
    APNSSender,
    RETRY_APNS,
    build_payload,
)
from apnsender.push.models import (
    APNSAlert,
    APNSConfig,
    APNSEnvironment,
    APNSError,
    APNSResponse,
    APSPayload,
    AppleNotification,
    CachedToken,
    DeliveryStatus,
    SigningMaterial,
)
from apnsender.push.token_provider import (
    APNSTokenProvider,
    clean_p8_key,
    load_signing_key,
)

__all__ = [
    # Sender
    "APNSSender",
    "RETRY_APNS",
    "build_payload",
    # Token provider
    "APNSTokenProvider",
    "clean_p8_key",
    "load_signing_key",
    # Models
    "APNSAlert",
    "APNSConfig",
    "APNSEnvironment",
    "APNSError",
    "APNSResponse",
    "APSPayload",
    "AppleNotification",
    "CachedToken",
    "DeliveryStatus",
    "SigningMaterial",
]
