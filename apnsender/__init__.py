"""Apple Push Notification service sender."""

from apnsender.push import (
    APNSAlert,
    APNSConfig,
    APNSEnvironment,
    APNSError,
    APNSResponse,
    APNSSender,
    APNSTokenProvider,
    APSPayload,
    AppleNotification,
    DeliveryStatus,
)

__version__ = "1.0.0"

__all__ = [
    "APNSAlert",
    "APNSConfig",
    "APNSEnvironment",
    "APNSError",
    "APNSResponse",
    "APNSSender",
    "APNSTokenProvider",
    "APSPayload",
    "AppleNotification",
    "DeliveryStatus",
]
