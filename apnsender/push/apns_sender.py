"""
APNS (Apple Push Notification Service) sender.

Features:
- HTTP/2 requests through a shared httpx AsyncClient
- Token-based authentication (JWT with .p8 key) via APNSTokenProvider
- Bounded retry of unsuccessful responses, re-authenticating after a 403
- Custom data flattened next to "aps" in the wire payload
- Optional outer backoff and concurrent batch sending
"""

import asyncio
import json
import logging
import time
from typing import Any, List, Optional

import httpx

from apnsender.core.retry import RetryConfig, retry_async
from apnsender.push.constants import (
    APNS_DEVICE_PATH,
    APNS_EXPIRATION_HEADER,
    APNS_FORBIDDEN_STATUS_CODE,
    APNS_ID_HEADER,
    APNS_PRIORITY_HEADER,
    APNS_PUSH_TYPE_HEADER,
    APNS_TOPIC_HEADER,
    DEFAULT_BATCH_CONCURRENCY,
    DEFAULT_EXPIRATION,
    DEFAULT_PRIORITY,
    PUSH_TYPE_ALERT,
    PUSH_TYPE_BACKGROUND,
)
from apnsender.push.models import (
    APNSConfig,
    APNSError,
    APNSResponse,
    AppleNotification,
    DeliveryStatus,
    SigningMaterial,
)
from apnsender.push.token_provider import APNSTokenProvider

logger = logging.getLogger(__name__)

# Whole-send retry policy for send_with_backoff
RETRY_APNS = RetryConfig(
    max_attempts=4,
    base_delay=1.0,
    max_delay=30.0,
    retryable_exceptions=(httpx.TransportError,),
)

BACKOFF_STATUSES = {DeliveryStatus.RATE_LIMITED, DeliveryStatus.SERVER_ERROR}


def build_payload(notification: AppleNotification) -> str:
    """
    Serialize a notification to the APNS wire format.

    Custom data is lifted out of its "data" wrapper so each entry becomes a
    peer of "aps":

        {
          "aps": {"alert": {"title": "Example", "body": "Message"}, "sound": "default"},
          "key1": "value1",
          "key2": "value2"
        }

    Args:
        notification: Notification to serialize

    Returns:
        Compact JSON string
    """
    payload = notification.to_apns_dict()

    data = payload.pop("data", None)
    if data:
        if "aps" in data:
            raise ValueError("Custom data cannot use the reserved 'aps' key")
        payload.update(data)

    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


class APNSSender:
    """
    Sends push notifications for one APNS account.

    Usage:
        config = APNSConfig(
            bundle_id="com.example.app",
            team_id="TEAMID1234",
            key_id="KEYID12345",
            key_file="path/to/AuthKey.p8",
            environment=APNSEnvironment.SANDBOX,
        )
        async with APNSSender(config, token_provider=APNSTokenProvider()) as sender:
            response = await sender.send(notification, device_token, max_retries=2)

    Several senders (one per account) can share one token provider and one
    httpx client.

    Attributes:
        config: APNS account configuration
        token_provider: Token cache used unless a send overrides it
    """

    def __init__(
        self,
        config: APNSConfig,
        token_provider: Optional[APNSTokenProvider] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize APNS sender.

        Args:
            config: APNS account configuration
            token_provider: Shared token cache (a private one is created if omitted)
            client: HTTP/2 client; if omitted one is created lazily and owned
                by this sender
        """
        self.config = config
        self.token_provider = token_provider if token_provider is not None else APNSTokenProvider()

        self._client = client
        self._owns_client = client is None
        self._signing_material: Optional[SigningMaterial] = None

        logger.info(
            "APNS sender initialized",
            extra={
                "host": config.host,
                "bundle_id": config.bundle_id,
                "environment": config.environment.value,
            }
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP/2 client with connection pooling."""
        if self._client is None or (self._owns_client and self._client.is_closed):
            self._client = httpx.AsyncClient(
                http2=True,
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
            )
            self._owns_client = True
        return self._client

    def _get_signing_material(self) -> SigningMaterial:
        if self._signing_material is None:
            self._signing_material = self.config.signing_material()
        return self._signing_material

    def _build_headers(
        self,
        token: str,
        apns_id: Optional[str],
        expiration: int,
        priority: int,
        is_background: bool,
    ) -> dict:
        """Build request headers for APNS."""
        headers = {
            "authorization": f"bearer {token}",
            APNS_TOPIC_HEADER: self.config.bundle_id,
            APNS_EXPIRATION_HEADER: str(expiration),
            APNS_PRIORITY_HEADER: str(priority),
            # Required for watchOS 6 and later; recommended everywhere else
            APNS_PUSH_TYPE_HEADER: PUSH_TYPE_BACKGROUND if is_background else PUSH_TYPE_ALERT,
        }

        if apns_id and apns_id.strip():
            headers[APNS_ID_HEADER] = apns_id

        return headers

    async def send(
        self,
        notification: AppleNotification,
        device_token: str,
        apns_id: Optional[str] = None,
        expiration: int = DEFAULT_EXPIRATION,
        priority: int = DEFAULT_PRIORITY,
        is_background: bool = False,
        max_retries: int = 0,
        token_provider: Optional[APNSTokenProvider] = None,
    ) -> APNSResponse:
        """
        Send a notification to a single device.

        Makes up to max_retries + 1 attempts and stops at the first 2xx.
        A 403 drops the cached provider token so the next attempt (or the
        next send) signs a fresh one. Attempts are back to back; callers that
        send in volume should retry rate-limited results themselves, e.g.
        with send_with_backoff.

        Args:
            notification: Notification to deliver
            device_token: APNS device token (hex string)
            apns_id: Optional notification ID (apns-id header)
            expiration: Epoch seconds after which APNS stops retrying delivery (0 = once)
            priority: apns-priority (10 = immediate, 5 = power considerate)
            is_background: Send as a background push instead of an alert
            max_retries: Extra attempts after the first unsuccessful response
            token_provider: Overrides the sender's token provider for this send

        Returns:
            APNSResponse describing the last attempt

        Raises:
            ValueError: On invalid arguments or unusable key material
            httpx.HTTPError: On transport failures (not retried here)
        """
        if not device_token:
            raise ValueError("device_token is required")
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")

        provider = token_provider if token_provider is not None else self.token_provider
        account = self.config.bundle_id
        signing_material = self._get_signing_material()

        client = await self._get_client()
        url = f"{self.config.base_url}{APNS_DEVICE_PATH.format(device_token=device_token)}"
        body = build_payload(notification).encode("utf-8")

        attempts = 0
        success = False
        status_code: Optional[int] = None
        error = APNSError()
        response_apns_id: Optional[str] = None
        start_time = time.time()

        while not success and attempts <= max_retries:
            attempts += 1
            headers = self._build_headers(
                provider.get_token(account, signing_material),
                apns_id,
                expiration,
                priority,
                is_background,
            )

            response = await client.post(url, content=body, headers=headers)

            status_code = response.status_code
            success = 200 <= status_code < 300
            error = APNSError.parse(response.content)
            response_apns_id = response.headers.get(APNS_ID_HEADER)

            if status_code == APNS_FORBIDDEN_STATUS_CODE:
                logger.warning(
                    "APNS rejected provider token, invalidating",
                    extra={
                        "bundle_id": account,
                        "reason": error.reason,
                        "attempt": attempts,
                    }
                )
                provider.invalidate_token(account)
            elif not success:
                logger.warning(
                    "APNS attempt unsuccessful",
                    extra={
                        "device_token": device_token[:8] + "...",
                        "status_code": status_code,
                        "reason": error.reason,
                        "attempt": attempts,
                        "max_attempts": max_retries + 1,
                    }
                )

        status = DeliveryStatus.from_status_code(status_code)
        duration_ms = int((time.time() - start_time) * 1000)

        if success:
            logger.info(
                "APNS notification sent successfully",
                extra={
                    "device_token": device_token[:8] + "...",
                    "apns_id": response_apns_id,
                    "attempts": attempts,
                    "duration_ms": duration_ms,
                }
            )
        else:
            logger.error(
                f"APNS notification failed after {attempts} attempt(s)",
                extra={
                    "device_token": device_token[:8] + "...",
                    "status_code": status_code,
                    "status": status.value,
                    "reason": error.reason,
                    "duration_ms": duration_ms,
                }
            )

        return APNSResponse(
            device_token=device_token,
            success=success,
            status_code=status_code,
            error=error,
            status=status,
            apns_id=response_apns_id,
            attempts=attempts,
        )

    async def send_with_backoff(
        self,
        notification: AppleNotification,
        device_token: str,
        retry_config: RetryConfig = RETRY_APNS,
        **send_kwargs: Any,
    ) -> APNSResponse:
        """
        Send, retrying the whole send with exponential backoff.

        Retries when the result is rate limited or a server error, and when
        the transport raises. Other failures (bad token, bad topic, ...) are
        returned immediately.

        Args:
            notification: Notification to deliver
            device_token: APNS device token
            retry_config: Backoff policy for whole sends
            **send_kwargs: Passed through to send()

        Returns:
            APNSResponse of the last send
        """
        return await retry_async(
            self.send,
            notification,
            device_token,
            config=retry_config,
            operation_name="apns_send",
            retry_if_result=lambda response: response.status in BACKOFF_STATUSES,
            **send_kwargs,
        )

    async def send_batch(
        self,
        notification: AppleNotification,
        device_tokens: List[str],
        concurrency: int = DEFAULT_BATCH_CONCURRENCY,
        **send_kwargs: Any,
    ) -> List[APNSResponse]:
        """
        Send a notification to multiple devices concurrently.

        A transport error for one device becomes a failed APNSResponse for
        that device; any other exception is re-raised.

        Args:
            notification: Notification payload (same for all devices)
            device_tokens: List of APNS device tokens
            concurrency: Maximum concurrent requests
            **send_kwargs: Passed through to send()

        Returns:
            List of APNSResponse, in the order of device_tokens
        """
        if not device_tokens:
            return []

        semaphore = asyncio.Semaphore(concurrency)

        async def send_with_semaphore(token: str) -> APNSResponse:
            async with semaphore:
                return await self.send(notification, token, **send_kwargs)

        results = await asyncio.gather(
            *[send_with_semaphore(token) for token in device_tokens],
            return_exceptions=True,
        )

        delivery_results = []
        for token, result in zip(device_tokens, results):
            if isinstance(result, httpx.HTTPError):
                logger.error(
                    f"Batch send transport error: {result}",
                    extra={"device_token": token[:8] + "..."},
                )
                delivery_results.append(APNSResponse(
                    device_token=token,
                    success=False,
                    status=DeliveryStatus.FAILED,
                ))
            elif isinstance(result, BaseException):
                raise result
            else:
                delivery_results.append(result)

        success_count = sum(1 for r in delivery_results if r.success)
        invalid_count = sum(1 for r in delivery_results if r.status == DeliveryStatus.INVALID_TOKEN)
        logger.info(
            "APNS batch send complete",
            extra={
                "total": len(device_tokens),
                "success": success_count,
                "failed": len(device_tokens) - success_count,
                "invalid_tokens": invalid_count,
            }
        )

        return delivery_results

    async def close(self) -> None:
        """Close the HTTP client if this sender created it."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.debug("APNS sender closed")

    async def __aenter__(self) -> "APNSSender":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
