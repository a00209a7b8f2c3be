"""Pytest fixtures and configuration for the test suite

This module provides:
1. Throwaway P-256 signing keys (PEM-armored and bare base64)
2. APNS account configuration and signing material
3. A controllable clock for token expiry tests
4. A mock httpx AsyncClient
"""
import asyncio
import pytest
from typing import Any, Coroutine, List
from unittest.mock import AsyncMock

import httpx
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from apnsender.push.models import (
    APNSAlert,
    APNSConfig,
    APNSEnvironment,
    APSPayload,
    AppleNotification,
    SigningMaterial,
)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_p8_key() -> str:
    """Generate a PEM-armored PKCS#8 P-256 key, like an AuthKey_XXXX.p8 file."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return pem.decode("ascii")


def strip_armor(pem: str) -> str:
    """Return the base64 body of a PEM key on a single line."""
    return "".join(
        line for line in pem.strip().splitlines() if not line.startswith("-----")
    )


@pytest.fixture
def p8_key() -> str:
    return make_p8_key()


@pytest.fixture
def bare_p8_key(p8_key) -> str:
    return strip_armor(p8_key)


@pytest.fixture
def signing_material(p8_key) -> SigningMaterial:
    return SigningMaterial(
        team_id="TEAMID1234",
        key_id="KEYID12345",
        private_key=p8_key,
    )


@pytest.fixture
def apns_config(p8_key) -> APNSConfig:
    """Create a test APNS configuration."""
    return APNSConfig(
        bundle_id="com.example.test",
        team_id="TEAMID1234",
        key_id="KEYID12345",
        private_key=p8_key,
        environment=APNSEnvironment.SANDBOX,
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sample_notification() -> AppleNotification:
    """Create a sample notification with custom data."""
    return AppleNotification(
        aps=APSPayload(
            alert=APNSAlert(
                title="Order shipped",
                body="Your order #1234 is on its way",
            ),
            badge=1,
            sound="default",
        ),
        data={
            "order_id": "1234",
            "deep_link": "/orders/1234",
        },
    )


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    mock_client = AsyncMock(spec=httpx.AsyncClient)
    mock_client.is_closed = False
    return mock_client


@pytest.fixture
def run_concurrent():
    """
    Helper fixture to run multiple coroutines concurrently.

    Returns list of results or exceptions for each task.
    """
    async def _run_concurrent(
        tasks: List[Coroutine],
        timeout: float = 10.0
    ) -> List[Any]:
        return await asyncio.wait_for(
            asyncio.gather(*tasks, return_exceptions=True),
            timeout=timeout
        )

    return _run_concurrent
