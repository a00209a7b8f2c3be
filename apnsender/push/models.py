"""
Pydantic models for the APNS sender.

Covers account configuration, the notification payload (reserved "aps"
section plus custom data), the gateway error body and the delivery result.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from apnsender.push.constants import (
    APNS_ERROR_CODES,
    APNS_FORBIDDEN_STATUS_CODE,
    APNS_PRODUCTION_HOST,
    APNS_RATE_LIMITED_STATUS_CODE,
    APNS_SANDBOX_HOST,
    APNS_TOKEN_INVALID_STATUS_CODES,
)


class APNSEnvironment(str, Enum):
    """APNS gateway environment."""

    SANDBOX = "sandbox"
    PRODUCTION = "production"


class DeliveryStatus(str, Enum):
    """Classification of the final gateway status code."""

    SUCCESS = "success"
    FAILED = "failed"
    INVALID_TOKEN = "invalid_token"
    RATE_LIMITED = "rate_limited"
    AUTH_ERROR = "auth_error"
    SERVER_ERROR = "server_error"

    @classmethod
    def from_status_code(cls, status_code: Optional[int]) -> "DeliveryStatus":
        if status_code is None:
            return cls.FAILED
        if 200 <= status_code < 300:
            return cls.SUCCESS
        if status_code == APNS_FORBIDDEN_STATUS_CODE:
            return cls.AUTH_ERROR
        if status_code in APNS_TOKEN_INVALID_STATUS_CODES:
            return cls.INVALID_TOKEN
        if status_code == APNS_RATE_LIMITED_STATUS_CODE:
            return cls.RATE_LIMITED
        if status_code >= 500:
            return cls.SERVER_ERROR
        return cls.FAILED


@dataclass(frozen=True)
class SigningMaterial:
    """Key material used to sign provider tokens for one account."""

    team_id: str
    key_id: str
    private_key: str


@dataclass(frozen=True)
class CachedToken:
    """A signed provider token and the time it was issued (epoch seconds)."""

    token: str
    issued_at: float


class APNSConfig(BaseModel):
    """Configuration for one APNS account.

    The account is identified by its bundle identifier, which is also the
    ``apns-topic`` of every request sent for it.

    Attributes:
        bundle_id: App bundle identifier (e.g., com.example.app)
        team_id: 10-character team identifier
        key_id: Key identifier of the .p8 auth key
        private_key: Inline .p8 key, PEM-armored or bare base64
        key_file: Path to the .p8 auth key file (used when private_key is unset)
        environment: Gateway environment (sandbox or production)
    """

    bundle_id: str = Field(..., min_length=1, description="App bundle identifier")
    team_id: str = Field(..., min_length=10, max_length=10, description="10-character team ID")
    key_id: str = Field(..., min_length=1, description="Auth key ID")
    private_key: Optional[str] = Field(None, description="Inline .p8 key contents")
    key_file: Optional[str] = Field(None, description="Path to .p8 auth key file")
    environment: APNSEnvironment = Field(
        default=APNSEnvironment.PRODUCTION, description="Gateway environment"
    )

    @field_validator("team_id")
    @classmethod
    def validate_team_id(cls, v: str) -> str:
        """Validate that the team identifier is alphanumeric."""
        if not v.isalnum():
            raise ValueError("Must be alphanumeric")
        return v.upper()

    @model_validator(mode="after")
    def validate_key_source(self) -> "APNSConfig":
        if not self.private_key and not self.key_file:
            raise ValueError("Either private_key or key_file must be set")
        return self

    @property
    def host(self) -> str:
        if self.environment == APNSEnvironment.SANDBOX:
            return APNS_SANDBOX_HOST
        return APNS_PRODUCTION_HOST

    @property
    def base_url(self) -> str:
        return f"https://{self.host}"

    def load_private_key(self) -> str:
        """Return the .p8 key text, reading key_file if no inline key is set."""
        if self.private_key:
            return self.private_key

        key_path = Path(self.key_file)
        if not key_path.exists():
            raise FileNotFoundError(f"APNS key file not found: {key_path}")
        return key_path.read_text(encoding="utf-8")

    def signing_material(self) -> SigningMaterial:
        return SigningMaterial(
            team_id=self.team_id,
            key_id=self.key_id,
            private_key=self.load_private_key(),
        )


class APNSAlert(BaseModel):
    """APNS alert dictionary.

    Every field is optional; empty fields are left out of the payload.
    """

    title: Optional[str] = Field(None, description="Alert title")
    subtitle: Optional[str] = Field(None, description="Alert subtitle")
    body: Optional[str] = Field(None, description="Alert body text")
    title_loc_key: Optional[str] = Field(None, description="Localization key for title")
    title_loc_args: Optional[List[str]] = Field(None, description="Localization args for title")
    loc_key: Optional[str] = Field(None, description="Localization key for body")
    loc_args: Optional[List[str]] = Field(None, description="Localization args for body")
    action_loc_key: Optional[str] = Field(None, description="Localization key for action button")
    launch_image: Optional[str] = Field(None, description="Launch image filename")

    def to_apns_dict(self) -> Dict[str, Any]:
        alert_dict: Dict[str, Any] = {}
        if self.title:
            alert_dict["title"] = self.title
        if self.subtitle:
            alert_dict["subtitle"] = self.subtitle
        if self.body:
            alert_dict["body"] = self.body
        if self.title_loc_key:
            alert_dict["title-loc-key"] = self.title_loc_key
        if self.title_loc_args:
            alert_dict["title-loc-args"] = self.title_loc_args
        if self.loc_key:
            alert_dict["loc-key"] = self.loc_key
        if self.loc_args:
            alert_dict["loc-args"] = self.loc_args
        if self.action_loc_key:
            alert_dict["action-loc-key"] = self.action_loc_key
        if self.launch_image:
            alert_dict["launch-image"] = self.launch_image
        return alert_dict


class APSPayload(BaseModel):
    """The reserved "aps" section of a notification.

    See: https://developer.apple.com/documentation/usernotifications/generating-a-remote-notification

    Attributes:
        alert: Alert text, or an APNSAlert dictionary
        badge: App icon badge number
        sound: Sound filename or "default"
        content_available: Background update flag (silent notification)
        mutable_content: Enable Notification Service Extension
        category: Notification category for action buttons
        thread_id: Thread identifier for grouping
        target_content_id: Window to bring to foreground
        interruption_level: iOS 15+ interruption level
        relevance_score: iOS 15+ relevance score (0.0-1.0)
    """

    alert: Optional[Union[APNSAlert, str]] = None
    badge: Optional[int] = Field(None, ge=0, description="Badge number")
    sound: Optional[str] = Field(None, description="Sound name or 'default'")
    content_available: bool = Field(default=False, description="Background update")
    mutable_content: bool = Field(default=False, description="Enable Service Extension")
    category: Optional[str] = Field(None, description="Notification category")
    thread_id: Optional[str] = Field(None, description="Thread ID for grouping")
    target_content_id: Optional[str] = Field(None, description="Target content ID")
    interruption_level: Optional[str] = Field(
        None,
        description="Interruption level: passive, active, time-sensitive, critical"
    )
    relevance_score: Optional[float] = Field(
        None,
        ge=0.0,
        le=1.0,
        description="Relevance score for notification summary"
    )

    @field_validator("interruption_level")
    @classmethod
    def validate_interruption_level(cls, v: Optional[str]) -> Optional[str]:
        """Validate interruption level is one of the allowed values."""
        if v is not None:
            allowed = {"passive", "active", "time-sensitive", "critical"}
            if v not in allowed:
                raise ValueError(f"Must be one of: {allowed}")
        return v

    def to_apns_dict(self) -> Dict[str, Any]:
        """Convert to the "aps" dictionary, leaving out empty fields."""
        aps: Dict[str, Any] = {}

        if isinstance(self.alert, APNSAlert):
            alert_dict = self.alert.to_apns_dict()
            if alert_dict:
                aps["alert"] = alert_dict
        elif self.alert:
            aps["alert"] = self.alert

        if self.badge is not None:
            aps["badge"] = self.badge
        if self.sound:
            aps["sound"] = self.sound
        if self.content_available:
            aps["content-available"] = 1
        if self.mutable_content:
            aps["mutable-content"] = 1
        if self.category:
            aps["category"] = self.category
        if self.thread_id:
            aps["thread-id"] = self.thread_id
        if self.target_content_id:
            aps["target-content-id"] = self.target_content_id
        if self.interruption_level:
            aps["interruption-level"] = self.interruption_level
        if self.relevance_score is not None:
            aps["relevance-score"] = self.relevance_score

        return aps


class AppleNotification(BaseModel):
    """A notification: the reserved "aps" section plus optional custom data.

    Custom data is delivered as top-level siblings of "aps", not nested
    under a "data" key. An empty mapping is the same as no custom data.
    """

    aps: APSPayload = Field(default_factory=APSPayload)
    data: Optional[Dict[str, Any]] = Field(None, description="Custom payload data")

    @field_validator("data")
    @classmethod
    def validate_data(cls, v: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if not v:
            return None
        if "aps" in v:
            raise ValueError("Custom data cannot use the reserved 'aps' key")
        return v

    def to_apns_dict(self) -> Dict[str, Any]:
        """Return the nested form: {"aps": {...}, "data": {...}}.

        Custom data values are JSON-normalized and None values dropped;
        "data" is only present when something is left.
        """
        payload: Dict[str, Any] = {"aps": self.aps.to_apns_dict()}

        if self.data:
            data = self.model_dump(mode="json", include={"data"})["data"]
            data = {key: value for key, value in data.items() if value is not None}
            if data:
                payload["data"] = data

        return payload


class APNSError(BaseModel):
    """Error body returned by the gateway ({"reason": ..., "timestamp": ...})."""

    model_config = ConfigDict(extra="ignore")

    reason: Optional[str] = None
    timestamp: Optional[int] = None

    @classmethod
    def parse(cls, content: Union[bytes, str, None]) -> "APNSError":
        """Parse a response body; anything unparseable yields an empty error."""
        if not content:
            return cls()
        try:
            return cls.model_validate_json(content)
        except (ValidationError, ValueError):
            return cls()

    @property
    def description(self) -> Optional[str]:
        if self.reason is None:
            return None
        return APNS_ERROR_CODES.get(self.reason, self.reason)


@dataclass
class APNSResponse:
    """Outcome of the final delivery attempt of a send."""

    device_token: str
    success: bool
    status_code: Optional[int] = None
    error: APNSError = field(default_factory=APNSError)
    status: DeliveryStatus = DeliveryStatus.FAILED
    apns_id: Optional[str] = None  # APNS unique notification ID
    attempts: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
