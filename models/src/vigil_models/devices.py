"""Push-notification device models."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Device(BaseModel):
    """A push-capable device registered by a user, keyed by its push token."""

    token: str = Field(..., description="Push token (also the record ID)")
    user_id: str = Field(..., description="Owning user ID")
    platform: str | None = Field(None, description="iOS, Android, ...")
    device_id: str | None = Field(None, description="Vendor hardware identifier")
    device_model: str | None = Field(None, description="Hardware model name")
    notifications_enabled: bool = Field(True, description="User opted in to pushes")
    time_zone: str | None = Field(None, description="IANA timezone name")
    time_zone_offset: int | None = Field(
        None, description="Whole-hour UTC offset reported by the device"
    )
    badge_count: int = Field(0, ge=0, description="Server-authoritative badge count")
    last_notified: datetime | None = Field(None, description="Last push timestamp")
    last_updated: datetime = Field(default_factory=_utcnow, description="Last write timestamp")

    @property
    def token_prefix(self) -> str:
        return self.token[:10]


class DeviceRegistration(BaseModel):
    """Payload a client sends when registering or refreshing a push token."""

    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(..., min_length=1, description="Push token")
    platform: str = Field("iOS", description="Client platform")
    device_id: str | None = Field(None, alias="deviceId")
    device_model: str | None = Field(None, alias="deviceModel")
    notifications_enabled: bool = Field(True, alias="notificationsEnabled")
    time_zone: str | None = Field(None, alias="timeZone")
    time_zone_offset: int | None = Field(None, alias="timeZoneOffset", ge=-12, le=14)
