from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AuthProviderTag(str, Enum):
    PASSWORD = "password"
    GOOGLE = "google"
    APPLE = "apple"


class DeviceMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    device_id: Optional[str] = None
    platform: Optional[str] = None  # ios or android
    app_version: Optional[str] = None


class Principal(BaseModel):
    """
    Local copy of an authenticated identity.
    Replaced wholesale on every identity change notification, never patched.
    """
    model_config = ConfigDict(frozen=True)

    uid: str
    email: Optional[str] = None
    email_verified: bool = False
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    provider: AuthProviderTag = AuthProviderTag.PASSWORD
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_login_at: datetime = Field(default_factory=datetime.utcnow)
    metadata: DeviceMetadata = Field(default_factory=DeviceMetadata)
