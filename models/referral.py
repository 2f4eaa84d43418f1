from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ReferralStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"


class ReferralLink(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    referral_id: str
    url: str


class ReferralHistoryItem(BaseModel):
    # Backend payloads are camelCase
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    referee_email: str
    status: ReferralStatus
    invited_at: datetime
    completed_at: Optional[datetime] = None
    reward_granted: bool = False

    @field_validator("invited_at", "completed_at", mode="before")
    @classmethod
    def parse_firestore_timestamp(cls, value):
        """Firestore timestamps cross the callable wire as {_seconds, _nanoseconds}"""
        if isinstance(value, dict):
            seconds = value.get("_seconds", value.get("seconds"))
            if seconds is None:
                return value
            nanos = value.get("_nanoseconds", value.get("nanoseconds")) or 0
            return datetime.fromtimestamp(int(seconds) + int(nanos) / 1e9, tz=timezone.utc)
        return value


class ReferralStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_invites: int = 0
    completed_referrals: int = 0
    pending_referrals: int = 0
    total_rewards_earned: int = 0
    referral_history: List[ReferralHistoryItem] = Field(default_factory=list)


class BackendReply(BaseModel):
    """Envelope every referral RPC returns"""
    success: bool
    message: Optional[str] = None
    payload: Optional[dict] = None
