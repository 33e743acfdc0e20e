from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# (longitude, latitude), GeoJSON order.
Coordinates = Tuple[float, float]


class BloodGroup(str, Enum):
    A_POSITIVE = "A+"
    A_NEGATIVE = "A-"
    B_POSITIVE = "B+"
    B_NEGATIVE = "B-"
    AB_POSITIVE = "AB+"
    AB_NEGATIVE = "AB-"
    O_POSITIVE = "O+"
    O_NEGATIVE = "O-"


class UrgencyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class UserStatus(str, Enum):
    ACTIVE = "active"
    BLOCKED = "blocked"
    PENDING = "pending"


class DeliveryPath(str, Enum):
    URGENT_BROADCAST = "urgent_broadcast"
    STANDARD_BULK = "standard_bulk"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ResponseHistory(BaseModel):
    """Raw activity counts for one donor as read from the activity log."""

    notifications_received: int = 0
    responses: int = 0
    completed: int = 0
    average_response_time_ms: float = 0.0


class ResponseMetrics(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_requests: int = Field(alias="totalRequests")
    response_rate: float = Field(alias="responseRate")
    average_response_time: float = Field(alias="averageResponseTime")
    completion_rate: float = Field(alias="completionRate")


class AvailabilityStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_available: bool = Field(alias="isAvailable")
    next_available_date: Optional[datetime] = Field(default=None, alias="nextAvailableDate")
    restrictions: List[str] = Field(default_factory=list)


class ContactInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone: str = ""
    email: str = ""
    preferred_method: Literal["phone", "email"] = Field(default="email", alias="preferredMethod")


class DonorCandidate(BaseModel):
    """Read-only projection of a donor profile for one matching run."""

    id: str
    name: str = ""
    blood_group: BloodGroup
    coordinates: Coordinates
    last_donation_date: Optional[datetime] = None
    date_of_birth: Optional[datetime] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    response_history: Optional[ResponseMetrics] = None


class MatchRequest(BaseModel):
    request_id: Optional[str] = None
    blood_group: BloodGroup
    coordinates: Coordinates
    urgency_level: UrgencyLevel
    exclude_ids: List[str] = Field(default_factory=list)
    district: Optional[str] = None


class DonorMatch(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    donor_id: str = Field(alias="donorId")
    donor_name: str = Field(alias="donorName")
    blood_group: BloodGroup = Field(alias="bloodGroup")
    distance: float
    last_donation_date: Optional[datetime] = Field(default=None, alias="lastDonationDate")
    response_history: ResponseMetrics = Field(alias="responseHistory")
    match_score: float = Field(alias="matchScore")
    contact_info: ContactInfo = Field(alias="contactInfo")
    availability: AvailabilityStatus


class MatchNotice(BaseModel):
    """Ranked matches handed to the notification collaborator."""

    request_id: Optional[str] = None
    blood_group: BloodGroup
    urgency_level: UrgencyLevel
    district: Optional[str] = None
    delivery: DeliveryPath
    priority: NotificationPriority
    matches: List[DonorMatch]

    @property
    def donor_ids(self) -> List[str]:
        return [match.donor_id for match in self.matches]


class MatchingMetrics(BaseModel):
    total_matches: int
    average_distance: float
    average_response_time: float
    success_rate: float
    last_updated: datetime


class ExpandSearchPayload(BaseModel):
    radius_km: float = Field(gt=0, le=1000)
