"""
Match scoring.

A compatible donor starts at 100 and collects bonuses for an exact group
match, proximity, availability and a good response history, minus penalties
for a too-recent or long-stale last donation. The running total is scaled by
the request's urgency and clamped to [0, 300].
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..models.matching import AvailabilityStatus, DonorCandidate, MatchRequest, ResponseMetrics, UrgencyLevel
from .compatibility import is_compatible
from .eligibility import DONATION_INTERVAL_DAYS, check_availability, days_since

BASE_SCORE = 100.0
EXACT_MATCH_BONUS = 20.0
MAX_DISTANCE_SCORE = 50.0
MAX_AVAILABILITY_SCORE = 30.0
MAX_RESPONSE_SCORE = 20.0
RECENT_DONATION_PENALTY = 50.0
STALE_DONOR_PENALTY = 10.0
STALE_DONOR_DAYS = 365
MIN_SCORE = 0.0
MAX_SCORE = 300.0

SEARCH_RADIUS_KM = {
    UrgencyLevel.CRITICAL: 100.0,
    UrgencyLevel.HIGH: 50.0,
    UrgencyLevel.MEDIUM: 25.0,
    UrgencyLevel.LOW: 15.0,
}

MAX_RESULTS = {
    UrgencyLevel.CRITICAL: 20,
    UrgencyLevel.HIGH: 15,
    UrgencyLevel.MEDIUM: 10,
    UrgencyLevel.LOW: 5,
}

URGENCY_MULTIPLIER = {
    UrgencyLevel.CRITICAL: 1.5,
    UrgencyLevel.HIGH: 1.3,
    UrgencyLevel.MEDIUM: 1.1,
    UrgencyLevel.LOW: 1.0,
}


def search_radius_km(urgency: UrgencyLevel) -> float:
    return SEARCH_RADIUS_KM[UrgencyLevel(urgency)]


def max_results(urgency: UrgencyLevel) -> int:
    return MAX_RESULTS[UrgencyLevel(urgency)]


def urgency_multiplier(urgency: UrgencyLevel) -> float:
    return URGENCY_MULTIPLIER[UrgencyLevel(urgency)]


def distance_score(distance: float, radius_km: float) -> float:
    """Linear decay from 50 at the request location to 0 at the radius edge."""
    return max(0.0, MAX_DISTANCE_SCORE - (distance / radius_km) * MAX_DISTANCE_SCORE)


def availability_score(availability: AvailabilityStatus, now: datetime) -> float:
    if availability.is_available:
        return MAX_AVAILABILITY_SCORE
    if availability.next_available_date is not None:
        days_until_available = (availability.next_available_date - now).days
        return max(0.0, MAX_AVAILABILITY_SCORE - days_until_available)
    return 0.0


def recency_adjustment(last_donation_date: Optional[datetime], now: datetime) -> float:
    if last_donation_date is None:
        return 0.0
    elapsed = days_since(last_donation_date, now)
    if elapsed < DONATION_INTERVAL_DAYS:
        return -RECENT_DONATION_PENALTY
    if elapsed > STALE_DONOR_DAYS:
        return -STALE_DONOR_PENALTY
    return 0.0


def score_candidate(
    candidate: DonorCandidate,
    request: MatchRequest,
    distance: float,
    history: ResponseMetrics,
    now: datetime,
    radius_km: Optional[float] = None,
    availability: Optional[AvailabilityStatus] = None,
) -> float:
    """
    Score ``candidate`` against ``request``.

    ``distance`` is the candidate's distance from the request in km and
    ``radius_km`` the search radius used as the distance-score denominator
    (the urgency radius when omitted). Incompatible pairs score exactly 0.
    """
    if not is_compatible(candidate.blood_group, request.blood_group):
        return 0.0

    if radius_km is None:
        radius_km = search_radius_km(request.urgency_level)
    if availability is None:
        availability = check_availability(candidate, now)

    score = BASE_SCORE
    if candidate.blood_group == request.blood_group:
        score += EXACT_MATCH_BONUS
    score += distance_score(distance, radius_km)
    score += availability_score(availability, now)
    score += history.response_rate * MAX_RESPONSE_SCORE
    score += recency_adjustment(candidate.last_donation_date, now)

    score *= urgency_multiplier(request.urgency_level)
    return max(MIN_SCORE, min(MAX_SCORE, score))
