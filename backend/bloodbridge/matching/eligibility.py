"""Donation eligibility, evaluated against an explicit ``now``."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from ..models.matching import AvailabilityStatus, DonorCandidate

DONATION_INTERVAL_DAYS = 90
MIN_DONOR_AGE = 18
MAX_DONOR_AGE = 65

WAIT_RESTRICTION = f"Must wait {DONATION_INTERVAL_DAYS} days between donations"
AGE_RESTRICTION = f"Age must be between {MIN_DONOR_AGE}-{MAX_DONOR_AGE} years"


def days_since(moment: datetime, now: datetime) -> int:
    return (now - moment).days


def age_in_years(date_of_birth: datetime, now: datetime) -> int:
    return (now - date_of_birth).days // 365


def within_donation_interval(last_donation_date: Optional[datetime], now: datetime) -> bool:
    """True while the donor is still inside the mandatory gap after a donation."""
    if last_donation_date is None:
        return False
    return days_since(last_donation_date, now) < DONATION_INTERVAL_DAYS


def check_availability(candidate: DonorCandidate, now: datetime) -> AvailabilityStatus:
    """
    Decide whether ``candidate`` may donate at ``now``.

    The donation interval is checked first and, when it applies, is the only
    restriction reported. Otherwise an age outside 18-65 (inclusive) makes the
    donor unavailable.
    """
    if within_donation_interval(candidate.last_donation_date, now):
        return AvailabilityStatus(
            is_available=False,
            next_available_date=candidate.last_donation_date + timedelta(days=DONATION_INTERVAL_DAYS),
            restrictions=[WAIT_RESTRICTION],
        )

    restrictions = []
    if candidate.date_of_birth is not None:
        age = age_in_years(candidate.date_of_birth, now)
        if age < MIN_DONOR_AGE or age > MAX_DONOR_AGE:
            restrictions.append(AGE_RESTRICTION)

    return AvailabilityStatus(is_available=not restrictions, restrictions=restrictions)
