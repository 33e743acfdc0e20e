from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest

from bloodbridge.matching.engine import MatchingEngine
from bloodbridge.matching.errors import HistoryUnavailableError
from bloodbridge.matching.geo import distance_km
from bloodbridge.matching.search import DonorQuery
from bloodbridge.models.matching import (
    BloodGroup,
    DonorCandidate,
    DonorMatch,
    MatchNotice,
    MatchRequest,
    ResponseHistory,
    UrgencyLevel,
)

NOW = datetime(2026, 6, 1, 12, 0, 0)
DHAKA = (90.41, 23.81)
KM_PER_DEGREE_LAT = 111.195


def north_of(origin, km: float):
    """A point ``km`` kilometres due north of ``origin``."""
    longitude, latitude = origin
    return (longitude, latitude + km / KM_PER_DEGREE_LAT)


def make_donor(
    donor_id: str,
    blood_group: BloodGroup = BloodGroup.O_NEGATIVE,
    km: float = 1.0,
    last_donation_days: Optional[int] = None,
    age: Optional[int] = 30,
    phone: Optional[str] = "+8801700000000",
) -> DonorCandidate:
    return DonorCandidate(
        id=donor_id,
        name=f"Donor {donor_id}",
        blood_group=blood_group,
        coordinates=north_of(DHAKA, km),
        last_donation_date=NOW - timedelta(days=last_donation_days) if last_donation_days is not None else None,
        date_of_birth=NOW - timedelta(days=365 * age + 30) if age is not None else None,
        phone=phone,
        email=f"{donor_id}@example.org",
    )


def make_request(
    blood_group: BloodGroup = BloodGroup.O_NEGATIVE,
    urgency: UrgencyLevel = UrgencyLevel.CRITICAL,
    request_id: str = "req-1",
    exclude_ids: Optional[List[str]] = None,
) -> MatchRequest:
    return MatchRequest(
        request_id=request_id,
        blood_group=blood_group,
        coordinates=DHAKA,
        urgency_level=urgency,
        exclude_ids=exclude_ids or ["requester"],
        district="Dhaka",
    )


class InMemoryDonorReader:
    """Honours the query the way the Mongo reader does."""

    def __init__(self, donors: List[DonorCandidate]) -> None:
        self.donors = list(donors)
        self.queries: List[DonorQuery] = []

    async def find_donors(self, query: DonorQuery) -> List[DonorCandidate]:
        self.queries.append(query)
        hits = [
            donor
            for donor in self.donors
            if donor.blood_group in query.blood_groups
            and donor.id not in query.exclude_ids
            and distance_km(query.coordinates, donor.coordinates) <= query.max_distance_km
        ]
        hits.sort(key=lambda donor: distance_km(query.coordinates, donor.coordinates))
        return hits[: query.limit]


class SloppyDonorReader:
    """Returns everyone regardless of the query."""

    def __init__(self, donors: List[DonorCandidate]) -> None:
        self.donors = list(donors)

    async def find_donors(self, query: DonorQuery) -> List[DonorCandidate]:
        return list(self.donors)


class SlowDonorReader:
    async def find_donors(self, query: DonorQuery) -> List[DonorCandidate]:
        await asyncio.sleep(5)
        return []


class FakeHistoryReader:
    def __init__(self, histories: Optional[Dict[str, ResponseHistory]] = None, fail: bool = False) -> None:
        self.histories = histories or {}
        self.fail = fail
        self.calls: List[str] = []

    async def get_history(self, donor_id: str) -> ResponseHistory:
        self.calls.append(donor_id)
        if self.fail:
            raise HistoryUnavailableError("activity log offline")
        return self.histories.get(donor_id, ResponseHistory())


class InMemoryRequestStore:
    def __init__(self, requests: Optional[Dict[str, MatchRequest]] = None, recent: Optional[List[dict]] = None) -> None:
        self.requests = requests or {}
        self.saved: Dict[str, List[DonorMatch]] = {}
        self.recent = recent or []
        self.writes: List[str] = []

    async def get_request(self, request_id: str) -> Optional[MatchRequest]:
        return self.requests.get(request_id)

    async def save_matches(self, request_id: str, matches: List[DonorMatch], now: datetime) -> None:
        self.writes.append(request_id)
        self.saved[request_id] = matches

    async def recent_matched(self, since: datetime) -> List[dict]:
        return list(self.recent)


class RecordingNotifier:
    def __init__(self) -> None:
        self.notices: List[MatchNotice] = []

    async def deliver(self, notice: MatchNotice) -> None:
        self.notices.append(notice)


@pytest.fixture
def history_reader() -> FakeHistoryReader:
    return FakeHistoryReader()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def build_engine(history_reader, notifier):
    def _build(donors=None, reader=None, store=None, **kwargs) -> MatchingEngine:
        return MatchingEngine(
            reader or InMemoryDonorReader(donors or []),
            kwargs.pop("history", history_reader),
            store or InMemoryRequestStore(),
            notifier,
            clock=lambda: NOW,
            **kwargs,
        )

    return _build
