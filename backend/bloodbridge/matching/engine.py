from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Dict, List, Optional, Protocol, Tuple

from loguru import logger

from ..models.matching import (
    ContactInfo,
    DeliveryPath,
    DonorCandidate,
    DonorMatch,
    MatchingMetrics,
    MatchNotice,
    MatchRequest,
    NotificationPriority,
    ResponseHistory,
    ResponseMetrics,
    UrgencyLevel,
)
from .eligibility import check_availability
from .errors import HistoryUnavailableError, RequestNotFoundError
from .scoring import max_results, score_candidate, search_radius_km
from .search import DEFAULT_CANDIDATE_LIMIT, CandidateSearch, DonorReader

METRICS_WINDOW_DAYS = 30
SUCCESSFUL_REQUEST_STATUSES = ("completed", "verified")


class ResponseHistoryReader(Protocol):
    async def get_history(self, donor_id: str) -> ResponseHistory: ...


class RequestStore(Protocol):
    async def get_request(self, request_id: str) -> Optional[MatchRequest]: ...

    async def save_matches(self, request_id: str, matches: List[DonorMatch], now: datetime) -> None: ...

    async def recent_matched(self, since: datetime) -> List[Dict]: ...


class MatchNotifier(Protocol):
    async def deliver(self, notice: MatchNotice) -> None: ...


@dataclass(frozen=True)
class HistoryFallback:
    """Metrics used for donors with no recorded activity or an unreadable history."""

    response_rate: float = 0.5
    average_response_time: float = 30.0
    completion_rate: float = 0.3

    def metrics(self) -> ResponseMetrics:
        return ResponseMetrics(
            total_requests=0,
            response_rate=self.response_rate,
            average_response_time=self.average_response_time,
            completion_rate=self.completion_rate,
        )


class RequestLocks:
    """Serializes match-and-write runs for the same blood request."""

    def __init__(self) -> None:
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def hold(self, request_id: str) -> AsyncIterator[None]:
        lock, users = self._locks.get(request_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[request_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[request_id]
            if users <= 1:
                del self._locks[request_id]
            else:
                self._locks[request_id] = (lock, users - 1)

    def __len__(self) -> int:
        return len(self._locks)


def metrics_from_history(history: ResponseHistory, fallback: HistoryFallback) -> ResponseMetrics:
    if history.notifications_received == 0 and history.responses == 0:
        return fallback.metrics()
    total_requests = max(1, history.notifications_received)
    return ResponseMetrics(
        total_requests=total_requests,
        response_rate=history.responses / total_requests,
        average_response_time=history.average_response_time_ms / (1000 * 60),
        completion_rate=history.completed / total_requests,
    )


def delivery_for(urgency: UrgencyLevel) -> Tuple[DeliveryPath, NotificationPriority]:
    urgency = UrgencyLevel(urgency)
    if urgency == UrgencyLevel.CRITICAL:
        return DeliveryPath.URGENT_BROADCAST, NotificationPriority.CRITICAL
    if urgency == UrgencyLevel.HIGH:
        return DeliveryPath.STANDARD_BULK, NotificationPriority.HIGH
    return DeliveryPath.STANDARD_BULK, NotificationPriority.MEDIUM


class MatchingEngine:
    """
    Finds and ranks donors for a blood request.

    Built once with its collaborators and shared by the request handlers.
    Every time-dependent rule is evaluated against ``now``; public methods take
    it explicitly and otherwise read ``clock`` once at entry.
    """

    def __init__(
        self,
        donor_reader: DonorReader,
        history_reader: ResponseHistoryReader,
        request_store: Optional[RequestStore] = None,
        notifier: Optional[MatchNotifier] = None,
        *,
        history_fallback: HistoryFallback | None = None,
        candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
        search_timeout_s: Optional[float] = 5.0,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.search = CandidateSearch(donor_reader, limit=candidate_limit, timeout_s=search_timeout_s)
        self.history_reader = history_reader
        self.request_store = request_store
        self.notifier = notifier
        self.history_fallback = history_fallback or HistoryFallback()
        self.clock = clock
        self.locks = RequestLocks()

    async def get_response_history(self, donor_id: str) -> ResponseMetrics:
        try:
            history = await self.history_reader.get_history(donor_id)
        except HistoryUnavailableError as exc:
            logger.warning("Response history unavailable for donor {}; using fallback metrics: {}", donor_id, exc)
            return self.history_fallback.metrics()
        return metrics_from_history(history, self.history_fallback)

    async def calculate_match_score(
        self,
        candidate: DonorCandidate,
        request: MatchRequest,
        distance: float,
        now: Optional[datetime] = None,
        radius_km: Optional[float] = None,
    ) -> float:
        now = now or self.clock()
        history = candidate.response_history or await self.get_response_history(candidate.id)
        return score_candidate(candidate, request, distance, history, now, radius_km=radius_km)

    def _build_match(
        self,
        candidate: DonorCandidate,
        request: MatchRequest,
        distance: float,
        now: datetime,
        radius_km: float,
    ) -> DonorMatch:
        history = candidate.response_history or self.history_fallback.metrics()
        availability = check_availability(candidate, now)
        score = score_candidate(
            candidate,
            request,
            distance,
            history,
            now,
            radius_km=radius_km,
            availability=availability,
        )
        return DonorMatch(
            donor_id=candidate.id,
            donor_name=candidate.name,
            blood_group=candidate.blood_group,
            distance=distance,
            last_donation_date=candidate.last_donation_date,
            response_history=history,
            match_score=score,
            contact_info=ContactInfo(
                phone=candidate.phone or "",
                email=candidate.email or "",
                preferred_method="phone" if candidate.phone else "email",
            ),
            availability=availability,
        )

    async def find_optimal_donors(
        self,
        request: MatchRequest,
        now: Optional[datetime] = None,
        radius_km: Optional[float] = None,
    ) -> List[DonorMatch]:
        """
        Rank compatible donors for ``request``.

        ``radius_km`` overrides the urgency radius for both the search and the
        distance score. Ties keep the order of the donor ids so a run is
        reproducible. An empty list means nobody qualified.
        """
        now = now or self.clock()
        if radius_km is None:
            radius_km = search_radius_km(request.urgency_level)

        found = await self.search.find_candidates(request, now, radius_km=radius_km)
        histories = await asyncio.gather(*(self.get_response_history(donor.id) for donor, _ in found))

        matches = []
        for (donor, distance), history in zip(found, histories):
            candidate = donor.model_copy(update={"response_history": history})
            match = self._build_match(candidate, request, distance, now, radius_km)
            if match.match_score > 0:
                matches.append(match)

        matches.sort(key=lambda match: match.donor_id)
        matches.sort(key=lambda match: match.match_score, reverse=True)
        ranked = matches[: max_results(request.urgency_level)]
        logger.info(
            "Matched {} of {} candidates for request {} ({}, {}km)",
            len(ranked),
            len(found),
            request.request_id,
            request.urgency_level.value,
            radius_km,
        )
        return ranked

    def _require_store(self) -> RequestStore:
        if self.request_store is None:
            raise RuntimeError("MatchingEngine was built without a request store")
        return self.request_store

    async def _match_and_record(
        self,
        request_id: str,
        now: Optional[datetime],
        radius_km: Optional[float],
    ) -> Tuple[MatchRequest, List[DonorMatch]]:
        store = self._require_store()
        now = now or self.clock()
        async with self.locks.hold(request_id):
            request = await store.get_request(request_id)
            if request is None:
                raise RequestNotFoundError(request_id)
            matches = await self.find_optimal_donors(request, now, radius_km=radius_km)
            await store.save_matches(request_id, matches, now)
        await self.notify_matched_donors(request, matches)
        return request, matches

    async def match_request(self, request_id: str, now: Optional[datetime] = None) -> List[DonorMatch]:
        """Match a stored request at its urgency radius, record the matches and notify donors."""
        _, matches = await self._match_and_record(request_id, now, None)
        return matches

    async def expand_search(
        self,
        request_id: str,
        new_radius_km: float,
        now: Optional[datetime] = None,
    ) -> List[DonorMatch]:
        """Re-run matching for a stored request with an explicit radius."""
        if new_radius_km <= 0:
            raise ValueError("new_radius_km must be positive")
        _, matches = await self._match_and_record(request_id, now, new_radius_km)
        logger.info(
            "Expanded search radius to {}km for request {}, found {} matches",
            new_radius_km,
            request_id,
            len(matches),
        )
        return matches

    def build_notice(self, request: MatchRequest, matches: List[DonorMatch]) -> MatchNotice:
        delivery, priority = delivery_for(request.urgency_level)
        return MatchNotice(
            request_id=request.request_id,
            blood_group=request.blood_group,
            urgency_level=request.urgency_level,
            district=request.district,
            delivery=delivery,
            priority=priority,
            matches=matches,
        )

    async def notify_matched_donors(self, request: MatchRequest, matches: List[DonorMatch]) -> Optional[MatchNotice]:
        if self.notifier is None or not matches:
            return None
        notice = self.build_notice(request, matches)
        await self.notifier.deliver(notice)
        logger.info("Notified {} donors for request {} via {}", len(matches), request.request_id, notice.delivery.value)
        return notice

    async def get_matching_metrics(self, now: Optional[datetime] = None) -> MatchingMetrics:
        store = self._require_store()
        now = now or self.clock()
        recent = await store.recent_matched(now - timedelta(days=METRICS_WINDOW_DAYS))

        total_matches = 0
        per_request_distance = []
        response_times = []
        successful = 0
        for request in recent:
            matched = request.get("matchedDonors") or []
            if not matched:
                continue
            total_matches += len(matched)
            per_request_distance.append(sum(m.get("distance", 0.0) for m in matched) / len(matched))
            response_times.extend(
                m["responseHistory"]["averageResponseTime"]
                for m in matched
                if m.get("responseHistory", {}).get("averageResponseTime") is not None
            )
            if request.get("status") in SUCCESSFUL_REQUEST_STATUSES:
                successful += 1

        requests_counted = len(per_request_distance)
        return MatchingMetrics(
            total_matches=total_matches,
            average_distance=sum(per_request_distance) / requests_counted if requests_counted else 0.0,
            average_response_time=sum(response_times) / len(response_times) if response_times else 0.0,
            success_rate=successful / requests_counted if requests_counted else 0.0,
            last_updated=now,
        )
