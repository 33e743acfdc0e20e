from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol, Tuple

from loguru import logger

from ..models.matching import BloodGroup, Coordinates, DonorCandidate, MatchRequest, UserStatus
from .compatibility import compatible_donor_groups
from .eligibility import within_donation_interval
from .geo import distance_km
from .scoring import search_radius_km

DONOR_ROLES = ("donor", "volunteer")
DEFAULT_CANDIDATE_LIMIT = 100


@dataclass(frozen=True)
class DonorQuery:
    blood_groups: frozenset
    coordinates: Coordinates
    max_distance_km: float
    exclude_ids: Tuple[str, ...] = ()
    roles: Tuple[str, ...] = DONOR_ROLES
    status: UserStatus = UserStatus.ACTIVE
    limit: int = DEFAULT_CANDIDATE_LIMIT


class DonorReader(Protocol):
    async def find_donors(self, query: DonorQuery) -> List[DonorCandidate]: ...


@dataclass
class CandidateSearch:
    """
    Restricts the donor population to compatible, nearby, hard-eligible donors.

    Returns ``(candidate, distance_km)`` pairs in the order the reader produced
    them. Donors inside the post-donation interval are dropped here; age is left
    to the scorer.
    """

    reader: DonorReader
    limit: int = DEFAULT_CANDIDATE_LIMIT
    timeout_s: Optional[float] = 5.0

    def build_query(self, request: MatchRequest, radius_km: float) -> DonorQuery:
        return DonorQuery(
            blood_groups=compatible_donor_groups(request.blood_group),
            coordinates=request.coordinates,
            max_distance_km=radius_km,
            exclude_ids=tuple(request.exclude_ids),
            limit=self.limit,
        )

    async def _read(self, query: DonorQuery) -> List[DonorCandidate]:
        if self.timeout_s is None:
            return await self.reader.find_donors(query)
        try:
            return await asyncio.wait_for(self.reader.find_donors(query), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            logger.warning(
                "Candidate search timed out after {}s for {} within {}km; treating as no candidates",
                self.timeout_s,
                sorted(group.value for group in query.blood_groups),
                query.max_distance_km,
            )
            return []

    async def find_candidates(
        self,
        request: MatchRequest,
        now: datetime,
        radius_km: Optional[float] = None,
    ) -> List[Tuple[DonorCandidate, float]]:
        if radius_km is None:
            radius_km = search_radius_km(request.urgency_level)
        query = self.build_query(request, radius_km)
        donors = (await self._read(query))[: self.limit]

        excluded = set(query.exclude_ids)
        candidates: List[Tuple[DonorCandidate, float]] = []
        for donor in donors:
            if donor.id in excluded or BloodGroup(donor.blood_group) not in query.blood_groups:
                continue
            distance = distance_km(request.coordinates, donor.coordinates)
            if distance > radius_km:
                continue
            if within_donation_interval(donor.last_donation_date, now):
                continue
            candidates.append((donor, distance))

        logger.debug(
            "Candidate search: {} read, {} kept within {}km",
            len(donors),
            len(candidates),
            radius_km,
        )
        return candidates
