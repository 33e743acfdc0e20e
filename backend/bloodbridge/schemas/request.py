from __future__ import annotations

from typing import Any, Dict, List

from ..models.matching import DonorMatch, MatchRequest


def match_request_from_document(request: Dict[str, Any]) -> MatchRequest:
    """Project a stored blood request onto the fields matching needs; the requester is excluded."""
    location = request.get("location") or {}
    longitude, latitude = location.get("coordinates")
    requester_id = request.get("requesterId")
    return MatchRequest(
        request_id=str(request.get("_id")),
        blood_group=request.get("bloodGroup"),
        coordinates=(float(longitude), float(latitude)),
        urgency_level=request.get("urgencyLevel"),
        exclude_ids=[str(requester_id)] if requester_id else [],
        district=location.get("district"),
    )


def matches_document(matches: List[DonorMatch]) -> List[Dict[str, Any]]:
    return [match.model_dump(by_alias=True) for match in matches]
