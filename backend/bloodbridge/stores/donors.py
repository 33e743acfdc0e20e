from __future__ import annotations

from typing import Any, Dict, List

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection

from ..matching.search import DonorQuery
from ..models.matching import DonorCandidate
from ..schemas.donor import candidate_from_document

USER_COLLECTION = "user"
CANDIDATE_PROJECTION = {
    "name": 1,
    "email": 1,
    "phone": 1,
    "bloodGroup": 1,
    "location.coordinates": 1,
    "lastDonationDate": 1,
    "dateOfBirth": 1,
}


def _resolve_user_id(user_id: str) -> Any:
    try:
        return ObjectId(user_id)
    except (InvalidId, TypeError):
        return user_id


def build_donor_filter(query: DonorQuery) -> Dict[str, Any]:
    donor_filter: Dict[str, Any] = {
        "role": {"$in": list(query.roles)},
        "status": query.status.value,
        "bloodGroup": {"$in": sorted(group.value for group in query.blood_groups)},
    }
    if query.exclude_ids:
        donor_filter["_id"] = {"$nin": [_resolve_user_id(user_id) for user_id in query.exclude_ids]}
    donor_filter["location.coordinates"] = {
        "$near": {
            "$geometry": {"type": "Point", "coordinates": list(query.coordinates)},
            "$maxDistance": query.max_distance_km * 1000,
        }
    }
    return donor_filter


class MongoDonorReader:
    """Reads donor candidates from the user collection with a $near geo query."""

    def __init__(self, collection: AsyncIOMotorCollection, max_time_ms: int | None = None) -> None:
        self.collection = collection
        self.max_time_ms = max_time_ms

    async def find_donors(self, query: DonorQuery) -> List[DonorCandidate]:
        cursor = self.collection.find(build_donor_filter(query), CANDIDATE_PROJECTION).limit(query.limit)
        if self.max_time_ms:
            cursor = cursor.max_time_ms(self.max_time_ms)
        return [candidate_from_document(donor) async for donor in cursor]
