from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection

from ..models.matching import DonorMatch, MatchRequest
from ..schemas.request import match_request_from_document, matches_document

REQUEST_COLLECTION = "request"


def _id_filter(request_id: str) -> Dict[str, Any]:
    try:
        return {"_id": ObjectId(request_id)}
    except (InvalidId, TypeError):
        return {"_id": request_id}


class MongoRequestStore:
    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self.collection = collection

    async def get_request(self, request_id: str) -> Optional[MatchRequest]:
        document = await self.collection.find_one(_id_filter(request_id))
        if not document:
            return None
        return match_request_from_document(document)

    async def save_matches(self, request_id: str, matches: List[DonorMatch], now: datetime) -> None:
        await self.collection.update_one(
            _id_filter(request_id),
            {"$set": {"matchedDonors": matches_document(matches), "updatedAt": now}},
        )

    async def recent_matched(self, since: datetime) -> List[Dict[str, Any]]:
        cursor = self.collection.find(
            {"createdAt": {"$gte": since}, "matchedDonors": {"$exists": True, "$ne": []}},
            {"matchedDonors": 1, "status": 1},
        )
        return [request async for request in cursor]
