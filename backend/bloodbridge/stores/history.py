from __future__ import annotations

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from ..matching.errors import HistoryUnavailableError
from ..models.matching import ResponseHistory

ACTIVITY_LOG_COLLECTION = "activityLog"
RECEIVED_ACTION = "notification_received"
CONFIRMED_ACTION = "donation_confirmed"
RESPONSE_ACTIONS = ["notification_responded", CONFIRMED_ACTION, "donation_declined"]


class MongoResponseHistoryReader:
    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self.collection = collection

    async def get_history(self, donor_id: str) -> ResponseHistory:
        try:
            received = await self.collection.count_documents({"userId": donor_id, "action": RECEIVED_ACTION})
            cursor = self.collection.aggregate(
                [
                    {"$match": {"userId": donor_id, "action": {"$in": RESPONSE_ACTIONS}}},
                    {
                        "$group": {
                            "_id": None,
                            "responses": {"$sum": 1},
                            "completed": {"$sum": {"$cond": [{"$eq": ["$action", CONFIRMED_ACTION]}, 1, 0]}},
                            "average_response_time_ms": {"$avg": "$details.responseTime"},
                        }
                    },
                ]
            )
            summary = next(iter(await cursor.to_list(length=1)), {})
        except PyMongoError as exc:
            raise HistoryUnavailableError(f"activity log read failed for {donor_id}: {exc}") from exc

        return ResponseHistory(
            notifications_received=received,
            responses=summary.get("responses", 0),
            completed=summary.get("completed", 0),
            average_response_time_ms=summary.get("average_response_time_ms") or 0.0,
        )
