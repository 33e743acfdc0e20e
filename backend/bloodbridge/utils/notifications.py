from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Protocol

from bson import ObjectId
from bson.errors import InvalidId
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorCollection

from ..models.matching import DeliveryPath, MatchNotice

NOTIFICATION_COLLECTION = "notifications"
URGENT_TITLE = "Urgent Blood Request"
URGENT_MESSAGE = "A critical blood request needs your immediate attention!"


class LiveEmitter(Protocol):
    async def send_to_user(self, user_id: str, event: str, payload: Dict[str, Any]) -> None: ...

    async def send_to_role(self, role: str, event: str, payload: Dict[str, Any]) -> None: ...


def _user_ref(user_id: str) -> Any:
    try:
        return ObjectId(user_id)
    except (InvalidId, TypeError):
        return user_id


def action_url(request_id: str | None) -> str:
    return f"/donation-request/{request_id}"


def notification_documents(notice: MatchNotice, now: datetime) -> List[Dict[str, Any]]:
    """One in-app notification per matched donor."""
    if notice.delivery == DeliveryPath.URGENT_BROADCAST:
        title = URGENT_TITLE
        message = URGENT_MESSAGE
        channels = ["in_app", "push", "sms"]
        data: Dict[str, Any] = {"requestId": notice.request_id, "urgent": True}
    else:
        title = f"Blood Donation Request - {notice.blood_group.value}"
        where = f" in {notice.district}" if notice.district else ""
        message = f"A {notice.urgency_level.value} blood request needs your help{where}."
        channels = ["in_app"]
        data = {
            "requestId": notice.request_id,
            "bloodGroup": notice.blood_group.value,
            "urgencyLevel": notice.urgency_level.value,
        }

    documents = []
    for match in notice.matches:
        documents.append(
            {
                "userId": _user_ref(match.donor_id),
                "type": "urgent_request",
                "title": title,
                "message": message,
                "data": {**data, "distance": round(match.distance, 2)},
                "priority": notice.priority.value,
                "channels": channels,
                "status": "pending",
                "actionUrl": action_url(notice.request_id),
                "createdAt": now,
            }
        )
    return documents


class NotificationService:
    """
    Delivers matched-donor notices: stores the notifications and pushes them
    to connected donors. Delivery is best effort and never retried.
    """

    def __init__(self, collection: AsyncIOMotorCollection, emitter: LiveEmitter) -> None:
        self.collection = collection
        self.emitter = emitter

    async def deliver(self, notice: MatchNotice) -> None:
        documents = notification_documents(notice, datetime.utcnow())
        if not documents:
            return
        try:
            result = await self.collection.insert_many(documents)
            for document, inserted_id in zip(documents, result.inserted_ids):
                payload = {**document, "id": str(inserted_id), "userId": str(document["userId"])}
                payload.pop("_id", None)
                payload["createdAt"] = document["createdAt"].isoformat()
                await self.emitter.send_to_user(payload["userId"], "notification", payload)
            await self.collection.update_many(
                {"_id": {"$in": result.inserted_ids}},
                {"$set": {"status": "sent"}},
            )
            if notice.delivery == DeliveryPath.URGENT_BROADCAST:
                await self.emitter.send_to_role(
                    "donor",
                    "urgent-alert",
                    {
                        "requestId": notice.request_id,
                        "message": URGENT_MESSAGE,
                        "actionUrl": action_url(notice.request_id),
                    },
                )
        except Exception as exc:
            logger.warning(
                "Notification delivery failed for request {} ({} donors): {}. Continuing.",
                notice.request_id,
                len(documents),
                exc,
            )
            return
        logger.info(
            "Delivered {} notifications for request {} via {}",
            len(documents),
            notice.request_id,
            notice.delivery.value,
        )
