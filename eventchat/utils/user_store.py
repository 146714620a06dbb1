import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from eventchat.schemas.user_schema import UserLocation
from eventchat.utils.dates import utcnow
from eventchat.utils.event_store import to_object_id

logger = logging.getLogger(__name__)


class UserStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.users = db.users

    async def ensure_indexes(self) -> None:
        await self.users.create_index("email", unique=True)
        await self.users.create_index("username", unique=True)

    async def update_last_location(self, user_id: str, location: UserLocation) -> bool:
        oid = to_object_id(user_id)
        if oid is None:
            return False
        result = await self.users.update_one(
            {"_id": oid},
            {"$set": {"last_location": location.model_dump(exclude_none=True), "updated_at": utcnow()}},
        )
        return result.matched_count == 1

    async def get_last_location(self, user_id: str) -> Optional[UserLocation]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        doc = await self.users.find_one({"_id": oid}, {"last_location": 1})
        if not doc or not doc.get("last_location"):
            return None
        return UserLocation.model_validate(doc["last_location"])
