import logging
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from eventchat.schemas.chat_schema import ChatMessage, Conversation
from eventchat.utils.config import PERSIST_RETRIES, PERSIST_BASE_DELAY_SECONDS, PERSIST_MAX_DELAY_SECONDS
from eventchat.utils.dates import utcnow
from eventchat.utils.errors import ConversationConflictError
from eventchat.utils.retry import with_retry

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 100


class ConversationStore:
    """One document per session: ordered messages plus the dialog context."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.conversations

    async def ensure_indexes(self) -> None:
        await self.collection.create_index("session_id", unique=True)
        await self.collection.create_index([("user_id", 1), ("updated_at", -1)])

    async def load(self, session_id: str, user_id: str) -> Optional[Conversation]:
        doc = await self.collection.find_one({"session_id": session_id, "user_id": user_id})
        return Conversation.from_document(doc) if doc else None

    async def session_taken(self, session_id: str, user_id: str) -> bool:
        """True when ``session_id`` already belongs to a different user."""
        doc = await self.collection.find_one({"session_id": session_id}, {"user_id": 1})
        return doc is not None and doc.get("user_id") != user_id

    async def save(self, conversation: Conversation) -> bool:
        """Persist the conversation, retrying transient failures.

        Never raises: a failed save is logged with session and user and reported as False,
        so the already computed reply can still be returned.
        """
        try:
            await with_retry(
                lambda: self._write(conversation),
                retries=PERSIST_RETRIES,
                base_delay=PERSIST_BASE_DELAY_SECONDS,
                max_delay=PERSIST_MAX_DELAY_SECONDS,
                label=f"save conversation {conversation.session_id}",
            )
            return True
        except DuplicateKeyError:
            logger.error("Duplicate key saving conversation session=%s user=%s",
                         conversation.session_id, conversation.user_id)
        except ConversationConflictError as exc:
            logger.error("Conversation save conflict session=%s user=%s: %s",
                         conversation.session_id, conversation.user_id, exc)
        except PyMongoError as exc:
            logger.error("Failed to save conversation session=%s user=%s: %s: %s",
                         conversation.session_id, conversation.user_id, type(exc).__name__, exc)
        return False

    async def _write(self, conversation: Conversation) -> None:
        now = utcnow()
        messages = [m.model_dump() for m in conversation.messages]
        context = conversation.context.model_dump(mode="json", exclude_none=True)

        if conversation.is_new:
            await self.collection.insert_one({
                "session_id": conversation.session_id,
                "user_id": conversation.user_id,
                "messages": messages,
                "last_intent": conversation.last_intent,
                "context": context,
                "version": 1,
                "created_at": conversation.created_at,
                "updated_at": now,
            })
        else:
            result = await self.collection.update_one(
                {"session_id": conversation.session_id, "user_id": conversation.user_id,
                 "version": conversation.version},
                {"$set": {"messages": messages, "last_intent": conversation.last_intent,
                          "context": context, "updated_at": now},
                 "$inc": {"version": 1}},
            )
            if result.matched_count == 0:
                await self._merge_after_conflict(conversation, now)
        conversation.version += 1
        conversation.updated_at = now
        conversation.mark_persisted()

    async def _merge_after_conflict(self, conversation: Conversation, now) -> None:
        # Someone else saved first: keep their context, append our messages after theirs.
        logger.warning("Version conflict on session=%s (v%d), appending messages only",
                       conversation.session_id, conversation.version)
        new_messages = [m.model_dump() for m in conversation.unsaved_messages]
        result = await self.collection.update_one(
            {"session_id": conversation.session_id, "user_id": conversation.user_id},
            {"$push": {"messages": {"$each": new_messages}},
             "$set": {"updated_at": now},
             "$inc": {"version": 1}},
        )
        if result.matched_count == 0:
            raise ConversationConflictError(f"session {conversation.session_id} no longer exists")
        latest = await self.collection.find_one({"session_id": conversation.session_id}, {"version": 1})
        if latest:
            conversation.version = latest["version"] - 1

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[dict]:
        cursor = self.collection.find({"user_id": user_id}).sort("updated_at", -1).limit(limit)
        results = []
        async for doc in cursor:
            messages = doc.get("messages") or []
            last = messages[-1]["content"] if messages else ""
            results.append({
                "session_id": doc["session_id"],
                "preview": last[:PREVIEW_CHARS],
                "message_count": len(messages),
                "last_intent": doc.get("last_intent"),
                "created_at": doc.get("created_at"),
                "updated_at": doc.get("updated_at"),
            })
        return results

    async def replace_messages(self, session_id: str, user_id: str, messages: List[ChatMessage],
                               last_intent: Optional[str] = None) -> Conversation:
        """Manual save from the client: overwrite the transcript, keep the context."""
        now = utcnow()
        update = {"$set": {"messages": [m.model_dump() for m in messages], "updated_at": now},
                  "$setOnInsert": {"context": {}, "created_at": now},
                  "$inc": {"version": 1}}
        if last_intent:
            update["$set"]["last_intent"] = last_intent
        await self.collection.update_one({"session_id": session_id, "user_id": user_id}, update, upsert=True)
        return await self.load(session_id, user_id)

    async def delete(self, session_id: str, user_id: str) -> bool:
        res = await self.collection.delete_one({"session_id": session_id, "user_id": user_id})
        return res.deleted_count == 1

    async def delete_for_user(self, user_id: str) -> int:
        res = await self.collection.delete_many({"user_id": user_id})
        return res.deleted_count
