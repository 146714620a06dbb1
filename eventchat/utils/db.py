import os
import logging
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from eventchat.utils.config import MONGODB_URI, MONGODB_DB
from eventchat.utils.chat_history import ConversationStore
from eventchat.utils.event_store import EventStore
from eventchat.utils.user_store import UserStore

logger = logging.getLogger(__name__)

client: AsyncIOMotorClient | None = None
db: AsyncIOMotorDatabase | None = None


async def ensure_indexes(database: AsyncIOMotorDatabase) -> None:
    await UserStore(database).ensure_indexes()
    await ConversationStore(database).ensure_indexes()
    await EventStore(database).ensure_indexes()


async def connect_to_mongo():
    global client, db
    uri = MONGODB_URI or os.getenv("MONGODB_URI")
    name = MONGODB_DB or os.getenv("MONGODB_DB")
    if not uri or not name:
        raise RuntimeError("MONGODB_URI and MONGODB_DB must be set")

    client = AsyncIOMotorClient(uri)
    db = client[name]
    try:
        await ensure_indexes(db)
    except PyMongoError as exc:
        # The unique indexes back event dedup; keep serving but make the gap visible.
        logger.error("Could not ensure indexes at startup: %s", exc)
    logger.info("Connected to MongoDB database '%s'.", name)


async def close_mongo_connection():
    global client, db
    if client:
        client.close()
        client = None
        db = None
        logger.info("MongoDB connection closed.")


def get_db() -> AsyncIOMotorDatabase:
    if db is None:
        raise RuntimeError("Database not connected. Call connect_to_mongo at startup.")

    return db


# FastAPI dependencies; tests override these with an in-memory database.
def get_conversation_store() -> ConversationStore:
    return ConversationStore(get_db())


def get_event_store() -> EventStore:
    return EventStore(get_db())


def get_user_store() -> UserStore:
    return UserStore(get_db())
