import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from eventchat.schemas.event_schema import (
    EventCandidate, EventCreate, EventOut, EventRecord, EventStats, EventUpdate,
    RegistrationRecord, ReminderRecord,
)
from eventchat.utils.dates import start_of_day, utcnow
from eventchat.utils.errors import DuplicateRegistrationError, EventExistsError, ReminderExistsError
from eventchat.utils.text import normalize_title, source_key

logger = logging.getLogger(__name__)

EVENT_FILTERS = ("all", "discovery", "created", "registered", "upcoming", "past", "remind_later")
EVENT_SORTS = {
    "date": [("start_date", ASCENDING)],
    "date-desc": [("start_date", DESCENDING)],
    "priority": [("created_at", DESCENDING)],
    "recent": [("updated_at", DESCENDING)],
    "title": [("title", ASCENDING)],
}


def to_object_id(value: Optional[str]) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _event_from_doc(doc: Dict[str, Any]) -> EventRecord:
    data = {k: v for k, v in doc.items() if k not in ("_id", "normalized_title", "source_key")}
    return EventRecord(id=str(doc["_id"]), **data)


def _registration_from_doc(doc: Dict[str, Any]) -> RegistrationRecord:
    return RegistrationRecord(id=str(doc["_id"]), user_id=doc["user_id"], event_id=str(doc["event_id"]),
                              name=doc["name"], email=doc["email"], status=doc.get("status", "confirmed"),
                              created_at=doc["created_at"])


def _reminder_from_doc(doc: Dict[str, Any]) -> ReminderRecord:
    data = {k: v for k, v in doc.items() if k not in ("_id", "pending_key", "event_id")}
    return ReminderRecord(id=str(doc["_id"]), event_id=str(doc["event_id"]), **data)


def _icontains(value: str) -> Dict[str, Any]:
    return {"$regex": re.escape(value.strip()), "$options": "i"}


class EventStore:
    """Events, registrations and reminders.

    Event identity per owner is (source, normalized title) or (source, source URL), both
    enforced by unique indexes; an insert that collides re-reads the existing row.
    Each discovering user owns a separate copy of a discovered event.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.events = db.events
        self.registrations = db.registrations
        self.reminders = db.reminders

    async def ensure_indexes(self) -> None:
        await self.events.create_index(
            [("user_id", ASCENDING), ("source", ASCENDING), ("normalized_title", ASCENDING)], unique=True)
        await self.events.create_index(
            [("user_id", ASCENDING), ("source", ASCENDING), ("source_key", ASCENDING)], unique=True)
        await self.events.create_index([("start_date", ASCENDING)])
        await self.registrations.create_index([("user_id", ASCENDING), ("event_id", ASCENDING)], unique=True)
        await self.reminders.create_index("pending_key", unique=True, sparse=True)
        await self.reminders.create_index([("status", ASCENDING), ("reminder_date", ASCENDING)])

    # --- events ---

    async def create_event(self, data: EventCreate, user_id: str) -> Tuple[EventRecord, bool]:
        """Insert unless an equivalent event exists for this owner. Returns (event, created)."""
        normalized = normalize_title(data.title)
        key = source_key(data.title, data.source_url)
        existing = await self._find_equivalent(user_id, data.source, normalized, key)
        if existing:
            return _event_from_doc(existing), False

        now = utcnow()
        doc = data.model_dump(exclude_none=True)
        doc.update({"user_id": user_id, "normalized_title": normalized, "source_key": key,
                    "created_at": now, "updated_at": now})
        try:
            result = await self.events.insert_one(doc)
        except DuplicateKeyError:
            existing = await self._find_equivalent(user_id, data.source, normalized, key)
            if existing is None:
                raise
            return _event_from_doc(existing), False
        doc["_id"] = result.inserted_id
        logger.info("Stored %s event '%s' for user %s", data.source, data.title, user_id)
        return _event_from_doc(doc), True

    async def _find_equivalent(self, user_id: str, source: str, normalized: str, key: str):
        return await self.events.find_one({
            "user_id": user_id, "source": source,
            "$or": [{"normalized_title": normalized}, {"source_key": key}],
        })

    async def store_discovered(self, candidate: EventCandidate, user_id: str) -> Tuple[EventRecord, bool]:
        return await self.create_event(
            EventCreate(title=candidate.title, snippet=candidate.snippet, location=candidate.location,
                        source_url=candidate.link, source="discovered"),
            user_id,
        )

    async def get_event(self, event_id: str) -> Optional[EventRecord]:
        oid = to_object_id(event_id)
        if oid is None:
            return None
        doc = await self.events.find_one({"_id": oid})
        return _event_from_doc(doc) if doc else None

    async def update_event(self, event_id: str, user_id: str, changes: EventUpdate) -> Optional[EventRecord]:
        oid = to_object_id(event_id)
        if oid is None:
            return None
        fields = changes.model_dump(exclude_unset=True)
        unset = {k: "" for k, v in fields.items() if v is None and k != "title"}
        to_set = {k: v for k, v in fields.items() if v is not None}
        if "title" in to_set:
            current = await self.events.find_one({"_id": oid, "user_id": user_id}, {"source": 1, "source_url": 1})
            if current is None:
                return None
            to_set["normalized_title"] = normalize_title(to_set["title"])
            to_set["source_key"] = source_key(to_set["title"], current.get("source_url"))
            clash = await self.events.find_one({
                "_id": {"$ne": oid}, "user_id": user_id, "source": current.get("source"),
                "$or": [{"normalized_title": to_set["normalized_title"]}, {"source_key": to_set["source_key"]}],
            })
            if clash:
                raise EventExistsError(user_id, to_set["title"])
        to_set["updated_at"] = utcnow()
        update: Dict[str, Any] = {"$set": to_set}
        if unset:
            update["$unset"] = unset
        try:
            result = await self.events.update_one({"_id": oid, "user_id": user_id}, update)
        except DuplicateKeyError:
            raise EventExistsError(user_id, to_set.get("title", ""))
        if result.matched_count == 0:
            return None
        return await self.get_event(event_id)

    async def delete_event(self, event_id: str, user_id: str) -> bool:
        """Delete an owned event together with its registrations and reminders."""
        oid = to_object_id(event_id)
        if oid is None:
            return False
        result = await self.events.delete_one({"_id": oid, "user_id": user_id})
        if result.deleted_count == 0:
            return False
        await self.registrations.delete_many({"event_id": oid})
        await self.reminders.delete_many({"event_id": oid})
        return True

    async def save_for_user(self, event_id: str, user_id: str) -> Tuple[Optional[EventRecord], bool]:
        """Copy an event into the user's own discovered list (dedup returns the existing copy)."""
        event = await self.get_event(event_id)
        if event is None:
            return None, False
        if event.user_id == user_id:
            return event, False
        data = EventCreate(**event.model_dump(exclude={"id", "user_id", "created_at", "updated_at", "source"}),
                           source="discovered")
        return await self.create_event(data, user_id)

    async def registered_event_ids(self, user_id: str) -> List[ObjectId]:
        cursor = self.registrations.find({"user_id": user_id}, {"event_id": 1})
        return [doc["event_id"] async for doc in cursor]

    async def _pending_reminder_event_ids(self, user_id: str, reminder_type: Optional[str] = None) -> List[ObjectId]:
        query: Dict[str, Any] = {"user_id": user_id, "status": "pending"}
        if reminder_type:
            query["reminder_type"] = reminder_type
        cursor = self.reminders.find(query, {"event_id": 1})
        return [doc["event_id"] async for doc in cursor]

    async def _filter_query(self, user_id: str, event_filter: str) -> Dict[str, Any]:
        now = utcnow()
        if event_filter == "discovery":
            return {"user_id": user_id, "source": "discovered"}
        if event_filter == "created":
            return {"user_id": user_id, "source": "user_created"}
        if event_filter == "registered":
            return {"_id": {"$in": await self.registered_event_ids(user_id)}}
        if event_filter == "past":
            return {"_id": {"$in": await self.registered_event_ids(user_id)}, "start_date": {"$lt": now}}
        if event_filter == "upcoming":
            registered = await self.registered_event_ids(user_id)
            return {"$or": [{"user_id": user_id}, {"_id": {"$in": registered}}],
                    "start_date": {"$gte": start_of_day(now)}}
        if event_filter == "remind_later":
            return {"_id": {"$in": await self._pending_reminder_event_ids(user_id, "remind_later")}}
        registered = await self.registered_event_ids(user_id)
        return {"$or": [{"user_id": user_id}, {"_id": {"$in": registered}}]}

    async def list_events(self, user_id: str, event_filter: str = "all", *, category: Optional[str] = None,
                          location: Optional[str] = None, search: Optional[str] = None,
                          sort: Optional[str] = None, limit: int = 50, skip: int = 0) -> List[EventRecord]:
        clauses = [await self._filter_query(user_id, event_filter)]
        if category:
            clauses.append({"category": _icontains(category)})
        if location:
            clauses.append({"location": _icontains(location)})
        if search:
            clauses.append({"$or": [{"title": _icontains(search)}, {"snippet": _icontains(search)},
                                    {"description": _icontains(search)}]})
        query = clauses[0] if len(clauses) == 1 else {"$and": clauses}
        cursor = self.events.find(query).sort(EVENT_SORTS.get(sort or "", EVENT_SORTS["priority"]))
        cursor = cursor.skip(max(skip, 0)).limit(max(limit, 1))
        return [_event_from_doc(doc) async for doc in cursor]

    async def annotate(self, events: List[EventRecord], user_id: str) -> List[EventOut]:
        """Attach isRegistered / hasReminder / attendeesCount for the caller."""
        if not events:
            return []
        oids = [ObjectId(e.id) for e in events]
        registered = {str(i) for i in await self.registered_event_ids(user_id)}
        reminded = {str(i) for i in await self._pending_reminder_event_ids(user_id)}
        counts: Dict[str, int] = {}
        async for doc in self.registrations.find({"event_id": {"$in": oids}}, {"event_id": 1}):
            key = str(doc["event_id"])
            counts[key] = counts.get(key, 0) + 1
        return [EventOut(**e.model_dump(), is_registered=e.id in registered, has_reminder=e.id in reminded,
                         attendees_count=counts.get(e.id, 0)) for e in events]

    async def stats(self, user_id: str) -> EventStats:
        registered = await self.registered_event_ids(user_id)
        upcoming = await self._filter_query(user_id, "upcoming")
        return EventStats(
            created=await self.events.count_documents({"user_id": user_id, "source": "user_created"}),
            discovered=await self.events.count_documents({"user_id": user_id, "source": "discovered"}),
            registered=len(registered),
            upcoming=await self.events.count_documents(upcoming),
            reminders=await self.reminders.count_documents({"user_id": user_id, "status": "pending"}),
        )

    # --- registrations ---

    async def create_registration(self, user_id: str, event_id: str, name: str, email: str) -> RegistrationRecord:
        """Register once per (user, event); a second attempt raises DuplicateRegistrationError."""
        oid = to_object_id(event_id)
        doc = {"user_id": user_id, "event_id": oid, "name": name, "email": email,
               "status": "confirmed", "created_at": utcnow()}
        if await self.registrations.find_one({"user_id": user_id, "event_id": oid}):
            raise DuplicateRegistrationError(user_id, event_id)
        try:
            result = await self.registrations.insert_one(doc)
        except DuplicateKeyError:
            raise DuplicateRegistrationError(user_id, event_id)
        doc["_id"] = result.inserted_id
        return _registration_from_doc(doc)

    async def latest_registration(self, user_id: str) -> Optional[RegistrationRecord]:
        cursor = self.registrations.find({"user_id": user_id}).sort("created_at", DESCENDING).limit(1)
        async for doc in cursor:
            return _registration_from_doc(doc)
        return None

    # --- reminders ---

    async def has_pending_reminder(self, user_id: str, event_id: str, reminder_type: Optional[str] = None) -> bool:
        query: Dict[str, Any] = {"user_id": user_id, "event_id": to_object_id(event_id), "status": "pending"}
        if reminder_type:
            query["reminder_type"] = reminder_type
        return await self.reminders.find_one(query) is not None

    async def create_reminder(self, user_id: str, event_id: str, reminder_date: datetime,
                              reminder_type: str = "before_event", message: Optional[str] = None,
                              any_type: bool = False) -> ReminderRecord:
        """Create a pending reminder. ``any_type`` refuses if any pending reminder exists for the event."""
        if await self.has_pending_reminder(user_id, event_id, None if any_type else reminder_type):
            raise ReminderExistsError(user_id, event_id, reminder_type)
        doc = {"user_id": user_id, "event_id": to_object_id(event_id), "reminder_date": reminder_date,
               "reminder_type": reminder_type, "status": "pending",
               "pending_key": f"{user_id}:{event_id}:{reminder_type}", "created_at": utcnow()}
        if message:
            doc["message"] = message
        try:
            result = await self.reminders.insert_one(doc)
        except DuplicateKeyError:
            raise ReminderExistsError(user_id, event_id, reminder_type)
        doc["_id"] = result.inserted_id
        return _reminder_from_doc(doc)

    async def due_reminders(self, until: datetime) -> List[ReminderRecord]:
        cursor = self.reminders.find({"status": "pending", "reminder_date": {"$lte": until}})
        return [_reminder_from_doc(doc) async for doc in cursor]

    async def mark_reminder(self, reminder_id: str, status: str) -> bool:
        update: Dict[str, Any] = {"$set": {"status": status}, "$unset": {"pending_key": ""}}
        if status == "sent":
            update["$set"]["sent_at"] = utcnow()
        result = await self.reminders.update_one({"_id": to_object_id(reminder_id), "status": "pending"}, update)
        return result.modified_count == 1

    async def delete_for_user(self, user_id: str) -> None:
        owned = [doc["_id"] async for doc in self.events.find({"user_id": user_id}, {"_id": 1})]
        await self.registrations.delete_many({"$or": [{"user_id": user_id}, {"event_id": {"$in": owned}}]})
        await self.reminders.delete_many({"$or": [{"user_id": user_id}, {"event_id": {"$in": owned}}]})
        await self.events.delete_many({"user_id": user_id})
