import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from pymongo.errors import PyMongoError

from eventchat.agents.notification_agent.email_sender import EmailSender
from eventchat.utils.dates import utcnow
from eventchat.utils.event_store import EventStore, to_object_id

logger = logging.getLogger(__name__)

DISPATCH_WINDOW = timedelta(hours=1)


class ReminderDispatcher:
    """Emails pending reminders that fall due within the next hour and marks them sent."""

    def __init__(self, events: EventStore, sender: EmailSender, users_collection):
        self.events = events
        self.sender = sender
        self.users = users_collection

    async def dispatch_due(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        sent = 0
        for reminder in await self.events.due_reminders(now + DISPATCH_WINDOW):
            event = await self.events.get_event(reminder.event_id)
            if event is None:
                await self.events.mark_reminder(reminder.id, "cancelled")
                continue
            user = await self.users.find_one({"_id": to_object_id(reminder.user_id)}, {"email": 1, "name": 1})
            if not user or not user.get("email"):
                logger.warning("Reminder %s has no reachable user %s", reminder.id, reminder.user_id)
                continue
            result = await self.sender.send(user["email"], "reminder", {
                "name": user.get("name", ""),
                "title": event.title,
                "when": event.start_date.strftime("%Y-%m-%d %H:%M UTC") if event.start_date else None,
                "where": event.location,
                "link": event.source_url,
            })
            if result.success:
                await self.events.mark_reminder(reminder.id, "sent")
                sent += 1
            else:
                logger.info("Reminder %s left pending: %s", reminder.id, result.error)
        return sent

    async def run_forever(self, interval_seconds: int) -> None:
        while True:
            try:
                count = await self.dispatch_due()
                if count:
                    logger.info("Dispatched %d reminder(s)", count)
            except PyMongoError as exc:
                logger.error("Reminder dispatch failed: %s", exc)
            await asyncio.sleep(interval_seconds)
