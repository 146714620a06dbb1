import logging
from datetime import datetime
from typing import Optional, Tuple

from pymongo.errors import PyMongoError

from eventchat.agents.extraction_agent.extraction_agent import ExtractionAgent
from eventchat.schemas.event_schema import EventRecord
from eventchat.utils.dates import day_before, parse_date, parse_time
from eventchat.utils.errors import ReminderExistsError
from eventchat.utils.event_store import EventStore
from eventchat.workflow.app_state import TurnState

logger = logging.getLogger(__name__)

NO_TARGET = ("I don't know which event to remind you about yet. Search for events, create one, "
             "or register for one first, then ask me for a reminder.")
NO_DATE = ("**{title}** doesn't have a date yet, so I can't pick a reminder time for you. "
           "Tell me when you'd like to be reminded (for example \"remind me on June 3 at 9 AM\").")
ALREADY_SET = "You already have a reminder set for this event (**{title}**)."


def resolve_reminder_date(event: EventRecord, date_text: Optional[str],
                          time_text: Optional[str]) -> Tuple[Optional[datetime], str]:
    """
    Returns (reminder_date, reminder_type).
    A user date wins; otherwise one day before the event. A user time adjusts whichever date applies.
    """
    requested = parse_date(date_text)
    if requested is not None:
        day, reminder_type = requested, "custom"
    elif event.start_date is not None:
        day, reminder_type = day_before(event.start_date), "before_event"
    else:
        return None, "before_event"
    hm = parse_time(time_text)
    if hm:
        day = day.replace(hour=hm[0], minute=hm[1], second=0, microsecond=0)
        if requested is None:
            reminder_type = "custom"
    return day, reminder_type


class ReminderFlow:
    def __init__(self, extraction: ExtractionAgent, events: EventStore):
        self.extraction = extraction
        self.events = events

    async def _target(self, state: TurnState) -> Optional[EventRecord]:
        context = state["context"]
        if context.last_event_ids:
            event = await self.events.get_event(context.last_event_ids[0])
            if event is not None:
                return event
        registration = await self.events.latest_registration(state["user"]["id"])
        if registration is not None:
            return await self.events.get_event(registration.event_id)
        return None

    async def run(self, state: TurnState) -> dict:
        user = state["user"]
        event = await self._target(state)
        if event is None:
            return {"reply": NO_TARGET}

        extraction = state["extraction"]
        date_text, time_text = extraction.date, extraction.time
        if not date_text and not time_text:
            parsed = await self.extraction.parse_datetime(state["message"])
            date_text, time_text = parsed.date, parsed.time

        when, reminder_type = resolve_reminder_date(event, date_text, time_text)
        if when is None:
            return {"reply": NO_DATE.format(title=event.title)}

        try:
            reminder = await self.events.create_reminder(user["id"], event.id, when, reminder_type, any_type=True)
        except ReminderExistsError:
            return {"reply": ALREADY_SET.format(title=event.title)}
        except PyMongoError as exc:
            logger.error("Reminder for event %s failed for user %s: %s", event.id, user["id"], exc)
            return {"reply": f"I couldn't set a reminder for **{event.title}** right now. Please try again."}

        state["context"].remember_event(event.id)
        return {
            "reply": f"Reminder set! I'll remind you about **{event.title}** on "
                     f"{when.strftime('%B %d, %Y at %H:%M')} UTC.",
            "refresh_events": True,
            "event_titles": [event.title],
            "event_data": {"id": event.id, "title": event.title, "reminderId": reminder.id,
                           "reminderDate": when.isoformat(), "reminderType": reminder_type},
        }
