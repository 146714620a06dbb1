import logging
from datetime import timedelta
from typing import List, Optional
from urllib.parse import quote, urlencode

from pymongo.errors import PyMongoError

from eventchat.agents.chat_agent.chat_agent import ChatAgent, parse_selection
from eventchat.agents.extraction_agent.extraction_agent import ExtractionAgent
from eventchat.agents.search_agent.search_agent import SearchClient
from eventchat.schemas.event_schema import EventCandidate, EventRecord, Notification
from eventchat.utils.dates import calendar_stamp
from eventchat.utils.errors import DuplicateRegistrationError
from eventchat.utils.event_store import EventStore
from eventchat.utils.text import dedupe_by_title_and_link, normalize_title, title_similarity, truncate
from eventchat.workflow.app_state import TurnState

logger = logging.getLogger(__name__)

MAX_CHOICES = 5
TITLE_MATCH = 0.8

NO_EVENT = ("I'm not sure which event you'd like to register for. Search for events or create one first, "
            "then tell me which one.")


def calendar_link(event: EventRecord) -> Optional[str]:
    """Google Calendar template link; None when the event has no date."""
    if event.start_date is None:
        return None
    end = event.end_date or event.start_date + timedelta(hours=1)
    params = {
        "action": "TEMPLATE",
        "text": event.title,
        "dates": f"{calendar_stamp(event.start_date)}/{calendar_stamp(end)}",
        "details": event.description or event.snippet or event.source_url or "",
        "location": event.location or "",
    }
    return "https://calendar.google.com/calendar/render?" + urlencode(params)


def share_link(event: EventRecord) -> str:
    body = f"I'm attending {event.title}."
    if event.source_url:
        body += f" Details: {event.source_url}"
    return f"mailto:?subject={quote('Join me at ' + event.title)}&body={quote(body)}"


def qr_code_url(registration_id: str) -> str:
    return f"https://api.qrserver.com/v1/create-qr-code/?size=100x100&data={quote(registration_id)}"


def title_matches(named: str, title: str) -> bool:
    return normalize_title(named) in normalize_title(title) or title_similarity(named, title) >= TITLE_MATCH


def render_choices(candidates: List[EventCandidate]) -> str:
    lines = ["I found these events. Which one would you like to register for? Reply with the number.", ""]
    for i, c in enumerate(candidates, 1):
        lines.append(f"{i}. **{c.title}**")
        if c.snippet:
            lines.append(f"   {truncate(c.snippet, 160)}")
        if c.link:
            lines.append(f"   {c.link}")
    return "\n".join(lines)


class RegistrationFlow:
    def __init__(self, chat: ChatAgent, extraction: ExtractionAgent, search: SearchClient, events: EventStore):
        self.chat = chat
        self.extraction = extraction
        self.search = search
        self.events = events

    async def run(self, state: TurnState) -> dict:
        context = state["context"]
        extraction = state["extraction"]
        user = state["user"]
        named = extraction.event_title

        # A named event with nothing in focus: offer candidates and wait for a choice.
        # A pending list is replaced when the name matches none of its entries.
        pending = context.found_events_for_registration
        if named and not context.last_event_ids and not any(title_matches(named, c.title) for c in pending):
            candidates = dedupe_by_title_and_link(await self.search.search_events(named))[:MAX_CHOICES]
            if not candidates:
                return {"reply": f"I couldn't find an event called \"{named}\". Could you check the name?"}
            context.found_events_for_registration = candidates
            context.last_search_query = named
            return {"reply": render_choices(candidates)}

        event = await self._selected_event(state)
        if isinstance(event, dict):
            return event
        if event is None:
            return {"reply": NO_EVENT}

        registrant = await self.extraction.extract_registrant(state["message"])
        name = registrant.name or user.get("name") or user.get("username") or ""
        email = registrant.email or user.get("email") or ""
        try:
            registration = await self.events.create_registration(user["id"], event.id, name, email)
        except DuplicateRegistrationError:
            return {"reply": f"You are already registered for **{event.title}**."}
        except PyMongoError as exc:
            logger.error("Registration for event %s failed for user %s: %s", event.id, user["id"], exc)
            return {"reply": f"I couldn't complete your registration for **{event.title}**. Please try again."}

        calendar = calendar_link(event)
        share = share_link(event)
        qr = qr_code_url(registration.id)
        lines = [f"You're registered for **{event.title}**!", ""]
        if event.source_url:
            lines.append(f"Event page: {event.source_url}")
        if calendar:
            lines.append(f"[Add to Google Calendar]({calendar})")
        lines.append(f"[Share with friends]({share})")
        lines.append(f"![Registration QR code]({qr})")
        lines.append(f"Registration id: {registration.id}")

        notification = Notification(recipient=email, template="registration", data={
            "name": name, "title": event.title, "registration_id": registration.id,
            "when": event.start_date.strftime("%Y-%m-%d %H:%M UTC") if event.start_date else None,
            "where": event.location, "calendar_link": calendar,
        })
        return {
            "reply": "\n".join(lines),
            "refresh_events": True,
            "event_titles": [event.title],
            "notifications": [notification] if email else [],
            "event_data": {"id": event.id, "title": event.title, "registrationId": registration.id,
                           "calendarLink": calendar, "shareLink": share, "qrCode": qr},
        }

    async def _selected_event(self, state: TurnState):
        """The event the user means, None if nothing is in focus, or a reply dict asking to choose."""
        context = state["context"]
        message = state["message"]
        named = state["extraction"].event_title
        found = context.found_events_for_registration
        if found:
            choice = None
            if named:
                choice = next((i for i, c in enumerate(found, 1) if title_matches(named, c.title)), None)
            if choice is None:
                choice = await self.chat.extract_selection(message, found)
            if choice is not None:
                candidate = found[choice - 1]
                try:
                    event, _ = await self.events.store_discovered(candidate, state["user"]["id"])
                except PyMongoError as exc:
                    logger.error("Storing %r failed for user %s: %s", candidate.title, state["user"]["id"], exc)
                    return {"reply": f"I couldn't save **{candidate.title}** right now. Please try again."}
                context.found_events_for_registration = []
                context.remember_event(event.id)
                return event
            if not context.last_event_ids:
                return {"reply": f"Please reply with a number between 1 and {len(found)} to choose an event."}

        if not context.last_event_ids:
            return None
        in_focus = [e for e in [await self.events.get_event(i) for i in context.last_event_ids] if e]
        if not in_focus:
            return None
        if named:
            for event in in_focus:
                if title_matches(named, event.title):
                    return event
        choice = parse_selection(message, len(in_focus))
        if choice is not None:
            return in_focus[choice - 1]
        return in_focus[0]
