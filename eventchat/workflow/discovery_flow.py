import logging
from typing import List, Optional, Tuple

from pymongo.errors import PyMongoError

from eventchat.agents.search_agent.search_agent import SearchClient
from eventchat.agents.validator_agent.event_validator import EventValidator, MAX_CANDIDATES
from eventchat.schemas.event_schema import EventCandidate
from eventchat.utils.event_store import EventStore
from eventchat.utils.text import dedupe_by_title_and_link, truncate
from eventchat.workflow.app_state import TurnState

logger = logging.getLogger(__name__)

MAX_RESULTS = 5
SNIPPET_CHARS = 200


def render_results(found: List[Tuple[EventCandidate, str]], location: Optional[str]) -> str:
    """Result list built from title, snippet and link only."""
    where = f" in {location}" if location else ""
    lines = [f"Here {'is' if len(found) == 1 else 'are'} {len(found)} event{'s' if len(found) != 1 else ''} "
             f"I found{where}:", ""]
    for i, (candidate, _) in enumerate(found, 1):
        lines.append(f"{i}. **{candidate.title}**")
        if candidate.snippet:
            lines.append(f"   {truncate(candidate.snippet, SNIPPET_CHARS)}")
        if candidate.link:
            lines.append(f"   {candidate.link}")
    lines += ["", "Say \"register for 1\" to sign up, or ask me to remind you about one."]
    return "\n".join(lines)


def render_nothing_found(location: Optional[str]) -> str:
    where = f" in {location}" if location else ""
    return (f"I couldn't find upcoming events{where} matching that. "
            "Try a different category, place or date.")


class DiscoveryFlow:
    def __init__(self, search: SearchClient, validator: EventValidator, events: EventStore):
        self.search = search
        self.validator = validator
        self.events = events

    async def run(self, state: TurnState) -> dict:
        context = state["context"]
        extraction = state["extraction"]
        user_location = state.get("user_location")
        message = state["message"]

        location = extraction.location
        location_based = False
        if not location and extraction.use_user_location and user_location is not None:
            location = user_location.label()
            location_based = location is not None

        query = state.get("search_query") or message
        results = await self.search.search_events(query, location=location, category=extraction.category,
                                                  event_date=extraction.date)
        candidates = dedupe_by_title_and_link(results)
        validated = await self.validator.validate(candidates[:MAX_CANDIDATES])
        kept = validated[:MAX_RESULTS]

        context.last_search_query = query
        context.found_events_for_registration = []
        if not kept:
            return {"reply": render_nothing_found(location), "event_titles": [], "location_based": location_based}

        found: List[Tuple[EventCandidate, str]] = []
        for candidate in kept:
            try:
                event, _ = await self.events.store_discovered(candidate, state["user"]["id"])
            except PyMongoError as exc:
                logger.error("Storing discovered event '%s' failed: %s", candidate.title, exc)
                continue
            found.append((candidate, event.id))

        if not found:
            return {"reply": render_nothing_found(location), "event_titles": [], "location_based": location_based}

        context.last_event_ids = [event_id for _, event_id in found][:MAX_RESULTS]
        return {
            "reply": render_results(found, location),
            "refresh_events": True,
            "event_titles": [c.title for c, _ in found],
            "location_based": location_based,
            "event_data": {"events": [{"id": event_id, "title": c.title, "link": c.link} for c, event_id in found]},
        }
