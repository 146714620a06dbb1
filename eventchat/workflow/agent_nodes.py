# agent_nodes.py

import logging
from typing import Optional

from pymongo.errors import PyMongoError

from eventchat.agents.chat_agent.chat_agent import ChatAgent, parse_selection
from eventchat.agents.chat_agent.suggestions import fallback_suggestions
from eventchat.agents.extraction_agent.extraction_agent import ExtractionAgent
from eventchat.agents.location_agent.location_agent import LocationAgent
from eventchat.schemas.dialog_schema import AwaitingEdit, AwaitingTitle, IntentExtraction
from eventchat.schemas.user_schema import UserLocation
from eventchat.utils.user_store import UserStore
from eventchat.workflow.app_state import TurnState

logger = logging.getLogger(__name__)

# Intents that move the dialog out of a pending creation step
LEAVES_CREATION = ("discovery", "registration", "reminder")


class TurnNodes:
    """Routing and bookkeeping nodes shared by every turn: intent, location, general chat, suggestions."""

    def __init__(self, chat: ChatAgent, extraction: ExtractionAgent, location: LocationAgent, users: UserStore):
        self.chat = chat
        self.extraction = extraction
        self.location = location
        self.users = users

    async def resolve_intent(self, state: TurnState) -> dict:
        context = state["context"]
        message = state["message"]
        history = state.get("history", [])

        # A shown draft owns the next message; it is never re-read as a new request.
        if context.waiting_for_confirmation:
            return {"intent": "create", "extraction": IntentExtraction(intent="create"), "context": context}

        extraction = await self.extraction.extract_intent(message, history, context.summary())
        intent = extraction.intent

        if isinstance(context.creation, (AwaitingEdit, AwaitingTitle)):
            if intent in ("general", "create"):
                intent = "create"
            elif intent in LEAVES_CREATION:
                logger.info("Leaving pending event creation for intent '%s'", intent)
                context.clear_creation()

        found = context.found_events_for_registration
        if intent == "general" and found and parse_selection(message, len(found)) is not None:
            # A bare choice answers the pending registration list.
            intent = "registration"

        search_query: Optional[str] = None
        if intent == "general" and (context.last_search_query or context.creation is not None):
            intent = await self.chat.disambiguate_intent(message, context.summary(), history)
            logger.info("General message disambiguated to '%s'", intent)
            if intent == "discovery" and context.last_search_query:
                # Follow-up fragments refine the previous search.
                search_query = f"{context.last_search_query} {message}".strip()
            if intent != "create" and intent != "general" and context.creation is not None:
                context.clear_creation()

        return {"intent": intent, "extraction": extraction, "search_query": search_query, "context": context}

    async def resolve_location(self, state: TurnState) -> dict:
        user_id = state["user"]["id"]
        coords = state.get("coords")
        location: Optional[UserLocation] = None
        try:
            if coords is not None:
                location = await self.location.reverse_geocode(*coords)
                if location is not None:
                    await self.users.update_last_location(user_id, location)
            if location is None:
                location = await self.users.get_last_location(user_id)
        except PyMongoError as exc:
            logger.warning("User location lookup failed for %s: %s", user_id, exc)
        return {"user_location": location}

    async def general_reply(self, state: TurnState) -> dict:
        reply = await self.chat.generate_reply(state["message"], state.get("history", []),
                                               state["context"].summary())
        return {"reply": reply}

    async def suggest(self, state: TurnState) -> dict:
        intent = state.get("intent", "general")
        suggestions = await self.chat.suggest(intent, state.get("reply", ""), state["context"].summary())
        if not suggestions:
            suggestions = fallback_suggestions(
                intent,
                event_titles=state.get("event_titles", []),
                location_based=state.get("location_based", False),
                has_user_location=state.get("user_location") is not None,
            )
        return {"suggestions": suggestions}


def route_by_intent(state: TurnState) -> str:
    return {
        "create": "creation_flow",
        "discovery": "discovery_flow",
        "registration": "registration_flow",
        "reminder": "reminder_flow",
    }.get(state.get("intent"), "general_reply")
