"""
Event creation dialog.

    (no title)            -> AwaitingTitle: ask for the event name
    title, no evidence    -> search once for the title, extract web facts, show the draft
    draft shown           -> AwaitingConfirmation: the next message is a proceed/edit answer
      proceed             -> persist {title, start_date?, location?}, clear the draft
      edit                -> AwaitingEdit: next message carries the new details, draft is rebuilt
      cancel              -> clear the draft

The draft card only ever shows the event name, web snippets and source links. Date, time and
location stay internal until the event is stored, and are never filled with placeholders.
"""
import asyncio
import logging
from typing import Optional

from pymongo.errors import PyMongoError

from eventchat.agents.chat_agent.chat_agent import ChatAgent
from eventchat.agents.chat_agent.confirmation import CANCEL, EDIT, PROCEED, is_cancellation
from eventchat.agents.extraction_agent.extraction_agent import ExtractionAgent
from eventchat.agents.search_agent.search_agent import SearchClient
from eventchat.schemas.dialog_schema import (
    AwaitingConfirmation, AwaitingEdit, AwaitingTitle, CreationDraft, IntentExtraction,
)
from eventchat.schemas.event_schema import EventCreate
from eventchat.schemas.user_schema import UserLocation
from eventchat.utils.dates import parse_date, parse_time
from eventchat.utils.event_store import EventStore
from eventchat.utils.text import clean_value, normalize_title
from eventchat.workflow.app_state import TurnState

logger = logging.getLogger(__name__)

SNIPPETS_SHOWN = 5
LINKS_SHOWN = 5
MAX_UNCLEAR_REPLIES = 2
MAX_TITLE_CHARS = 120

ASK_TITLE = "Sure, let's create an event. What is the name of the event?"
ASK_EDIT = ("What would you like to change? You can give me a new date, time or location "
            "(for example \"March 5 at 6 PM in Berlin\").")
ASK_CLARIFY = ("Sorry, I didn't catch that. Reply \"yes\" to create **{title}** as shown, "
               "\"edit\" to change something, or \"cancel\" to discard it.")
DRAFT_RESET = ("I couldn't tell whether to create **{title}**, so I've discarded the draft. "
               "Just ask me to create it again whenever you're ready.")
DRAFT_CANCELLED = "Okay, I've discarded the draft for **{title}**."
SAVE_FAILED = "I couldn't save **{title}** right now. Reply \"yes\" to try again."


def links_section(draft: CreationDraft) -> str:
    return "\n".join(f"- [{r.title}]({r.link})" for r in draft.top_results(LINKS_SHOWN) if r.link)


def render_card(draft: CreationDraft, footer: str) -> str:
    """Event card from the whitelisted fields only: name, snippets, links."""
    parts = [f"**{draft.title}**"]
    if draft.snippets_section:
        parts.append(draft.snippets_section)
    else:
        parts.append("I couldn't find details about this event online.")
    if draft.links_section:
        parts.append("Sources:\n" + draft.links_section)
    parts.append(footer)
    return "\n\n".join(parts)


def render_draft(draft: CreationDraft) -> str:
    return render_card(draft, "Would you like to edit anything, or shall I proceed with creating this event?")


def render_created(draft: CreationDraft) -> str:
    return render_card(draft, "Your event has been created and added to your events.")


def resolve_start(draft: CreationDraft):
    """User date first, then web date; time only adjusts a real date. No date stays None."""
    start = None
    for date_text in (draft.user_date, draft.web_date):
        start = parse_date(date_text)
        if start is not None:
            break
    if start is None:
        return None
    for time_text in (draft.user_time, draft.web_time):
        hm = parse_time(time_text)
        if hm:
            return start.replace(hour=hm[0], minute=hm[1])
    return start


def resolve_location(draft: CreationDraft, user_location: Optional[UserLocation]) -> Optional[str]:
    location = clean_value(draft.user_location) or clean_value(draft.web_location)
    if location:
        return location
    if user_location is not None:
        return clean_value(user_location.label())
    return None


class CreationFlow:
    def __init__(self, chat: ChatAgent, extraction: ExtractionAgent, search: SearchClient, events: EventStore):
        self.chat = chat
        self.extraction = extraction
        self.search = search
        self.events = events

    async def run(self, state: TurnState) -> dict:
        context = state["context"]
        creation = context.creation

        if isinstance(creation, AwaitingConfirmation):
            return await self._confirm(state, creation)

        if creation is not None and is_cancellation(state["message"]):
            draft = context.draft
            context.clear_creation()
            if draft is None:
                return {"reply": "Okay, I won't create an event."}
            return {"reply": DRAFT_CANCELLED.format(title=draft.title)}

        extraction: IntentExtraction = state.get("extraction") or IntentExtraction(intent="create")
        prior = creation.draft if isinstance(creation, AwaitingEdit) else None
        title = extraction.event_title or (prior.title if prior else None)
        if not title and isinstance(creation, AwaitingTitle):
            # The previous turn asked for the name, so a short bare answer is the name.
            answer = clean_value(state["message"].strip().strip("\"'"))
            if answer and len(answer) <= MAX_TITLE_CHARS:
                title = answer
        if not title:
            context.creation = AwaitingTitle()
            return {"reply": ASK_TITLE}

        draft = await self._build_draft(title, extraction, prior)
        context.creation = AwaitingConfirmation(draft=draft)
        return {"reply": render_draft(draft), "event_data": {"title": draft.title, "stage": "draft"}}

    async def _build_draft(self, title: str, extraction: IntentExtraction,
                           prior: Optional[CreationDraft]) -> CreationDraft:
        if prior is not None and normalize_title(prior.title) == normalize_title(title):
            draft = prior.model_copy(deep=True)
        else:
            # One search per title; the evidence is cached on the draft from here on.
            evidence = await self.search.search_event_details(title)
            draft = CreationDraft(title=title, evidence=evidence)

        if extraction.date:
            draft.user_date = extraction.date
        if extraction.time:
            draft.user_time = extraction.time
        if extraction.location:
            draft.user_location = extraction.location

        if not draft.web_extracted:
            # Independent read-only calls over the same evidence.
            web, snippets = await asyncio.gather(
                self.extraction.extract_web_details(title, draft.evidence),
                self.chat.summarize_snippets(title, draft.top_results(SNIPPETS_SHOWN)),
            )
            draft.web_date, draft.web_time, draft.web_location = web.date, web.time, web.location
            draft.snippets_section = snippets
            draft.links_section = links_section(draft)
            draft.web_extracted = True
        draft.shown_event_card = True
        return draft

    async def _confirm(self, state: TurnState, creation: AwaitingConfirmation) -> dict:
        context = state["context"]
        draft = creation.draft
        decision = await self.chat.decide_confirmation(state["message"], draft.title, state.get("history", []))
        logger.info("Draft '%s' confirmation decision: %s", draft.title, decision)

        if decision == PROCEED:
            return await self._finalize(state, draft)
        if decision == EDIT:
            context.creation = AwaitingEdit(draft=draft)
            return {"reply": ASK_EDIT}
        if decision == CANCEL:
            context.clear_creation()
            return {"reply": DRAFT_CANCELLED.format(title=draft.title)}

        unclear = creation.unclear_replies + 1
        if unclear >= MAX_UNCLEAR_REPLIES:
            logger.warning("Draft '%s' discarded after %d unclear replies", draft.title, unclear)
            context.clear_creation()
            return {"reply": DRAFT_RESET.format(title=draft.title)}
        context.creation = AwaitingConfirmation(draft=draft, unclear_replies=unclear)
        return {"reply": ASK_CLARIFY.format(title=draft.title)}

    async def _finalize(self, state: TurnState, draft: CreationDraft) -> dict:
        context = state["context"]
        user = state["user"]
        data = EventCreate(
            title=draft.title,
            start_date=resolve_start(draft),
            location=resolve_location(draft, state.get("user_location")),
            source="user_created",
        )
        try:
            event, created = await self.events.create_event(data, user["id"])
        except PyMongoError as exc:
            logger.error("Saving event '%s' failed for user %s: %s", draft.title, user["id"], exc)
            context.creation = AwaitingConfirmation(draft=draft)
            return {"reply": SAVE_FAILED.format(title=draft.title)}

        context.clear_creation()
        context.remember_event(event.id)
        reply = render_created(draft) if created else f"**{event.title}** is already in your events."
        return {
            "reply": reply,
            "refresh_events": True,
            "event_titles": [event.title],
            "event_data": {"id": event.id, "title": event.title, "action": "created" if created else "existing"},
        }

