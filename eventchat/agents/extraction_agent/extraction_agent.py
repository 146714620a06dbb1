"""
Structured extraction over user messages and web evidence.

Every method returns a validated pydantic model and degrades to an "unknown" model
(all fields None, intent "general") when the LLM is missing, slow, or returns
something that is not the requested JSON.
"""
import json
import logging
from datetime import date
from typing import List, Optional, Sequence, Tuple

from langchain_core.exceptions import OutputParserException
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.prompts import ChatPromptTemplate
from pydantic import ValidationError

from eventchat.agents.llm import parse_json_object, run_prompt
from eventchat.schemas.dialog_schema import (
    IntentExtraction, ParsedDateTime, RegistrantDetails, WebEventDetails,
)
from eventchat.schemas.event_schema import EventCandidate
from eventchat.utils.config import AI_TIMEOUT_SECONDS, AI_SHORT_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

INTENT_HISTORY_TURNS = 5
WEB_EVIDENCE_RESULTS = 10

INTENT_SYSTEM_PROMPT = """You read messages sent to an event assistant and extract structured data.
Today is {today}. Conversation context: {context}

Reply with ONLY a JSON object with exactly these keys:
{{"intent": "discovery" | "registration" | "reminder" | "general" | "create",
  "eventTitle": string or null,
  "date": "YYYY-MM-DD" or null,
  "time": "HH:MM" (24h) or null,
  "location": string or null,
  "category": string or null,
  "useUserLocation": true | false}}

Rules:
- "create": the user wants to create, add, host or organize an event. eventTitle is the event name.
- "discovery": the user wants to find, search, browse or see events.
- "registration": the user wants to register, sign up, book or attend (eventTitle if they name one).
- "reminder": the user wants to be reminded about an event.
- "general": anything else, including greetings and unrelated questions.
- useUserLocation is true only for location-relative phrasing ("near me", "around here", "nearby").
- Never guess values the user did not give; use null."""

WEB_DETAILS_SYSTEM_PROMPT = """You extract event facts from web search results.
Reply with ONLY a JSON object: {{"date": "YYYY-MM-DD" or null, "time": "HH:MM" or null, "location": string or null}}
Use a value only if the results clearly state it for this event. For a date range give the first day;
for a time range give the start time. Never invent values; use null when unsure."""

DATETIME_SYSTEM_PROMPT = """Today is {today}. Read the date and time the user mentions.
Reply with ONLY a JSON object: {{"date": "YYYY-MM-DD" or null, "time": "HH:MM" or null}}
Resolve relative dates ("tomorrow", "next Friday") against today. For ranges take the first date
and the start time. Hours are 0-23, minutes 0-59. Use null for anything not mentioned."""

REGISTRANT_SYSTEM_PROMPT = """Extract the attendee name and email address the user provides for an event registration.
Reply with ONLY a JSON object: {{"name": string or null, "email": string or null}}
Use null for anything the message does not contain."""


class ExtractionAgent:
    def __init__(self, llm: Optional[BaseChatModel] = None, timeout: float = AI_TIMEOUT_SECONDS,
                 short_timeout: float = AI_SHORT_TIMEOUT_SECONDS):
        self.llm = llm
        self.timeout = timeout
        self.short_timeout = short_timeout
        self.intent_parser = PydanticOutputParser(pydantic_object=IntentExtraction)
        self.intent_prompt = ChatPromptTemplate.from_messages([
            ("system", INTENT_SYSTEM_PROMPT),
            ("placeholder", "{chat_history}"),
            ("human", "{user_query}"),
        ])
        self.web_prompt = ChatPromptTemplate.from_messages([
            ("system", WEB_DETAILS_SYSTEM_PROMPT),
            ("human", "Event: {title}\n\nSearch results:\n{results}"),
        ])
        self.datetime_prompt = ChatPromptTemplate.from_messages([
            ("system", DATETIME_SYSTEM_PROMPT),
            ("human", "{user_query}"),
        ])
        self.registrant_prompt = ChatPromptTemplate.from_messages([
            ("system", REGISTRANT_SYSTEM_PROMPT),
            ("human", "{user_query}"),
        ])

    async def extract_intent(self, message: str, history: Sequence[Tuple[str, str]] = (),
                             context_summary: str = "none", today: Optional[date] = None) -> IntentExtraction:
        text = await run_prompt(self.llm, self.intent_prompt, {
            "today": (today or date.today()).isoformat(),
            "context": context_summary,
            "chat_history": list(history)[-INTENT_HISTORY_TURNS:],
            "user_query": message,
        }, self.timeout, "extract_intent")
        if text is None:
            return IntentExtraction()
        try:
            return self.intent_parser.parse(text)
        except OutputParserException:
            # Some models wrap the JSON in prose; take the first object if there is one.
            data = parse_json_object(text)
            if data is None:
                logger.info("Intent extraction returned no JSON; treating as general")
                return IntentExtraction()
            try:
                return IntentExtraction.model_validate(data)
            except ValidationError:
                return IntentExtraction()

    async def extract_web_details(self, title: str, results: List[EventCandidate]) -> WebEventDetails:
        if not results:
            return WebEventDetails()
        lines = [
            f"{i}. {r.title}\n   {r.snippet or ''}\n   {r.link or ''}"
            for i, r in enumerate(results[:WEB_EVIDENCE_RESULTS], 1)
        ]
        text = await run_prompt(self.llm, self.web_prompt, {"title": title, "results": "\n".join(lines)},
                                self.timeout, "extract_web_details")
        return self._validate(WebEventDetails, text)

    async def parse_datetime(self, message: str, today: Optional[date] = None) -> ParsedDateTime:
        text = await run_prompt(self.llm, self.datetime_prompt, {
            "today": (today or date.today()).isoformat(),
            "user_query": message,
        }, self.short_timeout, "parse_datetime")
        return self._validate(ParsedDateTime, text)

    async def extract_registrant(self, message: str) -> RegistrantDetails:
        text = await run_prompt(self.llm, self.registrant_prompt, {"user_query": message},
                                self.short_timeout, "extract_registrant")
        return self._validate(RegistrantDetails, text)

    @staticmethod
    def _validate(model, text: Optional[str]):
        data = parse_json_object(text)
        if data is None:
            return model()
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            logger.info("Discarding malformed %s: %s", model.__name__, json.dumps(exc.errors()[:2], default=str))
            return model()
