import logging
import re
from typing import List, Optional, Sequence, Tuple

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate

from eventchat.agents.chat_agent.confirmation import (
    EDIT, PROCEED, UNCLEAR, Decision, classify_confirmation, is_refusal, safety_net,
)
from eventchat.agents.chat_agent.suggestions import clean_suggestions
from eventchat.agents.llm import parse_json_array, run_prompt
from eventchat.schemas.event_schema import EventCandidate
from eventchat.utils.config import AI_TIMEOUT_SECONDS, AI_SHORT_TIMEOUT_SECONDS
from eventchat.utils.text import strip_restricted_fields, truncate

logger = logging.getLogger(__name__)

DOMAIN_LOCK_MESSAGE = (
    "I am designed exclusively to assist with event discovery, registration, and event-related "
    "actions on this platform. Please let me know how I can assist you with an event."
)
TECHNICAL_DIFFICULTIES = "I'm experiencing technical difficulties. Please try again shortly."

REPLY_HISTORY_TURNS = 2
CONFIRMATION_HISTORY_TURNS = 3

# --- 1. The persona prompt ---
EVENT_ASSISTANT_SYSTEM_PROMPT = f"""
You are the assistant of an event platform. You help users discover events, create events,
register for events and set reminders. Be brief, friendly and concrete.

Rules:
1. Only discuss events and actions on this platform. If the user asks about anything else, reply with
   exactly this sentence and nothing more: "{DOMAIN_LOCK_MESSAGE}"
2. Never invent event names, dates, times, venues or prices. If you do not know, say so.
3. Do not claim that an event was created, registered or reminded unless the context says so.
"""

CONFIRMATION_SYSTEM_PROMPT = """The assistant showed the user a draft of the event "{title}" and asked whether
they want to edit anything or proceed with creating it. Classify the user's reply.
Answer with exactly one word: proceed, edit, or unclear.
Saying "no" to editing means proceed."""

DISAMBIGUATION_SYSTEM_PROMPT = """An event assistant is in the middle of a task. Context: {context}
Decide what the user's new message is doing. Answer with exactly one word:
discovery (continuing or refining an event search), create (continuing event creation),
registration, reminder, or general (none of these)."""

SELECTION_SYSTEM_PROMPT = """The user was shown this numbered list of events:
{options}
Which one did they choose? Answer with only the number, or 0 if the message does not choose one."""

SNIPPETS_SYSTEM_PROMPT = """Summarize what these web results say about the event "{title}" as up to five short
bullet points. Describe what the event is. Do NOT mention dates, times, days, months, venues, addresses,
locations, prices, modes or categories. Do not add facts that are not in the results."""

SUGGESTIONS_SYSTEM_PROMPT = """You write quick-reply buttons for an event assistant chat.
Last intent: {intent}. Context: {context}
Return ONLY a JSON array of up to 3 short follow-up actions the user is likely to want next
(each under 40 characters), e.g. ["Register for Tech Summit", "Find similar events"]."""

_ORDINALS = {"first": 1, "1st": 1, "second": 2, "2nd": 2, "third": 3, "3rd": 3,
             "fourth": 4, "4th": 4, "fifth": 5, "5th": 5}


def is_domain_lock(text: str) -> bool:
    lowered = (text or "").strip().lower()
    return lowered == DOMAIN_LOCK_MESSAGE.lower() or "i am designed exclusively" in lowered


def parse_selection(message: str, count: int) -> Optional[int]:
    """1-based choice from "2", "number 3", "the second one"; None if absent or out of range."""
    text = (message or "").lower()
    for match in re.finditer(r"\b(\d{1,2})(?:st|nd|rd|th)?\b", text):
        value = int(match.group(1))
        if 1 <= value <= count:
            return value
    for word, value in _ORDINALS.items():
        if re.search(rf"\b{word}\b", text) and value <= count:
            return value
    if re.search(r"\blast\b", text) and count:
        return count
    return None


class ChatAgent:
    """Free-text side of the assistant: replies, confirmation decisions, selections, suggestions."""

    def __init__(self, llm: Optional[BaseChatModel] = None, classifier_llm: Optional[BaseChatModel] = None,
                 timeout: float = AI_TIMEOUT_SECONDS, short_timeout: float = AI_SHORT_TIMEOUT_SECONDS):
        self.llm = llm
        self.classifier_llm = classifier_llm or llm
        self.timeout = timeout
        self.short_timeout = short_timeout
        self.reply_prompt = ChatPromptTemplate.from_messages([
            ("system", EVENT_ASSISTANT_SYSTEM_PROMPT),
            ("placeholder", "{chat_history}"),
            ("human", "Context: {context}\n\n{user_query}"),
        ])
        self.confirmation_prompt = ChatPromptTemplate.from_messages([
            ("system", CONFIRMATION_SYSTEM_PROMPT),
            ("placeholder", "{chat_history}"),
            ("human", "{user_query}"),
        ])
        self.disambiguation_prompt = ChatPromptTemplate.from_messages([
            ("system", DISAMBIGUATION_SYSTEM_PROMPT),
            ("placeholder", "{chat_history}"),
            ("human", "{user_query}"),
        ])
        self.selection_prompt = ChatPromptTemplate.from_messages([
            ("system", SELECTION_SYSTEM_PROMPT),
            ("human", "{user_query}"),
        ])
        self.snippets_prompt = ChatPromptTemplate.from_messages([
            ("system", SNIPPETS_SYSTEM_PROMPT),
            ("human", "{results}"),
        ])
        self.suggestions_prompt = ChatPromptTemplate.from_messages([
            ("system", SUGGESTIONS_SYSTEM_PROMPT),
            ("human", "Assistant reply:\n{reply}"),
        ])

    async def generate_reply(self, message: str, history: Sequence[Tuple[str, str]] = (),
                             context_summary: str = "none") -> str:
        text = await run_prompt(self.llm, self.reply_prompt, {
            "chat_history": list(history)[-REPLY_HISTORY_TURNS:],
            "context": context_summary,
            "user_query": message,
        }, self.timeout, "generate_reply")
        if text is None:
            return TECHNICAL_DIFFICULTIES
        if is_domain_lock(text):
            return DOMAIN_LOCK_MESSAGE
        return text

    async def decide_confirmation(self, message: str, title: str,
                                  history: Sequence[Tuple[str, str]] = ()) -> Decision:
        """Token rules first, then a forced AI choice, then the negative-token safety net."""
        decision = classify_confirmation(message)
        if decision != UNCLEAR:
            return decision
        text = await run_prompt(self.classifier_llm, self.confirmation_prompt, {
            "title": title,
            "chat_history": list(history)[-CONFIRMATION_HISTORY_TURNS:],
            "user_query": message,
        }, self.short_timeout, "classify_confirmation")
        answer = (text or "").strip().lower()
        if answer.startswith(PROCEED) and not is_refusal(message):
            return PROCEED
        if answer.startswith(EDIT):
            return EDIT
        return safety_net(message)

    async def disambiguate_intent(self, message: str, context_summary: str,
                                  history: Sequence[Tuple[str, str]] = ()) -> str:
        text = await run_prompt(self.classifier_llm, self.disambiguation_prompt, {
            "context": context_summary,
            "chat_history": list(history)[-REPLY_HISTORY_TURNS:],
            "user_query": message,
        }, self.short_timeout, "disambiguate_intent")
        answer = re.sub(r"[^a-z]", "", (text or "").lower())
        for intent in ("discovery", "create", "registration", "reminder"):
            if answer.startswith(intent):
                return intent
        return "general"

    async def extract_selection(self, message: str, options: List[EventCandidate]) -> Optional[int]:
        if not options:
            return None
        choice = parse_selection(message, len(options))
        if choice is not None:
            return choice
        listing = "\n".join(f"{i}. {o.title}" for i, o in enumerate(options, 1))
        text = await run_prompt(self.classifier_llm, self.selection_prompt,
                                {"options": listing, "user_query": message},
                                self.short_timeout, "extract_selection")
        match = re.search(r"\d+", text or "")
        if not match:
            return None
        value = int(match.group(0))
        return value if 1 <= value <= len(options) else None

    async def summarize_snippets(self, title: str, results: List[EventCandidate]) -> str:
        """Bullet summary of the evidence with every date/time/location mention removed."""
        if not results:
            return ""
        listing = "\n".join(f"- {r.title}: {r.snippet or ''}" for r in results)
        text = await run_prompt(self.llm, self.snippets_prompt, {"title": title, "results": listing},
                                self.timeout, "summarize_snippets")
        if text is None:
            text = "\n".join(f"- {truncate(r.snippet or r.title, 200)}" for r in results)
        return strip_restricted_fields(text)

    async def suggest(self, intent: str, reply: str, context_summary: str) -> List[str]:
        text = await run_prompt(self.classifier_llm, self.suggestions_prompt, {
            "intent": intent,
            "context": context_summary,
            "reply": truncate(reply, 1500),
        }, self.short_timeout, "suggest")
        return clean_suggestions(parse_json_array(text))
