import logging
from typing import List, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate

from eventchat.agents.llm import parse_json_array, run_prompt
from eventchat.schemas.event_schema import EventCandidate
from eventchat.utils.config import AI_TIMEOUT_SECONDS
from eventchat.utils.text import truncate

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 15
MIN_TITLE_LENGTH = 3

VALIDATOR_SYSTEM_PROMPT = """You check web search results for an event platform.
For each numbered result decide whether it is a real event a person could attend or register for
(conference, meetup, festival, concert, workshop, exhibition, match, webinar...).
Exclude articles, guides, listicles, "how to" pages, tools, software, templates and general websites.
When unsure, INCLUDE the result.
Reply with ONLY a JSON array of the numbers to keep, e.g. [1, 3, 4]. Reply [] if none qualify."""


def _is_tbd(location: Optional[str]) -> bool:
    return bool(location) and location.strip().lower() in ("tbd", "location tbd")


class EventValidator:
    """Keeps search results that look like attendable events.

    One batch AI call decides; if it fails or yields nothing usable every candidate with a
    real title is kept. Candidates whose location is literally "TBD" are always dropped.
    """

    def __init__(self, llm: Optional[BaseChatModel] = None, timeout: float = AI_TIMEOUT_SECONDS):
        self.llm = llm
        self.timeout = timeout
        self.prompt = ChatPromptTemplate.from_messages([
            ("system", VALIDATOR_SYSTEM_PROMPT),
            ("human", "{results}"),
        ])

    async def validate(self, candidates: List[EventCandidate]) -> List[EventCandidate]:
        batch = candidates[:MAX_CANDIDATES]
        if not batch:
            return []
        indices = await self._classify(batch)
        if indices:
            kept = [batch[i - 1] for i in indices]
        else:
            logger.info("Validator fallback: keeping every titled candidate (%d)", len(batch))
            kept = [c for c in batch if len(c.title.strip()) > MIN_TITLE_LENGTH]
        return [c for c in kept if not _is_tbd(c.location)]

    async def _classify(self, batch: List[EventCandidate]) -> List[int]:
        listing = "\n".join(
            f"{i}. {c.title}\n   URL: {c.link or '-'}\n   Location: {c.location or '-'}\n"
            f"   {truncate(c.snippet, 200)}"
            for i, c in enumerate(batch, 1)
        )
        text = await run_prompt(self.llm, self.prompt, {"results": listing}, self.timeout, "validate_events")
        values = parse_json_array(text)
        if not values:
            return []
        indices = []
        for value in values:
            try:
                index = int(value)
            except (TypeError, ValueError):
                continue
            if 1 <= index <= len(batch) and index not in indices:
                indices.append(index)
        return indices
