import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_openai import ChatOpenAI

from eventchat.utils.config import LLM_API_KEY, LLM_BASE_URL, LLM_MODEL, AI_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


def create_llm(temperature: float = 0.1, max_tokens: Optional[int] = None,
               timeout: float = AI_TIMEOUT_SECONDS) -> Optional[BaseChatModel]:
    """Chat model for the configured OpenAI-compatible endpoint, or None when no key is set."""
    if not LLM_API_KEY:
        logger.warning("LLM_API_KEY not set; AI calls will use their fallbacks.")
        return None
    return ChatOpenAI(
        model=LLM_MODEL,
        temperature=temperature,
        max_tokens=max_tokens,
        api_key=LLM_API_KEY,
        base_url=LLM_BASE_URL,
        timeout=timeout,
        max_retries=1,
    )


async def run_prompt(llm: Optional[BaseChatModel], prompt: ChatPromptTemplate, inputs: Dict[str, Any],
                     timeout: float, label: str) -> Optional[str]:
    """Invoke ``prompt | llm`` with a hard timeout. Returns the text, or None on any failure."""
    if llm is None:
        return None
    chain = prompt | llm | StrOutputParser()
    try:
        text = await asyncio.wait_for(chain.ainvoke(inputs), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("LLM call '%s' timed out after %.0fs", label, timeout)
        return None
    except Exception as exc:  # provider SDKs raise their own error types
        logger.warning("LLM call '%s' failed: %s: %s", label, type(exc).__name__, exc)
        return None
    return (text or "").strip() or None


def parse_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    if not text:
        return None
    match = _JSON_OBJECT.search(text)
    if not match:
        return None
    try:
        value = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def parse_json_array(text: Optional[str]) -> Optional[List[Any]]:
    if not text:
        return None
    match = _JSON_ARRAY.search(text)
    if not match:
        return None
    try:
        value = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, list) else None
