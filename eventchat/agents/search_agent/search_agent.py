"""
Web search for events: SerpAPI first, Serper as fallback.

Results are reduced to (title, snippet, link) and cleaned of obvious non-event pages.
A provider that is unconfigured, slow, or failing is skipped; when both fail the
caller gets an empty list.
"""
import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from eventchat.schemas.event_schema import EventCandidate
from eventchat.utils.config import SERPAPI_API_KEY, SERPER_API_KEY, SEARCH_TIMEOUT_SECONDS
from eventchat.utils.retry import get_json_with_retry, post_json_with_retry
from eventchat.utils.text import normalize_title, normalize_url

logger = logging.getLogger(__name__)

SERPAPI_URL = "https://serpapi.com/search"
SERPER_URL = "https://google.serper.dev/search"

EVENT_RESULTS = 20
DETAIL_RESULTS = 10
MIN_TITLE_CHARS = 3

EXCLUDED_SITES = ("calendly.com", "doodle.com", "translate.google.com", "schema.org",
                  "medium.com", "wikipedia.org", "reddit.com")
EXCLUDED_PHRASES = ("how to", "best practices", "guide to", "tips for", "ideas for")
EXCLUDED_URL_WORDS = ("blog", "article", "wiki", "guide")
QUERY_EXCLUSIONS = " ".join(
    [f"-site:{s}" for s in EXCLUDED_SITES]
    + [f'-"{p}"' for p in EXCLUDED_PHRASES]
    + [f"-inurl:{w}" for w in EXCLUDED_URL_WORDS]
)

_NOISE_TITLE = re.compile(
    r"\bhow to\b|\bguide\b|\btips\b|\bbest practices\b|\bideas for\b|\btutorial\b|"
    r"\btop \d+\b.*\b(tools?|apps?|software|platforms?)\b",
    re.IGNORECASE,
)


def is_noise_title(title: str) -> bool:
    return bool(_NOISE_TITLE.search(title or ""))


def build_event_query(query: str, location: Optional[str] = None, category: Optional[str] = None,
                      event_date: Optional[str] = None, today: Optional[date] = None) -> str:
    subject = category or query
    if location:
        text = f"{subject} events in {location}"
    elif category:
        text = f"{category} events"
    else:
        text = query
    year = (today or date.today()).year
    text += f" {event_date}" if event_date else f" {year} upcoming"
    return f"{text} tickets registration {QUERY_EXCLUSIONS}"


class SearchClient:
    def __init__(self, serpapi_key: Optional[str] = SERPAPI_API_KEY, serper_key: Optional[str] = SERPER_API_KEY,
                 timeout: float = SEARCH_TIMEOUT_SECONDS, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.serpapi_key = serpapi_key
        self.serper_key = serper_key
        self.timeout = timeout
        self.transport = transport

    async def search(self, query: str, num: int = EVENT_RESULTS) -> List[EventCandidate]:
        """Raw provider results with noise removed and in-batch duplicates dropped."""
        raw = await self._provider_results(query, num)
        return self._clean(raw)

    async def search_events(self, query: str, location: Optional[str] = None, category: Optional[str] = None,
                            event_date: Optional[str] = None) -> List[EventCandidate]:
        return await self.search(build_event_query(query, location, category, event_date))

    async def search_event_details(self, title: str) -> List[EventCandidate]:
        """Evidence about one named event: three phrasings, merged by link, top 10."""
        year = date.today().year
        queries = [
            f"{title} event date time location",
            f"{title} festival celebration",
            f"{title} {year} {year + 1}",
        ]
        merged: List[EventCandidate] = []
        seen_links = set()
        for query in queries:
            for item in self._clean(await self._provider_results(query, DETAIL_RESULTS), drop_noise=False):
                link = normalize_url(item.link)
                if link and link in seen_links:
                    continue
                if link:
                    seen_links.add(link)
                merged.append(item)
        return merged[:DETAIL_RESULTS]

    async def _provider_results(self, query: str, num: int) -> List[Dict[str, Any]]:
        if not self.serpapi_key and not self.serper_key:
            logger.warning("No search provider configured (SERPAPI_API_KEY / SERPER_API_KEY)")
            return []
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            if self.serpapi_key:
                try:
                    data = await get_json_with_retry(client, SERPAPI_URL, params={
                        "q": query, "api_key": self.serpapi_key, "engine": "google", "num": num,
                    })
                    results = data.get("organic_results") or []
                    if results:
                        return results
                    logger.info("SerpAPI returned no results, trying Serper")
                except (httpx.HTTPError, ValueError) as exc:
                    logger.warning("SerpAPI search failed: %s: %s", type(exc).__name__, exc)
            if self.serper_key:
                try:
                    data = await post_json_with_retry(client, SERPER_URL, {"q": query, "num": num},
                                                      headers={"X-API-KEY": self.serper_key})
                    return data.get("organic") or []
                except (httpx.HTTPError, ValueError) as exc:
                    logger.warning("Serper search failed: %s: %s", type(exc).__name__, exc)
        return []

    @staticmethod
    def _clean(raw: List[Dict[str, Any]], drop_noise: bool = True) -> List[EventCandidate]:
        results: List[EventCandidate] = []
        seen_titles, seen_links = set(), set()
        for item in raw:
            title = (item.get("title") or "").strip()
            if len(title) < MIN_TITLE_CHARS:
                continue
            if drop_noise and is_noise_title(title):
                continue
            link = item.get("link")
            location = item.get("location")
            key_title, key_link = normalize_title(title), normalize_url(link)
            if key_title in seen_titles or (key_link and key_link in seen_links):
                continue
            seen_titles.add(key_title)
            if key_link:
                seen_links.add(key_link)
            results.append(EventCandidate(
                title=title,
                link=link,
                snippet=(item.get("snippet") or "").strip() or None,
                location=location.strip() or None if isinstance(location, str) else None,
            ))
        return results
