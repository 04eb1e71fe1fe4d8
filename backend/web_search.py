"""
Web Search
==========
Tavily search client used to ground salary analysis in current market data.

    search = TavilySearch(api_key)
    search.salary_data("Backend Engineer", "Berlin, Germany", company="Acme")
    search.company_info("Acme")
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

import requests

from config import HTTP_TIMEOUT_SECONDS, TAVILY_API_KEY, TAVILY_SEARCH_URL, get_logger
from errors import UpstreamError

logger = get_logger(__name__)

PROVIDER = "tavily"

SALARY_DOMAINS = [
    "glassdoor.com",
    "salary.com",
    "payscale.com",
    "levels.fyi",
    "indeed.com",
    "linkedin.com",
    "comparably.com",
]

COMPANY_DOMAINS = [
    "glassdoor.com",
    "indeed.com",
    "comparably.com",
    "linkedin.com",
]


@dataclass
class SearchResult:
    title: str
    url: str
    content: str
    score: float = 0.0

    def to_dict(self) -> dict:
        return {"title": self.title, "url": self.url, "content": self.content, "score": self.score}


@dataclass
class SearchResponse:
    query: str
    answer: Optional[str] = None
    results: list[SearchResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "answer": self.answer,
            "results": [r.to_dict() for r in self.results],
        }


class TavilySearch:
    def __init__(
        self,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self.api_key = TAVILY_API_KEY if api_key is None else api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def search(
        self,
        query: str,
        max_results: int = 5,
        include_domains: Optional[list[str]] = None,
        search_depth: str = "advanced",
    ) -> SearchResponse:
        payload = {
            "api_key": self.api_key,
            "query": query,
            "search_depth": search_depth,
            "max_results": max_results,
            "include_domains": include_domains or [],
            "include_answer": True,
        }
        logger.info("Web search: %s", query[:100])
        try:
            r = self.session.post(TAVILY_SEARCH_URL, json=payload, timeout=self.timeout)
            r.raise_for_status()
            data = r.json()
        except requests.RequestException as e:
            raise UpstreamError(f"Web search failed: {e}", provider=PROVIDER) from e
        except ValueError as e:
            raise UpstreamError("Web search returned invalid JSON", provider=PROVIDER) from e

        results = [
            SearchResult(
                title=item.get("title", ""),
                url=item.get("url", ""),
                content=item.get("content", ""),
                score=float(item.get("score") or 0.0),
            )
            for item in data.get("results") or []
        ]
        logger.info("Web search returned %d results", len(results))
        return SearchResponse(query=data.get("query", query), answer=data.get("answer"), results=results)

    def salary_data(self, job_title: str, location: str, company: Optional[str] = None) -> SearchResponse:
        parts = [f'"{job_title}" salary {location} {date.today().year}']
        if company:
            parts.append(f'"{company}" compensation')
        parts.append("total compensation package benefits")
        return self.search(" ".join(parts), max_results=8, include_domains=SALARY_DOMAINS)

    def company_info(self, company: str) -> SearchResponse:
        query = f'"{company}" culture reviews benefits work-life balance employee reviews {date.today().year}'
        return self.search(query, max_results=6, include_domains=COMPANY_DOMAINS)
