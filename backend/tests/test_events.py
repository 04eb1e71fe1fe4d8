"""
Tests for AI task events, web search, query building and the salary analysis service.

Covers: task_events, web_search, query_builder, salary_analysis.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
import requests

from config import TAVILY_SEARCH_URL
from errors import UpstreamError
from location_resolver import LocationResolver
from net_income import NetIncomeCalculator
from query_builder import QueryBuilder
from salary_analysis import (
    ANALYSIS_KEY,
    DATE_KEY,
    SalaryAnalysisService,
    normalize_work_mode,
)
from task_events import (
    CACHED,
    COMPLETED,
    FAILED,
    MAX_FINISHED_PER_USER,
    NET_INCOME,
    PROCESSING,
    SALARY_ANALYSIS,
    TaskTracker,
)
from web_search import SALARY_DOMAINS, TavilySearch

SEARCH_PAYLOAD = {
    "query": "q",
    "answer": "Typical pay is 45-55k EUR",
    "results": [
        {"title": "Glassdoor", "url": "https://glassdoor.com/x", "content": "45k", "score": 0.9},
        {"title": "Levels", "url": "https://levels.fyi/y", "content": "52k", "score": "0.7"},
    ],
}


# ═══════════════════════════════════════════════════════════════════════════════
# TASK TRACKER
# ═══════════════════════════════════════════════════════════════════════════════


class TestTaskTracker:
    """Task lifecycle and per-user push updates."""

    def test_lifecycle(self):
        tracker = TaskTracker()
        task = tracker.start(1, SALARY_ANALYSIS, job_id=7, current_step="Resolving location")
        assert task.status == PROCESSING
        assert tracker.active_tasks(1) == [task]

        tracker.update(task.id, progress=150, current_step="Calculating")
        assert task.progress == 100, "progress is clamped to 0-100"

        tracker.complete(task.id, "Net income 2,258 EUR/month")
        assert task.status == COMPLETED
        assert task.completed_at is not None
        assert tracker.active_tasks(1) == []
        assert tracker.get_task(task.id).result_summary == "Net income 2,258 EUR/month"

    def test_fail_keeps_progress(self):
        tracker = TaskTracker()
        task = tracker.start(1, NET_INCOME)
        tracker.update(task.id, progress=60)
        tracker.fail(task.id, "rate outside range")
        assert (task.status, task.progress, task.error) == (FAILED, 60, "rate outside range")

    def test_mark_cached(self):
        tracker = TaskTracker()
        task = tracker.mark_cached(1, SALARY_ANALYSIS, job_id=3)
        assert task.status == CACHED
        assert task.progress == 100
        assert tracker.active_tasks(1) == []

    def test_unknown_task(self):
        with pytest.raises(KeyError):
            TaskTracker().update("missing", progress=10)

    def test_to_dict_is_camel_case(self):
        task = TaskTracker().start(1, SALARY_ANALYSIS, job_id=7)
        data = task.to_dict()
        assert data["jobId"] == 7
        assert data["type"] == SALARY_ANALYSIS
        assert "userId" not in data

    def test_finished_tasks_are_pruned(self):
        tracker = TaskTracker()
        for _ in range(MAX_FINISHED_PER_USER + 5):
            tracker.mark_cached(1, SALARY_ANALYSIS)
        assert len(tracker.recent_tasks(1, limit=1000)) == MAX_FINISHED_PER_USER


class TestSubscriptions:
    def test_subscriber_receives_own_updates_only(self):
        tracker = TaskTracker()
        with tracker.subscribe(1) as mine, tracker.subscribe(2) as theirs:
            task = tracker.start(1, NET_INCOME)
            event = mine.get(timeout=1)
            assert event["type"] == "task_update"
            assert event["task"]["id"] == task.id
            assert theirs.get(timeout=0.01) is None

    def test_close_unsubscribes(self):
        tracker = TaskTracker()
        with tracker.subscribe(1):
            assert tracker.subscriber_count(1) == 1
        assert tracker.subscriber_count(1) == 0

    def test_events_yield_none_on_keepalive(self):
        tracker = TaskTracker()
        sub = tracker.subscribe(1, keepalive=0.01)
        events = sub.events()
        assert next(events) is None
        tracker.start(1, NET_INCOME)
        assert next(events)["task"]["status"] == PROCESSING
        sub.close()
        assert list(events) == []


# ═══════════════════════════════════════════════════════════════════════════════
# WEB SEARCH
# ═══════════════════════════════════════════════════════════════════════════════


class TestTavilySearch:
    def test_salary_search_request(self, fake_session, fake_response):
        session = fake_session({TAVILY_SEARCH_URL: [fake_response(SEARCH_PAYLOAD)]})
        search = TavilySearch(api_key="key", session=session)
        response = search.salary_data("Backend Engineer", "Nancy, France", company="Acme")

        method, url, kwargs = session.calls[0]
        assert (method, url) == ("POST", TAVILY_SEARCH_URL)
        payload = kwargs["json"]
        assert payload["api_key"] == "key"
        assert payload["max_results"] == 8
        assert payload["include_domains"] == SALARY_DOMAINS
        assert '"Backend Engineer" salary Nancy, France' in payload["query"]
        assert '"Acme" compensation' in payload["query"]

        assert response.answer.startswith("Typical pay")
        assert [r.score for r in response.results] == [0.9, 0.7]

    def test_not_configured_without_key(self):
        assert not TavilySearch(api_key="").configured

    @pytest.mark.parametrize("answer", [
        requests.ConnectionError("down"),
        "http_error",
        "bad_json",
    ])
    def test_failures_raise_upstream_error(self, fake_session, fake_response, answer):
        if answer == "http_error":
            answer = fake_response({}, status_code=500)
        elif answer == "bad_json":
            answer = fake_response(ValueError("not json"))
        search = TavilySearch(api_key="key", session=fake_session({TAVILY_SEARCH_URL: [answer]}))
        with pytest.raises(UpstreamError) as exc:
            search.company_info("Acme")
        assert exc.value.provider == "tavily"


# ═══════════════════════════════════════════════════════════════════════════════
# QUERY BUILDER
# ═══════════════════════════════════════════════════════════════════════════════


class TestQueryBuilder:
    def test_filters_skip_empty_values(self):
        query, params = (
            QueryBuilder("SELECT * FROM jobs")
            .add_filter("user_id = ?", 1)
            .add_filter("status = ?", None)
            .add_filter("company = ?", "")
            .build()
        )
        assert query == "SELECT * FROM jobs WHERE 1=1 AND user_id = ?"
        assert params == [1]

    def test_search_across_columns(self):
        query, params = QueryBuilder("SELECT * FROM jobs").add_search(["title", "company"], " Backend ").build()
        assert "(LOWER(title) LIKE ? OR LOWER(company) LIKE ?)" in query
        assert params == ["%backend%", "%backend%"]

    def test_blank_search_skipped(self):
        query, params = QueryBuilder("SELECT * FROM jobs").add_search(["title"], "  ").build()
        assert query == "SELECT * FROM jobs"
        assert params == []

    def test_in_filter_order_and_limit(self):
        query, params = (
            QueryBuilder("SELECT * FROM jobs")
            .add_in_filter("status", ["saved", "applied"])
            .order_by("created_at DESC")
            .limit("5")
            .build()
        )
        assert query.endswith("AND status IN (?, ?) ORDER BY created_at DESC LIMIT 5")
        assert params == ["saved", "applied"]


# ═══════════════════════════════════════════════════════════════════════════════
# SALARY ANALYSIS SERVICE
# ═══════════════════════════════════════════════════════════════════════════════


class Clock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


class SameCurrencyConverter:
    def get_rate(self, src, dst):
        return 1.0 if src == dst else 1.1


@pytest.fixture
def stored_job(db):
    user = db.create_user("ada@example.com", current_location="Nancy", current_country="France")
    job = db.create_job(user["id"], {
        "title": "Backend Engineer", "company": "Acme", "location": "Nancy, France",
        "salary": "€45,000", "work_mode": "On-site",
    })
    return user, job


def make_service(completion, search=None, clock=None, tracker=None):
    resolver = LocationResolver()
    converter = SameCurrencyConverter()
    return SalaryAnalysisService(
        resolver,
        NetIncomeCalculator(resolver, completion, converter),
        converter,
        search=search,
        tracker=tracker,
        clock=clock or Clock(),
    )


class TestSalaryAnalysisService:
    """Analysis caching on the job record."""

    def test_work_mode_normalization(self):
        assert normalize_work_mode("Remote") == "remote_country"
        assert normalize_work_mode("On-site") == "onsite"
        assert normalize_work_mode("hybrid") == "hybrid"
        assert normalize_work_mode("whenever") == "onsite"
        assert normalize_work_mode(None) == "onsite"

    def test_ttl(self, db, stored_job, fake_completion, nancy_response):
        user, job = stored_job
        clock = Clock()
        completion = fake_completion(nancy_response, nancy_response)
        service = make_service(completion, clock=clock)

        analysis, cached = service.analyze_job(job, user)
        assert not cached
        stored = db.get_job_for_user(job["id"], user["id"])
        assert stored["extracted_data"][DATE_KEY] == clock.now.isoformat()

        clock.now += timedelta(hours=23)
        again, cached = service.analyze_job(stored, user)
        assert cached
        assert again == analysis

        clock.now += timedelta(hours=2)
        _, cached = service.analyze_job(db.get_job_for_user(job["id"], user["id"]), user)
        assert not cached, "analysis older than 24h is recomputed"
        assert len(completion.prompts) == 2

    def test_unreadable_date_is_stale(self, fake_completion):
        service = make_service(fake_completion())
        job = {"id": 1, "extracted_data": {ANALYSIS_KEY: {"x": 1}, DATE_KEY: "yesterday"}}
        assert service.get_cached(job) is None

    def test_naive_timestamp_treated_as_utc(self, fake_completion):
        clock = Clock()
        service = make_service(fake_completion(), clock=clock)
        stamp = (clock.now - timedelta(hours=1)).replace(tzinfo=None).isoformat()
        job = {"id": 1, "extracted_data": {ANALYSIS_KEY: {"x": 1}, DATE_KEY: stamp}}
        assert service.get_cached(job) == {"x": 1}

    def test_market_data_from_search(self, stored_job, fake_completion, nancy_response,
                                     fake_session, fake_response):
        user, job = stored_job
        session = fake_session({TAVILY_SEARCH_URL: [fake_response(SEARCH_PAYLOAD)]})
        service = make_service(fake_completion(nancy_response),
                               search=TavilySearch(api_key="key", session=session))
        analysis, _ = service.analyze_job(job, user)

        market = analysis["marketData"]
        assert len(session.calls) == 2, "salary and company searches both run"
        assert market["sources"] == ["https://glassdoor.com/x", "https://levels.fyi/y"]
        assert market["salarySearch"]["answer"].startswith("Typical pay")

    def test_search_failure_propagates_and_nothing_is_stored(self, db, stored_job, fake_completion,
                                                             nancy_response, fake_session):
        user, job = stored_job
        tracker = TaskTracker()
        session = fake_session({TAVILY_SEARCH_URL: [requests.Timeout("slow")]})
        service = make_service(fake_completion(nancy_response),
                               search=TavilySearch(api_key="key", session=session), tracker=tracker)

        with pytest.raises(UpstreamError):
            service.analyze_job(job, user)
        assert db.get_job_for_user(job["id"], user["id"])["extracted_data"] == {}
        assert tracker.recent_tasks(user["id"])[0].status == FAILED

    def test_net_income_uses_posted_salary(self, stored_job, fake_completion, nancy_response):
        user, job = stored_job
        completion = fake_completion(nancy_response)
        analysis, _ = make_service(completion).analyze_job(job, user)

        assert "Gross annual salary: 45,000.00 EUR" in completion.prompts[0]
        assert analysis["netIncome"]["netIncome"]["monthly"] == 2258.25
        assert analysis["budget"]["total"] == pytest.approx(2258.25)
        assert analysis["postedSalary"]["originalSalary"]["currency"] == "EUR"
