"""
Salary Analysis Service
=======================
Per-job salary analysis, persisted on the job and reused for 24 hours.

An analysis combines:
    - the resolved location profile (cost of living, tax data)
    - comfort analysis of the posted salary
    - market and company web searches (when search is configured)
    - AI net income for the posted salary, plus comfort score and budget

The result is stored in the job's extracted_data under
"enhancedSalaryAnalysis" with its timestamp in "salaryAnalysisDate". A stored
analysis younger than the TTL is returned unchanged unless a refresh is forced.
Errors from the AI provider, search provider, or result validation propagate
to the caller; nothing is persisted in that case.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Optional

from config import ANALYSIS_TTL_SECONDS, get_logger
from database import update_job_extracted_data
from location_resolver import UserLocation
from net_income import WORK_MODES, NetIncomeRequest
from salary_intelligence import (
    analyze_salary,
    baseline_monthly_costs,
    budget_breakdown,
    score_comfort,
    to_usd,
)
from salary_parser import parse_salary_string
from task_events import SALARY_ANALYSIS

logger = get_logger(__name__)

ANALYSIS_KEY = "enhancedSalaryAnalysis"
DATE_KEY = "salaryAnalysisDate"

# Job work_mode values -> net income work modes
_WORK_MODE_MAP = {
    "remote": "remote_country",
    "on-site": "onsite",
    "on_site": "onsite",
    "office": "onsite",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_work_mode(work_mode: Optional[str]) -> str:
    if not work_mode:
        return "onsite"
    mode = work_mode.strip().lower()
    mode = _WORK_MODE_MAP.get(mode, mode)
    return mode if mode in WORK_MODES else "onsite"


def user_location(user: Optional[dict]) -> Optional[UserLocation]:
    if not user:
        return None
    return UserLocation(
        current_location=user.get("current_location"),
        current_country=user.get("current_country"),
    )


class SalaryAnalysisService:
    """
    resolver    - LocationResolver
    net_income  - NetIncomeCalculator
    converter   - CurrencyConverter
    search      - TavilySearch, or None to skip market searches
    tracker     - TaskTracker, or None
    """

    def __init__(
        self,
        resolver,
        net_income,
        converter,
        search=None,
        tracker=None,
        ttl_seconds: float = ANALYSIS_TTL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.resolver = resolver
        self.net_income = net_income
        self.converter = converter
        self.search = search
        self.tracker = tracker
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    # ─── Cache ───────────────────────────────────────────────────────────────

    def get_cached(self, job: dict) -> Optional[dict]:
        """Stored analysis when younger than the TTL, else None."""
        data = job.get("extracted_data") or {}
        analysis = data.get(ANALYSIS_KEY)
        stamp = data.get(DATE_KEY)
        if not analysis or not stamp:
            return None
        try:
            analyzed_at = datetime.fromisoformat(stamp)
        except (TypeError, ValueError):
            logger.warning("Job %s has an unreadable %s: %r", job.get("id"), DATE_KEY, stamp)
            return None
        if analyzed_at.tzinfo is None:
            analyzed_at = analyzed_at.replace(tzinfo=timezone.utc)
        age = (self.clock() - analyzed_at).total_seconds()
        return analysis if age < self.ttl_seconds else None

    # ─── Analysis ────────────────────────────────────────────────────────────

    def analyze_job(self, job: dict, user: Optional[dict] = None, force_refresh: bool = False) -> tuple[dict, bool]:
        """
        Analysis for `job`, computing and persisting it when needed.

        Returns (analysis, cached).
        """
        user_id = user["id"] if user else job.get("user_id")

        if not force_refresh:
            cached = self.get_cached(job)
            if cached is not None:
                logger.info("Using cached salary analysis for job %s", job["id"])
                if self.tracker:
                    self.tracker.mark_cached(user_id, SALARY_ANALYSIS, job_id=job["id"])
                return cached, True

        task = self.tracker.start(user_id, SALARY_ANALYSIS, job_id=job["id"],
                                  current_step="Resolving location") if self.tracker else None
        try:
            analysis = self._compute(job, user, task)
        except Exception as e:
            if task:
                self.tracker.fail(task.id, str(e))
            raise

        now = self.clock()
        extracted = dict(job.get("extracted_data") or {})
        extracted[ANALYSIS_KEY] = analysis
        extracted[DATE_KEY] = now.isoformat()
        update_job_extracted_data(job["id"], extracted)
        job["extracted_data"] = extracted

        if task:
            self.tracker.complete(task.id, self._summary(analysis))
        logger.info("Salary analysis stored for job %s", job["id"])
        return analysis, False

    def _progress(self, task, progress: int, step: str):
        if task:
            self.tracker.update(task.id, progress=progress, current_step=step)

    def _compute(self, job: dict, user: Optional[dict], task) -> dict:
        work_mode = normalize_work_mode(job.get("work_mode"))
        profile = self.resolver.resolve_profile(
            job.get("location"),
            work_mode=work_mode,
            company=job.get("company"),
            user=user_location(user),
        )
        posted = analyze_salary(job.get("salary"), job.get("location"), self.converter)

        self._progress(task, 30, "Searching market data")
        market = self._market_data(job, profile.display_name)

        net = None
        comfort = None
        budget = None
        parsed = parse_salary_string(job.get("salary") or "")
        if parsed is not None:
            self._progress(task, 60, "Calculating net income")
            annual = parsed.annualized()
            residence = None
            if work_mode.startswith("remote") and user:
                residence = user.get("current_location")
            request = NetIncomeRequest(
                gross_salary=annual.midpoint,
                location=job.get("location") or profile.display_name,
                work_mode=work_mode,
                currency=annual.currency,
                user_id=user["id"] if user else None,
                residence_location=residence,
                employer_location=job.get("location"),
            )
            result = self.net_income.calculate(request, user=user)
            net = result.to_dict()

            net_usd, _ = to_usd(result.net_annual, result.currency, self.converter)
            comfort = score_comfort(net_usd, profile).to_dict()
            budget = budget_breakdown(result.net_monthly)

        return {
            "job": {
                "id": job["id"],
                "title": job.get("title"),
                "company": job.get("company"),
                "location": job.get("location"),
            },
            "location": profile.to_dict(),
            "postedSalary": posted,
            "netIncome": net,
            "comfort": comfort,
            "budget": budget,
            "baselineMonthlyCostsUSD": baseline_monthly_costs(profile),
            "marketData": market,
            "generatedAt": self.clock().isoformat(),
        }

    def _market_data(self, job: dict, location: str) -> Optional[dict]:
        if self.search is None or not self.search.configured:
            return None

        with ThreadPoolExecutor(max_workers=2) as pool:
            salary_future = pool.submit(
                self.search.salary_data, job.get("title") or "", location, job.get("company")
            )
            company_future = pool.submit(self.search.company_info, job.get("company") or "")
            salary_results = salary_future.result()
            company_results = company_future.result()

        return {
            "salarySearch": salary_results.to_dict(),
            "companySearch": company_results.to_dict(),
            "sources": sorted({r.url for r in salary_results.results + company_results.results if r.url}),
        }

    @staticmethod
    def _summary(analysis: dict) -> str:
        net = analysis.get("netIncome")
        if not net:
            return f"Location: {analysis['location']['displayName']}"
        monthly = net["netIncome"]["monthly"]
        return f"Net income {monthly:,.0f} {net['gross']['currency']}/month"
