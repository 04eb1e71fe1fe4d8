"""
Flask API for the Job Tracker salary backend
Serves saved jobs, salary intelligence and AI task updates
"""

import json
from dataclasses import dataclass
from typing import Optional

from flask import Flask, Response, g, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

import database
from auth import require_auth
from currency import SUPPORTED_CURRENCIES, CurrencyConverter
from errors import AppError, NotFoundError
from config import setup_logging, get_logger
from llm import CompletionClient
from location_resolver import LocationResolver
from net_income import NetIncomeCalculator, NetIncomeRequest
from salary_analysis import SalaryAnalysisService, user_location
from salary_intelligence import analyze_salary
from task_events import NET_INCOME, TaskTracker
from tax_rag import TaxDataLookup
from web_search import TavilySearch
from validators import (
    validate_params,
    require_json_fields,
    AMOUNT,
    FROM_CURRENCY,
    TO_CURRENCY,
    LOCATION,
    OPTIONAL_LOCATION,
    SALARY,
    WORK_MODE,
    COMPANY,
    FORCE_REFRESH,
    JOB_STATUS,
    JOB_SORT,
    SEARCH,
    LIMIT,
)

setup_logging()
logger = get_logger(__name__)

app = Flask(__name__)
CORS(app)  # Enable CORS for the web client


# ─── Services ────────────────────────────────────────────────────────────────


@dataclass
class Services:
    converter: CurrencyConverter
    resolver: LocationResolver
    net_income: NetIncomeCalculator
    analysis: SalaryAnalysisService
    tracker: TaskTracker


def build_services(completion: Optional[CompletionClient] = None, search=None) -> Services:
    """Wire the service graph from configuration."""
    completion = completion or CompletionClient()
    search = search if search is not None else TavilySearch()
    converter = CurrencyConverter()
    tracker = TaskTracker()
    tax_lookup = TaxDataLookup(completion) if completion.configured else None
    resolver = LocationResolver(tax_lookup=tax_lookup)
    net_income = NetIncomeCalculator(resolver, completion, converter)
    analysis = SalaryAnalysisService(
        resolver, net_income, converter, search=search, tracker=tracker
    )
    return Services(converter, resolver, net_income, analysis, tracker)


def services() -> Services:
    if app.config.get("SERVICES") is None:
        app.config["SERVICES"] = build_services()
    return app.config["SERVICES"]


def _job_or_404(job_id: int) -> dict:
    job = database.get_job_for_user(job_id, g.user["id"])
    if job is None:
        raise NotFoundError("Job")
    return job


# ─── Global Error Handlers ───────────────────────────────────────────────────


@app.errorhandler(404)
def not_found(e):
    """Return JSON instead of HTML for 404 errors."""
    return jsonify({"error": "Resource not found"}), 404


@app.errorhandler(AppError)
def handle_app_error(e):
    if e.status_code >= 500:
        logger.error("%s: %s", e.code, e.message)
    else:
        logger.warning("%s: %s", e.code, e.message)
    return jsonify(e.to_dict()), e.status_code


@app.errorhandler(ValueError)
def handle_value_error(e):
    """Catch unhandled ValueErrors and return a 400 JSON response."""
    logger.warning("ValueError: %s", e)
    return jsonify({"error": str(e)}), 400


@app.errorhandler(Exception)
def handle_exception(e):
    """Catch-all for unhandled exceptions; HTTP errors keep their status."""
    if isinstance(e, HTTPException):
        return jsonify({"error": e.description}), e.code
    logger.exception("Unhandled exception: %s", e)
    return jsonify({"error": "Internal server error"}), 500


@app.route("/api/health", methods=["GET"])
def health():
    """Health check endpoint"""
    return jsonify({"status": "ok", "message": "Job Tracker API is running"})


# ─── Jobs ────────────────────────────────────────────────────────────────────


@app.route("/api/jobs", methods=["GET"])
@require_auth
def list_jobs():
    """
    List the caller's saved jobs
    Query params:
      - company, status, work_mode: exact filters
      - q: substring search over title, company and description
      - sort_by: created (default), updated, company, title
      - limit
    """
    params, error = validate_params(
        request.args, [COMPANY, JOB_STATUS, WORK_MODE, SEARCH, JOB_SORT, LIMIT]
    )
    if error:
        return error

    jobs = database.list_jobs(
        g.user["id"],
        company=params["company"],
        status=params["status"],
        work_mode=params["work_mode"],
        search=params["q"],
        sort_by=params["sort_by"],
        limit=params["limit"],
    )
    return jsonify({"count": len(jobs), "jobs": jobs})


@app.route("/api/jobs", methods=["POST"])
@require_auth
def create_job():
    """Save a job posting. Body: title, company, and optional location, salary, work_mode, ..."""
    body = request.get_json(silent=True)
    error = require_json_fields(body, ["title", "company"])
    if error:
        return error
    _, error = validate_params(body, [JOB_STATUS, WORK_MODE])
    if error:
        return error

    job = database.create_job(g.user["id"], body)
    return jsonify(job), 201


@app.route("/api/jobs/<int:job_id>", methods=["GET"])
@require_auth
def get_job(job_id):
    return jsonify(_job_or_404(job_id))


@app.route("/api/jobs/<int:job_id>", methods=["DELETE"])
@require_auth
def delete_job(job_id):
    if not database.delete_job(job_id, g.user["id"]):
        raise NotFoundError("Job")
    return jsonify({"success": True})


# ─── Salary Analysis ─────────────────────────────────────────────────────────


@app.route("/api/jobs/<int:job_id>/salary-analysis", methods=["GET"])
@require_auth
def get_salary_analysis(job_id):
    """Stored analysis when still fresh; never computes."""
    job = _job_or_404(job_id)
    analysis = services().analysis.get_cached(job)
    return jsonify({"cached": analysis is not None, "analysis": analysis})


@app.route("/api/jobs/<int:job_id>/salary-analysis", methods=["POST"])
@require_auth
def run_salary_analysis(job_id):
    """
    Compute (or reuse) the salary analysis for a job
    Query params:
      - forceRefresh: 'true' to ignore a stored analysis
    """
    params, error = validate_params(request.args, [FORCE_REFRESH])
    if error:
        return error

    job = _job_or_404(job_id)
    analysis, cached = services().analysis.analyze_job(
        job, g.user, force_refresh=params["forceRefresh"] == "true"
    )
    return jsonify({
        "success": True,
        "cached": cached,
        "analysis": analysis,
        "job": {
            "id": job["id"],
            "title": job["title"],
            "company": job["company"],
            "location": job["location"],
        },
    })


@app.route("/api/salary/net-income", methods=["POST"])
@require_auth
def calculate_net_income():
    """
    AI net income calculation
    Body: grossSalary, location, workMode, currency, plus optional
    residenceLocation, employerLocation and deduction/compensation amounts
    """
    body = request.get_json(silent=True)
    error = require_json_fields(body, ["grossSalary", "location"])
    if error:
        return error
    net_request = NetIncomeRequest.from_dict(body, user_id=g.user["id"])

    svc = services()
    task = svc.tracker.start(g.user["id"], NET_INCOME, current_step="Calculating taxes")
    try:
        result = svc.net_income.calculate(net_request, user=g.user)
    except Exception as e:
        svc.tracker.fail(task.id, str(e))
        raise
    svc.tracker.complete(task.id, f"Net income {result.net_monthly:,.0f} {result.currency}/month")

    return jsonify({"success": True, "data": result.to_dict()})


@app.route("/api/salary/analyze", methods=["GET"])
def analyze_posted_salary():
    """
    Comfort analysis of a salary string
    Query params:
      - salary: e.g. "$120k - $150k", "€4,500/month"
      - location: e.g. "Austin, TX"
    """
    params, error = validate_params(request.args, [SALARY, OPTIONAL_LOCATION])
    if error:
        return error

    result = analyze_salary(params["salary"], params["location"], services().converter)
    if result is None:
        return jsonify({"error": "No salary amount found in 'salary'"}), 400
    return jsonify(result)


# ─── Currency ────────────────────────────────────────────────────────────────


@app.route("/api/currency/convert", methods=["GET"])
def convert_currency():
    """Query params: amount, from, to"""
    params, error = validate_params(request.args, [AMOUNT, FROM_CURRENCY, TO_CURRENCY])
    if error:
        return error

    result = services().converter.convert(
        params["amount"], params["from"].upper(), params["to"].upper()
    )
    if result is None:
        return jsonify({
            "error": "Exchange rates unavailable",
            "code": "SERVICE_UNAVAILABLE",
        }), 503
    return jsonify(result.to_dict())


@app.route("/api/currency/supported", methods=["GET"])
def supported_currencies():
    return jsonify({"currencies": SUPPORTED_CURRENCIES})


# ─── Locations ───────────────────────────────────────────────────────────────


@app.route("/api/locations/resolve", methods=["GET"])
@require_auth
def resolve_location():
    """Query params: location (required), work_mode, company"""
    params, error = validate_params(request.args, [LOCATION, WORK_MODE, COMPANY])
    if error:
        return error

    profile = services().resolver.resolve_profile(
        params["location"],
        work_mode=params["work_mode"],
        company=params["company"],
        user=user_location(g.user),
    )
    return jsonify(profile.to_dict())


# ─── AI Tasks ────────────────────────────────────────────────────────────────


@app.route("/api/ai-tasks/active", methods=["GET"])
@require_auth
def active_tasks():
    tasks = services().tracker.active_tasks(g.user["id"])
    return jsonify({"tasks": [t.to_dict() for t in tasks]})


@app.route("/api/ai-tasks/stream", methods=["GET"])
@require_auth
def stream_tasks():
    """Server-Sent Events: the active task list, then one event per task update."""
    tracker = services().tracker
    user_id = g.user["id"]

    def generate():
        with tracker.subscribe(user_id) as sub:
            active = [t.to_dict() for t in tracker.active_tasks(user_id)]
            yield f"event: init\ndata: {json.dumps({'tasks': active})}\n\n"
            for event in sub.events():
                if event is None:
                    yield ": keepalive\n\n"
                else:
                    yield f"event: {event['type']}\ndata: {json.dumps(event['task'])}\n\n"

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


if __name__ == "__main__":
    database.create_database()

    print("🚀 Starting Job Tracker API...")
    print("📍 API will be available at: http://localhost:5000")
    print("\n📚 Endpoints:")
    print("   GET    /api/health")
    print("   GET    /api/jobs?status=<status>&q=<text>&sort_by=<field>")
    print("   POST   /api/jobs")
    print("   GET    /api/jobs/<id>")
    print("   DELETE /api/jobs/<id>")
    print("   GET    /api/jobs/<id>/salary-analysis")
    print("   POST   /api/jobs/<id>/salary-analysis?forceRefresh=true")
    print("   POST   /api/salary/net-income")
    print("   GET    /api/salary/analyze?salary=<text>&location=<text>")
    print("   GET    /api/currency/convert?amount=<n>&from=<code>&to=<code>")
    print("   GET    /api/currency/supported")
    print("   GET    /api/locations/resolve?location=<text>&work_mode=<mode>")
    print("   GET    /api/ai-tasks/active")
    print("   GET    /api/ai-tasks/stream")
    print("\n🔐 All job, salary, location and task endpoints except /api/salary/analyze")
    print("   and /api/currency/* require 'Authorization: Bearer <token>'\n")

    app.run(debug=True, host="0.0.0.0", port=5000, threaded=True)
