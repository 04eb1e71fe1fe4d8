"""
Shared fixtures: fake HTTP session, fake completion client, canned AI responses.

Nothing here touches the network.
"""

import copy
import sys
from pathlib import Path

# Ensure backend directory is on path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
import requests


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    """
    Records requests and answers from a queue per URL prefix.

    An entry may be a FakeResponse or an exception instance to raise.
    """

    def __init__(self, routes=None):
        self.routes = {k: list(v) for k, v in (routes or {}).items()}
        self.calls = []

    def _answer(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        for prefix, answers in self.routes.items():
            if url.startswith(prefix) and answers:
                answer = answers.pop(0) if len(answers) > 1 else answers[0]
                if isinstance(answer, Exception):
                    raise answer
                return answer
        raise requests.ConnectionError(f"no route for {url}")

    def get(self, url, **kwargs):
        return self._answer("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._answer("POST", url, **kwargs)


class FakeCompletion:
    """Stands in for CompletionClient; returns queued dicts or raises queued errors."""

    def __init__(self, *responses, configured=True):
        self.responses = list(responses)
        self.prompts = []
        self.kwargs = []
        self.configured = configured

    def complete_json(self, prompt, **kwargs):
        self.prompts.append(prompt)
        self.kwargs.append(kwargs)
        if not self.responses:
            raise AssertionError("unexpected completion call")
        answer = self.responses.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return copy.deepcopy(answer)


# 45,000 EUR in Nancy, France: national taxes 17,901 (39.78%)
NANCY_RESPONSE = {
    "gross": {"annual": 45000, "monthly": 3750, "biweekly": 1730.77, "currency": "EUR"},
    "taxes": {
        "federal": {
            "amount": 17901,
            "rate": 39.78,
            "breakdown": {"incomeTax": 5436, "socialSecurity": 12240, "medicare": 225},
        },
        "state": {"amount": 0, "rate": 0, "stateName": "N/A"},
        "local": {"amount": 0, "rate": 0, "locality": "Nancy"},
        "totalTaxes": 17901,
        "effectiveRate": 39.78,
    },
    "deductions": {"retirement401k": 0, "healthInsurance": 0, "other": 0, "totalDeductions": 0},
    "netIncome": {"annual": 27099, "monthly": 2258.25, "biweekly": 1042.27},
    "insights": {"takeHomeSummary": "About 60% of gross", "taxOptimizations": [], "warnings": []},
    "confidence": {"overall": 0.85, "taxAccuracy": 0.9, "source": "current_tax_tables"},
}


@pytest.fixture
def nancy_response():
    return copy.deepcopy(NANCY_RESPONSE)


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def fake_completion():
    return FakeCompletion


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Fresh SQLite database in a temp directory."""
    import config
    import database

    monkeypatch.setattr(config, "DB_PATH", tmp_path / "job_tracker_test.db")
    database.create_database()
    return database
