"""
Tests for the AI net income calculator and its strict result validation.

Covers: net_income, llm.
"""

import sys
from pathlib import Path
from types import SimpleNamespace

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from openai import OpenAIError

from errors import ConfigurationError, UpstreamError, ValidationError
from llm import CompletionClient, parse_json_object
from location_resolver import LocationResolver
from net_income import (
    FEDERAL_ZERO_MESSAGE,
    NetIncomeCalculator,
    NetIncomeRequest,
    determine_tax_location,
    is_international_remote,
    parse_net_income_result,
)
from tax_data import get_tax_profile


def _set(data: dict, path: str, value):
    keys = path.split(".")
    node = data
    for key in keys[:-1]:
        node = node[key]
    node[keys[-1]] = value
    return data


class FixedRateConverter:
    def __init__(self, rate):
        self.rate = rate
        self.calls = []

    def get_rate(self, src, dst):
        self.calls.append((src, dst))
        return self.rate


# ═══════════════════════════════════════════════════════════════════════════════
# RESULT VALIDATION
# ═══════════════════════════════════════════════════════════════════════════════


class TestResultValidation:
    """Every invariant violation is rejected; nothing is corrected."""

    def test_valid_result(self, nancy_response):
        result = parse_net_income_result(nancy_response, "EUR", expected_gross=45_000, rate_band=(38, 42))
        assert result.federal.amount == 17_901
        assert result.net_annual == 27_099
        assert result.net_hourly == pytest.approx(27_099 / 2080, abs=0.01)
        assert result.net_daily == pytest.approx(27_099 / 260, abs=0.01)

    def test_to_dict_shape(self, nancy_response):
        data = parse_net_income_result(nancy_response, "EUR").to_dict()
        assert data["taxes"]["federal"]["breakdown"]["socialSecurity"] == 12_240
        assert data["netIncome"]["dailyTakeHome"] > 0
        assert data["insights"]["takeHomeSummary"], "pass-through sections are kept"
        assert data["gross"]["currency"] == "EUR"

    def test_federal_zero_with_total_taxes(self, nancy_response):
        _set(nancy_response, "taxes.federal.amount", 0)
        _set(nancy_response, "taxes.federal.breakdown", {"incomeTax": 0, "socialSecurity": 0, "medicare": 0})
        _set(nancy_response, "taxes.state.amount", 17_901)
        with pytest.raises(ValidationError) as exc:
            parse_net_income_result(nancy_response, "EUR")
        assert str(exc.value) == FEDERAL_ZERO_MESSAGE
        assert FEDERAL_ZERO_MESSAGE == "Federal tax amount cannot be 0 when total taxes > 0"

    def test_breakdown_must_sum_to_federal(self, nancy_response):
        _set(nancy_response, "taxes.federal.breakdown.incomeTax", 6_000)
        with pytest.raises(ValidationError, match="breakdown"):
            parse_net_income_result(nancy_response, "EUR")

    def test_breakdown_tolerance(self, nancy_response):
        _set(nancy_response, "taxes.federal.breakdown.incomeTax", 5_436.9)
        parse_net_income_result(nancy_response, "EUR")

    def test_federal_must_equal_total_without_state_or_local(self, nancy_response):
        _set(nancy_response, "taxes.totalTaxes", 19_000)
        with pytest.raises(ValidationError, match="must equal total taxes"):
            parse_net_income_result(nancy_response, "EUR")

    def test_total_must_equal_components(self, nancy_response):
        _set(nancy_response, "taxes.state.amount", 500)
        with pytest.raises(ValidationError, match="federal \\+ state \\+ local"):
            parse_net_income_result(nancy_response, "EUR")

    def test_effective_rate_must_match(self, nancy_response):
        _set(nancy_response, "taxes.effectiveRate", 30.0)
        with pytest.raises(ValidationError, match="Effective rate"):
            parse_net_income_result(nancy_response, "EUR")

    def test_rate_outside_band_rejected(self, nancy_response):
        with pytest.raises(ValidationError, match="outside the expected range") as exc:
            parse_net_income_result(nancy_response, "EUR", rate_band=(20, 24))
        assert exc.value.details["expectedRange"] == [20, 24]

    def test_missing_section(self, nancy_response):
        del nancy_response["netIncome"]
        with pytest.raises(ValidationError, match="netIncome"):
            parse_net_income_result(nancy_response, "EUR")

    def test_non_numeric_amount(self, nancy_response):
        _set(nancy_response, "gross.annual", "45000")
        with pytest.raises(ValidationError, match="gross.annual"):
            parse_net_income_result(nancy_response, "EUR")

    def test_infinite_amounts_rejected(self, nancy_response):
        for path in ("taxes.federal.amount", "taxes.federal.breakdown.incomeTax",
                     "taxes.totalTaxes", "taxes.effectiveRate"):
            _set(nancy_response, path, float("inf"))
        with pytest.raises(ValidationError, match="Invalid monetary value"):
            parse_net_income_result(nancy_response, "EUR")

    def test_gross_must_match_request(self, nancy_response):
        with pytest.raises(ValidationError, match="requested salary"):
            parse_net_income_result(nancy_response, "EUR", expected_gross=60_000)

    def test_net_cannot_exceed_gross(self, nancy_response):
        _set(nancy_response, "netIncome.annual", 50_000)
        with pytest.raises(ValidationError, match="cannot exceed"):
            parse_net_income_result(nancy_response, "EUR")


# ═══════════════════════════════════════════════════════════════════════════════
# REQUEST PARSING AND TAX LOCATION
# ═══════════════════════════════════════════════════════════════════════════════


class TestNetIncomeRequest:
    def test_from_camel_case(self):
        req = NetIncomeRequest.from_dict({
            "grossSalary": 45000, "location": " Nancy, France ", "workMode": "hybrid",
            "currency": "eur", "retirement401k": 1000,
        }, user_id=3)
        assert req.location == "Nancy, France"
        assert req.currency == "EUR"
        assert req.work_mode == "hybrid"
        assert req.pre_tax_deductions == 1000
        assert req.user_id == 3

    def test_defaults(self):
        req = NetIncomeRequest.from_dict({"grossSalary": 100000, "location": "Austin, TX"})
        assert (req.work_mode, req.currency) == ("onsite", "USD")

    @pytest.mark.parametrize("body", [
        {"grossSalary": 0, "location": "Paris"},
        {"grossSalary": "lots", "location": "Paris"},
        {"grossSalary": 1000, "location": ""},
        {"grossSalary": 1000, "location": "Paris", "workMode": "moon"},
        {"grossSalary": 1000, "location": "Paris", "currency": "EURO"},
        {"grossSalary": 1000, "location": "Paris", "healthInsurance": -5},
    ])
    def test_invalid_bodies(self, body):
        with pytest.raises(ValueError):
            NetIncomeRequest.from_dict(body)

    def test_residence_wins_when_it_names_a_country(self):
        req = NetIncomeRequest(45000, "New York, USA", residence_location="Nancy, France")
        assert determine_tax_location(req) == "Nancy, France"

    def test_unrecognized_residence_ignored(self):
        req = NetIncomeRequest(45000, "Berlin, Germany", residence_location="the countryside")
        assert determine_tax_location(req) == "Berlin, Germany"

    def test_international_remote(self):
        assert is_international_remote("New York, USA", "Nancy, France")
        assert not is_international_remote("Paris, France", "Nancy, France")
        assert not is_international_remote(None, "Nancy, France")


# ═══════════════════════════════════════════════════════════════════════════════
# CALCULATOR
# ═══════════════════════════════════════════════════════════════════════════════


class TestNetIncomeCalculator:
    """Prompt construction, guardrail and end-to-end validation with a fake model."""

    def test_nancy_scenario(self, fake_completion, nancy_response):
        completion = fake_completion(nancy_response)
        calc = NetIncomeCalculator(LocationResolver(), completion)
        result = calc.calculate(NetIncomeRequest(45000, "Nancy, France", currency="EUR"))

        assert 38 <= result.effective_rate <= 42
        assert result.net_annual < 30_000
        assert result.federal.social_security > 10_000
        assert "national effective rate MUST be 38-42%" in completion.prompts[0]
        assert completion.kwargs[0] == {"max_tokens": 2500, "temperature": 0.1}
        assert result.context["taxSource"] == "static"
        assert result.context["expectedNationalRateRange"] == [38, 42]

    def test_prompt_embeds_tax_tables(self, fake_completion, nancy_response):
        completion = fake_completion(nancy_response)
        NetIncomeCalculator(LocationResolver(), completion).calculate(
            NetIncomeRequest(45000, "Nancy, France", currency="EUR")
        )
        prompt = completion.prompts[0]
        assert "REAL TAX DATA FOR Nancy, France" in prompt
        assert "CSG" in prompt
        assert "Professional deduction: 10% of gross" in prompt
        assert "DOMESTIC WORK RULES" in prompt

    def test_result_outside_guardrail_rejected(self, fake_completion):
        low_tax = {
            "gross": {"annual": 45000, "monthly": 3750},
            "taxes": {
                "federal": {"amount": 11250, "rate": 25,
                            "breakdown": {"incomeTax": 5000, "socialSecurity": 6000, "medicare": 250}},
                "state": {"amount": 0}, "local": {"amount": 0},
                "totalTaxes": 11250, "effectiveRate": 25.0,
            },
            "netIncome": {"annual": 33750, "monthly": 2812.5},
        }
        calc = NetIncomeCalculator(LocationResolver(), fake_completion(low_tax))
        with pytest.raises(ValidationError, match="outside the expected range"):
            calc.calculate(NetIncomeRequest(45000, "Nancy, France", currency="EUR"))

    def test_foreign_currency_converted_for_band(self):
        converter = FixedRateConverter(0.9)
        calc = NetIncomeCalculator(LocationResolver(), completion=None, converter=converter)
        band = calc.expected_rate_band(
            NetIncomeRequest(50000, "Nancy, France", currency="USD"), get_tax_profile("France")
        )
        assert band == (38, 42)
        assert converter.calls == [("USD", "EUR")]

    def test_guardrail_skipped_when_rate_unavailable(self, fake_completion, nancy_response):
        _set(nancy_response, "gross.currency", "USD")
        completion = fake_completion(nancy_response)
        calc = NetIncomeCalculator(LocationResolver(), completion, FixedRateConverter(None))
        result = calc.calculate(NetIncomeRequest(45000, "Nancy, France", currency="USD"))
        assert "GUARDRAIL" not in completion.prompts[0]
        assert result.context["expectedNationalRateRange"] is None
        assert result.currency == "USD"

    def test_no_guardrail_without_tax_profile(self):
        calc = NetIncomeCalculator(LocationResolver(), completion=None)
        assert calc.expected_rate_band(NetIncomeRequest(45000, "Remote"), None) is None

    def test_international_remote_prompt(self, fake_completion, nancy_response):
        completion = fake_completion(nancy_response)
        calc = NetIncomeCalculator(LocationResolver(), completion)
        result = calc.calculate(NetIncomeRequest(
            45000, "New York, USA", work_mode="remote_country", currency="EUR",
            residence_location="Nancy, France", employer_location="New York, USA",
        ))
        assert "INTERNATIONAL REMOTE WORK RULES" in completion.prompts[0]
        assert result.context["taxCountry"] == "France"
        assert result.context["internationalRemote"] is True

    def test_user_context_in_prompt(self, fake_completion, nancy_response):
        completion = fake_completion(nancy_response)
        NetIncomeCalculator(LocationResolver(), completion).calculate(
            NetIncomeRequest(45000, "Nancy, France", currency="EUR"),
            user={"current_location": "Nancy", "filing_status": "single"},
        )
        assert "USER TAX CONTEXT" in completion.prompts[0]

    def test_upstream_errors_propagate(self, fake_completion):
        completion = fake_completion(UpstreamError("boom", provider="openai"))
        calc = NetIncomeCalculator(LocationResolver(), completion)
        with pytest.raises(UpstreamError):
            calc.calculate(NetIncomeRequest(45000, "Nancy, France", currency="EUR"))


# ═══════════════════════════════════════════════════════════════════════════════
# COMPLETION CLIENT
# ═══════════════════════════════════════════════════════════════════════════════


class FakeOpenAI:
    def __init__(self, content=None, error=None):
        self.requests = []
        self.content = content
        self.error = error
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class TestCompletionClient:
    def test_parse_plain_and_fenced_json(self):
        assert parse_json_object('{"a": 1}') == {"a": 1}
        assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}
        assert parse_json_object('Here you go: {"a": 1} hope it helps') == {"a": 1}

    @pytest.mark.parametrize("text", ["", "   ", "not json", "[1, 2]", '{"a": }'])
    def test_bad_output_is_upstream_error(self, text):
        with pytest.raises(UpstreamError):
            parse_json_object(text)

    def test_missing_key_is_configuration_error(self):
        client = CompletionClient(api_key="")
        assert not client.configured
        with pytest.raises(ConfigurationError) as exc:
            client.complete_json("hi")
        assert "OPENAI_API_KEY" in exc.value.to_dict()["suggestion"]
        assert exc.value.status_code == 503

    def test_json_mode_request(self):
        fake = FakeOpenAI(content='{"ok": true}')
        client = CompletionClient(api_key="k", model="m", client=fake)
        assert client.complete_json("prompt", max_tokens=2500, temperature=0.1) == {"ok": True}
        sent = fake.requests[0]
        assert sent["response_format"] == {"type": "json_object"}
        assert sent["max_tokens"] == 2500
        assert sent["model"] == "m"

    def test_sdk_error_wrapped(self):
        client = CompletionClient(api_key="k", client=FakeOpenAI(error=OpenAIError("rate limited")))
        with pytest.raises(UpstreamError) as exc:
            client.complete("prompt")
        assert exc.value.provider == "openai"

    def test_empty_content(self):
        client = CompletionClient(api_key="k", client=FakeOpenAI(content=""))
        with pytest.raises(UpstreamError, match="Empty response"):
            client.complete("prompt")
