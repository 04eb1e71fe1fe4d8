"""
Parameter Validation Module
===========================
Declarative validators for Flask request parameters.

Usage:
    from validators import validate_params, AMOUNT, FROM_CURRENCY, TO_CURRENCY

    # In endpoint:
    params, error = validate_params(request.args, [AMOUNT, FROM_CURRENCY, TO_CURRENCY])
    if error:
        return error
    amount = params["amount"]
"""

import re
from dataclasses import dataclass
from typing import Optional, Union, Set, Tuple, Any
from flask import jsonify

from database import JOB_SORT_MAP, JOB_STATUSES
from net_income import WORK_MODES


@dataclass
class ParamValidator:
    """
    Declarative validator for a single request parameter.

    Attributes:
        name: Parameter name in request.args
        param_type: Expected type (str, int, float)
        default: Default value if not provided
        required: Reject the request when the parameter is missing
        valid_values: Set of valid string values (for str type only)
        pattern: Regex the raw string value must match in full
        min_val: Minimum value (for int/float)
        max_val: Maximum value (for int/float)
        error_msg: Custom error message format
    """
    name: str
    param_type: type
    default: Any = None
    required: bool = False
    valid_values: Optional[Set[str]] = None
    pattern: Optional[str] = None
    min_val: Optional[Union[int, float]] = None
    max_val: Optional[Union[int, float]] = None
    error_msg: Optional[str] = None

    def _error(self, default_msg: str) -> Tuple[None, Tuple]:
        return None, (jsonify({"error": self.error_msg or default_msg}), 400)

    def validate(self, args: dict) -> Tuple[Optional[Any], Optional[Tuple]]:
        """
        Validate a parameter from request args.

        Returns:
            (value, None) on success
            (None, (jsonify_response, 400)) on error
        """
        raw = args.get(self.name)

        if raw is None or raw == "":
            if self.required:
                return self._error(f"'{self.name}' is required")
            return self.default, None

        if self.pattern and not re.fullmatch(self.pattern, str(raw)):
            return self._error(f"'{self.name}' has an invalid format")

        try:
            if self.param_type == str:
                value = str(raw)
            elif self.param_type == int:
                value = int(raw)
            elif self.param_type == float:
                value = float(raw)
            else:
                value = raw
        except (ValueError, TypeError):
            return self._error(f"'{self.name}' must be a valid {self.param_type.__name__}")

        if self.valid_values and value not in self.valid_values:
            options = ", ".join(f"'{v}'" for v in sorted(self.valid_values))
            return self._error(f"{self.name} must be one of: {options}")

        if self.min_val is not None and value < self.min_val:
            return self._error(f"{self.name} must be >= {self.min_val}")

        if self.max_val is not None and value > self.max_val:
            return self._error(f"{self.name} must be <= {self.max_val}")

        return value, None


def validate_params(
    args: dict,
    validators: list[ParamValidator]
) -> Tuple[dict, Optional[Tuple]]:
    """
    Validate multiple parameters at once.

    Returns:
        (params_dict, None) on success - dict maps param name to validated value
        ({}, error_tuple) on first validation error
    """
    result = {}
    for v in validators:
        value, error = v.validate(args)
        if error:
            return {}, error
        result[v.name] = value
    return result, None


def require_json_fields(body: Optional[dict], fields: list[str]) -> Optional[Tuple]:
    """Error response when the JSON body is missing or lacks any of `fields`."""
    if not isinstance(body, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400
    missing = [f for f in fields if body.get(f) in (None, "")]
    if missing:
        return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400
    return None


# ═══════════════════════════════════════════════════════════════════════════════
# PREDEFINED VALIDATORS
# Common parameters used across multiple endpoints
# ═══════════════════════════════════════════════════════════════════════════════

CURRENCY_PATTERN = r"[A-Za-z]{3}"

AMOUNT = ParamValidator(
    name="amount",
    param_type=float,
    required=True,
    min_val=0,
    error_msg="amount must be a non-negative number",
)

FROM_CURRENCY = ParamValidator(
    name="from",
    param_type=str,
    required=True,
    pattern=CURRENCY_PATTERN,
    error_msg="'from' must be a 3-letter currency code",
)

TO_CURRENCY = ParamValidator(
    name="to",
    param_type=str,
    required=True,
    pattern=CURRENCY_PATTERN,
    error_msg="'to' must be a 3-letter currency code",
)

LOCATION = ParamValidator(name="location", param_type=str, required=True)

OPTIONAL_LOCATION = ParamValidator(name="location", param_type=str, default=None)

SALARY = ParamValidator(name="salary", param_type=str, default=None)

WORK_MODE = ParamValidator(
    name="work_mode",
    param_type=str,
    default=None,
    valid_values=set(WORK_MODES) | {"remote"},
)

COMPANY = ParamValidator(name="company", param_type=str, default=None)

FORCE_REFRESH = ParamValidator(
    name="forceRefresh",
    param_type=str,
    default="false",
    valid_values={"true", "false"},
)

JOB_STATUS = ParamValidator(
    name="status",
    param_type=str,
    default=None,
    valid_values=set(JOB_STATUSES),
)

JOB_SORT = ParamValidator(
    name="sort_by",
    param_type=str,
    default="created",
    valid_values=set(JOB_SORT_MAP),
)

SEARCH = ParamValidator(name="q", param_type=str, default=None)

LIMIT = ParamValidator(name="limit", param_type=int, default=None, min_val=1, max_val=500)
