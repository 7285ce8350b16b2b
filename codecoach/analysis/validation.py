"""
Structural validation of raw analysis responses.

A response is accepted only if the error list is well-formed, the quality
score is a number in [0, 100], and weak_areas is non-empty whenever errors
is. Anything else is an ``InvalidResponse``, which the client retries.
"""
from __future__ import annotations

import json
import math

from .errors import AnalysisError, ErrorKind
from .types import AnalysisReport, ReportedError, Severity

_SEVERITIES = {s.value: s for s in Severity}


def _invalid(message: str) -> AnalysisError:
    return AnalysisError(ErrorKind.INVALID_RESPONSE, message)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def normalize_tag(tag: str) -> str:
    """Normalize a weak-area tag: trimmed, lowercase, spaces as underscores."""
    return "_".join(tag.strip().lower().split())


def extract_json_object(text: str):
    """Parse a JSON object out of LLM text, tolerating code fences or chatter.

    Returns:
        The parsed object, or None if no JSON object can be recovered.
    """
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        pass
    if not isinstance(text, str):
        return None
    start = text.find('{')
    end = text.rfind('}')
    if start != -1 and end > start:
        try:
            return json.loads(text[start:end + 1])
        except json.JSONDecodeError:
            return None
    return None


def _parse_error(index: int, item) -> ReportedError:
    if not isinstance(item, dict):
        raise _invalid(f"errors[{index}] is not an object")

    err_type = item.get("type")
    if not isinstance(err_type, str) or not err_type.strip():
        raise _invalid(f"errors[{index}].type must be a non-empty string")

    severity = item.get("severity")
    if not isinstance(severity, str) or severity.strip().lower() not in _SEVERITIES:
        raise _invalid(f"errors[{index}].severity must be one of low, medium, high")

    line = item.get("line")
    if line is not None and (not isinstance(line, int) or isinstance(line, bool) or line < 0):
        raise _invalid(f"errors[{index}].line must be a non-negative integer or null")

    message = item.get("message")
    if not isinstance(message, str):
        raise _invalid(f"errors[{index}].message must be a string")

    suggestion = item.get("suggestion")
    if suggestion is not None and not isinstance(suggestion, str):
        raise _invalid(f"errors[{index}].suggestion must be a string or null")

    area = item.get("area")
    if area is not None and not isinstance(area, str):
        raise _invalid(f"errors[{index}].area must be a string or null")

    return ReportedError(
        type=err_type.strip(),
        severity=_SEVERITIES[severity.strip().lower()],
        line=line,
        message=message,
        suggestion=suggestion,
        area=normalize_tag(area) if area and area.strip() else None,
    )


def validate_analysis_response(raw, provider: str = "") -> AnalysisReport:
    """Validate a raw provider response and convert it to an AnalysisReport.

    Args:
        raw: Decoded response body (expected to be a dict).
        provider: Name of the provider, recorded on the report.

    Raises:
        AnalysisError: kind InvalidResponse when the structure is wrong.
    """
    if not isinstance(raw, dict):
        raise _invalid("response is not a JSON object")

    errors_raw = raw.get("errors")
    if not isinstance(errors_raw, list):
        raise _invalid("errors must be a list")
    errors = tuple(_parse_error(i, item) for i, item in enumerate(errors_raw))

    weak_raw = raw.get("weak_areas")
    if weak_raw is None:
        weak_raw = []
    if not isinstance(weak_raw, list) or not all(isinstance(t, str) for t in weak_raw):
        raise _invalid("weak_areas must be a list of strings")
    weak_areas = frozenset(normalize_tag(t) for t in weak_raw if t.strip())
    if errors and not weak_areas:
        raise _invalid("weak_areas must be non-empty when errors are reported")

    quality = raw.get("quality_score")
    if not _is_number(quality) or not math.isfinite(quality):
        raise _invalid("quality_score must be a number")
    if not 0 <= quality <= 100:
        raise _invalid(f"quality_score {quality} is outside [0, 100]")

    analysis_time = raw.get("analysis_time_ms", 0)
    if analysis_time is None:
        analysis_time = 0
    if not _is_number(analysis_time) or analysis_time < 0:
        raise _invalid("analysis_time_ms must be a non-negative number")

    return AnalysisReport(
        errors=errors,
        weak_areas=weak_areas,
        quality_score=float(quality),
        analysis_time_ms=int(analysis_time),
        provider=provider,
    )
