"""Shared helpers for parameter checks, URL validation and result conversion.

PUBLIC API:
  - check_params: Raise MissingParametersError for unset values
  - validate_url: Raise InvalidUrlError unless a URL is well-formed
  - simple_stringify: JSON-encode a value for logs without noisy helper keys
  - convert_javascript_evaluation_result: Unwrap a remote evaluation result
"""

import copy
import json
import re
from typing import Any
from urllib.parse import urlsplit

from wirtap.errors import InvalidUrlError, JavaScriptEvaluationError, MissingParametersError, WirTapError

RESPONSE_LOG_LENGTH = 100

# Helper functions serialized alongside JS number objects
_NOISY_PROPERTIES = ("ceil", "clone", "floor", "round", "scale", "toString")

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")
_HIERARCHICAL_SCHEMES = {"http", "https", "ws", "wss", "ftp"}


def check_params(params: dict[str, Any]) -> dict[str, Any]:
    """Ensure every value in params is set.

    Args:
        params: Parameter names mapped to values.

    Returns:
        The same params dict.

    Raises:
        MissingParametersError: If any value is None.
    """
    missing = [name for name, value in params.items() if value is None]
    if missing:
        raise MissingParametersError(missing)
    return params


def validate_url(url: Any) -> str:
    """Check that url is absolute and well-formed."""
    if not isinstance(url, str) or not url or any(ch.isspace() for ch in url):
        raise InvalidUrlError(f"Invalid URL: {url!r}")

    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise InvalidUrlError(f"Invalid URL: {url!r}") from e

    if not parts.scheme or not _SCHEME_RE.match(parts.scheme):
        raise InvalidUrlError(f"Invalid URL: {url!r}")
    if parts.scheme.lower() in _HIERARCHICAL_SCHEMES and not parts.netloc:
        raise InvalidUrlError(f"Invalid URL: {url!r}")

    return url


def _remove_noisy_properties(value: Any) -> Any:
    if isinstance(value, dict):
        for prop in _NOISY_PROPERTIES:
            value.pop(prop, None)
    return value


def simple_stringify(value: Any, multiline: bool = False) -> str:
    if not value:
        return json.dumps(value)
    clean = _remove_noisy_properties(copy.copy(value))
    return json.dumps(clean, indent=2 if multiline else None, default=str)


def _truncate(text: str, length: int = RESPONSE_LOG_LENGTH) -> str:
    return text if len(text) <= length else f"{text[: length - 3]}..."


def convert_javascript_evaluation_result(res: Any) -> Any:
    """Unwrap a remote evaluation result into a plain value.

    Strings are decoded as JSON when possible. Objects with a non-zero
    ``status`` are treated as script failures. Otherwise the ``value`` field
    is returned when present, else the object itself.

    Args:
        res: Raw result from Runtime.evaluate or a similar command.

    Returns:
        The converted value with noisy helper keys removed.

    Raises:
        WirTapError: If no result was returned or it has an unexpected type.
        JavaScriptEvaluationError: If the result reports a failure status.
    """
    if res is None:
        raise WirTapError(
            f"Did not get OK result from remote debugger. Result was: {_truncate(simple_stringify(res))}"
        )
    if isinstance(res, str):
        try:
            res = json.loads(res)
        except ValueError:
            # Plain string value
            pass
    elif isinstance(res, bool) or not isinstance(res, (dict, list)):
        raise WirTapError(f"Result has unexpected type: ({type(res).__name__}).")

    if isinstance(res, dict):
        status = res.get("status")
        if status:
            value = res.get("value")
            message = value.get("message") if isinstance(value, dict) else None
            raise JavaScriptEvaluationError(str(message or value), status=status, value=value)
        if "value" in res:
            return _remove_noisy_properties(res["value"])

    return _remove_noisy_properties(res)


__all__ = ["check_params", "validate_url", "simple_stringify", "convert_javascript_evaluation_result"]
