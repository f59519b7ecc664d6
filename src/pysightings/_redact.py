"""Helpers for safe debug logging.

Some providers take their API key as a query parameter, so request URLs
and parameter dicts are redacted before being emitted in DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pysightings._constants import SENSITIVE_PARAMS

_MASK = "<redacted>"


def _is_sensitive(key: str) -> bool:
    return key.lower() in SENSITIVE_PARAMS


def redact_params(params: Mapping[str, Any] | None) -> dict[str, Any]:
    """Copy of the query parameters with sensitive values masked."""
    return {key: _MASK if _is_sensitive(key) else value for key, value in (params or {}).items()}


def redact_url(url: str) -> str:
    """Replace sensitive query parameter values in *url*."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    pairs = [
        (key, _MASK if _is_sensitive(key) else value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(pairs, safe="<>")))
