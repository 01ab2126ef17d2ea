from __future__ import annotations

from typing import Literal

EnvelopeShape = Literal["list", "data_list", "credentials_list", "data_credentials_list", "unknown"]


def classify_portfolio_envelope(payload) -> EnvelopeShape:
    """Name which of the accepted list envelopes ``payload`` is.

    Accepted shapes, checked in this order:

    - ``[...]``
    - ``{"data": [...]}``
    - ``{"credentials": [...]}``
    - ``{"data": {"credentials": [...]}}``
    """
    if isinstance(payload, list):
        return "list"
    if not isinstance(payload, dict):
        return "unknown"
    data = payload.get("data")
    if isinstance(data, list):
        return "data_list"
    if isinstance(payload.get("credentials"), list):
        return "credentials_list"
    if isinstance(data, dict) and isinstance(data.get("credentials"), list):
        return "data_credentials_list"
    return "unknown"


_EXTRACTORS = {
    "list": lambda p: p,
    "data_list": lambda p: p["data"],
    "credentials_list": lambda p: p["credentials"],
    "data_credentials_list": lambda p: p["data"]["credentials"],
    "unknown": lambda p: [],
}


def unwrap_portfolio_list(payload) -> list[dict]:
    shape = classify_portfolio_envelope(payload)
    items = _EXTRACTORS[shape](payload)
    return [item for item in items if isinstance(item, dict)]


def unwrap_data(payload, default=None):
    """Return ``payload["data"]`` of a ``{success, data}`` envelope."""
    if not isinstance(payload, dict):
        return default
    data = payload.get("data")
    return default if data is None else data


def error_message(payload) -> str | None:
    if not isinstance(payload, dict):
        return None
    for key in ("message", "error", "detail"):
        val = payload.get(key)
        if isinstance(val, str) and val.strip():
            return val
    return None
