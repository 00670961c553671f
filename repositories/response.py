"""
Helpers for reading Supabase responses.

postgrest-py raises APIError for most failures, but older client versions
also report errors on the response object; both paths end in RuntimeError so
services see a single storage failure type.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, TypeVar

from postgrest.exceptions import APIError

T = TypeVar("T")


def execute(action: str, run: Callable[[], T]) -> T:
    """Run a query builder's execute(), converting API errors to RuntimeError."""

    try:
        return run()
    except APIError as e:
        raise RuntimeError(f"Failed to {action}: {e.message or e}") from e


def response_rows(response: Any, action: str) -> List[Dict[str, Any]]:
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return list(getattr(response, "data", None) or [])


def response_data(response: Any, action: str) -> Any:
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return getattr(response, "data", None)


__all__ = ["execute", "response_data", "response_rows"]
