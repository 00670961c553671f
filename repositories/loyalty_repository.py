"""
Loyalty repository (persistence).

Programs live in `loyalty_programs`, history in `loyalty_points_history`.
Balance changes go through the `apply_loyalty_points` PostgreSQL function,
which updates points and tier and appends the history row in one
transaction, guarded by the balance the caller computed from.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from supabase import Client

from domain.loyalty import LoyaltyProgram, PointsEntryType, PointsHistoryEntry
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.response import execute, response_data, response_rows

# Keep these aligned with sql/schema.sql.
_PROGRAMS_TABLE: str = "loyalty_programs"
_HISTORY_TABLE: str = "loyalty_points_history"


def _row_to_entry(row: Mapping[str, Any]) -> PointsHistoryEntry:
    return PointsHistoryEntry(
        user_id=str(row["user_id"]),
        amount=int(row["amount"]),
        entry_type=PointsEntryType(str(row["entry_type"])),
        description=str(row.get("description") or ""),
        created_at=parse_utc_datetime(row["created_at_utc"]),
        order_id=row.get("order_id"),
    )


class SupabaseLoyaltyRepository:
    """Loyalty programs and their points history."""

    def __init__(self, client: Client):
        self._client = client

    def get_program(self, user_id: str) -> Optional[LoyaltyProgram]:
        """Program with its history, newest entry first; None if the user has none."""

        response = execute(
            "fetch loyalty program",
            lambda: self._client.table(_PROGRAMS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute(),
        )
        rows = response_rows(response, "fetch loyalty program")
        if not rows:
            return None
        row = rows[0]

        history_response = execute(
            "fetch loyalty history",
            lambda: self._client.table(_HISTORY_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at_utc", desc=True)
            .execute(),
        )
        history = tuple(
            _row_to_entry(h) for h in response_rows(history_response, "fetch loyalty history")
        )

        return LoyaltyProgram(
            user_id=str(row["user_id"]),
            points=int(row["points"]),
            history=history,
            created_at=parse_utc_datetime(row["created_at_utc"]) if row.get("created_at_utc") else None,
            updated_at=parse_utc_datetime(row["updated_at_utc"]) if row.get("updated_at_utc") else None,
        )

    def save_points(
        self,
        program: LoyaltyProgram,
        entry: PointsHistoryEntry,
        expected_points: Optional[int],
    ) -> bool:
        params: dict[str, Any] = {
            "p_user_id": program.user_id,
            "p_expected_points": expected_points,
            "p_new_points": program.points,
            "p_tier": program.tier.value,
            "p_amount": entry.amount,
            "p_entry_type": entry.entry_type.value,
            "p_description": entry.description,
            "p_order_id": entry.order_id,
            "p_at": to_iso_utc(entry.created_at, name="created_at"),
        }
        response = execute(
            "apply loyalty points",
            lambda: self._client.rpc("apply_loyalty_points", params).execute(),
        )
        return bool(response_data(response, "apply loyalty points"))


__all__ = ["SupabaseLoyaltyRepository"]
