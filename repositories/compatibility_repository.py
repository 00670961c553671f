"""
Motorcycle model and compatibility rule repositories (persistence).

Persistence only: rule fan-out to product compatibility lists is handled by
the compatibility service.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Sequence
from uuid import uuid4

from supabase import Client

from domain.compatibility import CompatibilityRule, MotorcycleModel
from domain.time import parse_utc_datetime, to_iso_utc, utc_now
from repositories.response import execute, response_rows

# Keep these aligned with sql/schema.sql.
_MODELS_TABLE: str = "motorcycle_models"
_RULES_TABLE: str = "compatibility_rules"


def _row_to_model(row: Mapping[str, Any]) -> MotorcycleModel:
    return MotorcycleModel(
        model_id=str(row["model_id"]),
        brand=str(row["brand"]),
        model=str(row["model"]),
        years=tuple(int(y) for y in row.get("years") or ()),
        created_at=parse_utc_datetime(row["created_at_utc"]) if row.get("created_at_utc") else None,
        updated_at=parse_utc_datetime(row["updated_at_utc"]) if row.get("updated_at_utc") else None,
    )


def _row_to_rule(row: Mapping[str, Any]) -> CompatibilityRule:
    return CompatibilityRule(
        rule_id=str(row["rule_id"]),
        product_ids=tuple(str(p) for p in row.get("product_ids") or ()),
        motorcycle_ids=tuple(str(m) for m in row.get("motorcycle_ids") or ()),
        is_universal=bool(row.get("is_universal", False)),
        category_id=row.get("category_id"),
        notes=row.get("notes"),
        created_at=parse_utc_datetime(row["created_at_utc"]) if row.get("created_at_utc") else None,
        updated_at=parse_utc_datetime(row["updated_at_utc"]) if row.get("updated_at_utc") else None,
    )


class SupabaseMotorcycleRepository:
    """Motorcycle catalogue stored in `motorcycle_models`."""

    def __init__(self, client: Client):
        self._client = client

    def get_models(self, model_ids: Iterable[str]) -> List[MotorcycleModel]:
        ids = list(dict.fromkeys(model_ids))
        if not ids:
            return []
        response = execute(
            "fetch motorcycle models",
            lambda: self._client.table(_MODELS_TABLE).select("*").in_("model_id", ids).execute(),
        )
        return [_row_to_model(row) for row in response_rows(response, "fetch motorcycle models")]

    def list_models(self, brand: Optional[str] = None) -> List[MotorcycleModel]:
        query = self._client.table(_MODELS_TABLE).select("*")
        if brand:
            query = query.eq("brand", brand)
        query = query.order("brand").order("model")
        response = execute("list motorcycle models", query.execute)
        return [_row_to_model(row) for row in response_rows(response, "list motorcycle models")]

    def add_model(self, brand: str, model: str, years: Sequence[int]) -> MotorcycleModel:
        """
        Insert a motorcycle model.

        Raises ValueError when the same (brand, model) is already catalogued.
        """

        now = utc_now()
        payload: dict[str, Any] = {
            "model_id": str(uuid4()),
            "brand": brand,
            "model": model,
            "years": sorted(set(int(y) for y in years)),
            "created_at_utc": to_iso_utc(now, name="created_at"),
            "updated_at_utc": to_iso_utc(now, name="updated_at"),
        }

        existing = execute(
            "check motorcycle model uniqueness",
            lambda: self._client.table(_MODELS_TABLE)
            .select("model_id")
            .eq("brand", brand)
            .eq("model", model)
            .limit(1)
            .execute(),
        )
        if response_rows(existing, "check motorcycle model uniqueness"):
            raise ValueError(f"Motorcycle model already exists: {brand} {model}")

        response = execute(
            "create motorcycle model",
            lambda: self._client.table(_MODELS_TABLE).insert(payload).execute(),
        )
        rows = response_rows(response, "create motorcycle model")
        return _row_to_model(rows[0] if rows else payload)

    def delete_model(self, model_id: str) -> None:
        response = execute(
            "delete motorcycle model",
            lambda: self._client.table(_MODELS_TABLE).delete().eq("model_id", model_id).execute(),
        )
        response_rows(response, "delete motorcycle model")


class SupabaseCompatibilityRuleRepository:
    """Compatibility rules stored in `compatibility_rules`."""

    def __init__(self, client: Client):
        self._client = client

    def create_rule(
        self,
        product_ids: Sequence[str],
        motorcycle_ids: Sequence[str],
        is_universal: bool = False,
        category_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CompatibilityRule:
        now = utc_now()
        payload: dict[str, Any] = {
            "rule_id": str(uuid4()),
            "product_ids": list(dict.fromkeys(product_ids)),
            "motorcycle_ids": list(dict.fromkeys(motorcycle_ids)),
            "is_universal": is_universal,
            "category_id": category_id,
            "notes": notes,
            "created_at_utc": to_iso_utc(now, name="created_at"),
            "updated_at_utc": to_iso_utc(now, name="updated_at"),
        }
        response = execute(
            "create compatibility rule",
            lambda: self._client.table(_RULES_TABLE).insert(payload).execute(),
        )
        rows = response_rows(response, "create compatibility rule")
        return _row_to_rule(rows[0] if rows else payload)

    def get_rule(self, rule_id: str) -> Optional[CompatibilityRule]:
        response = execute(
            "fetch compatibility rule",
            lambda: self._client.table(_RULES_TABLE)
            .select("*")
            .eq("rule_id", rule_id)
            .limit(1)
            .execute(),
        )
        rows = response_rows(response, "fetch compatibility rule")
        return _row_to_rule(rows[0]) if rows else None

    def save_rule(self, rule: CompatibilityRule) -> CompatibilityRule:
        payload: dict[str, Any] = {
            "product_ids": list(rule.product_ids),
            "motorcycle_ids": list(rule.motorcycle_ids),
            "is_universal": rule.is_universal,
            "category_id": rule.category_id,
            "notes": rule.notes,
            "updated_at_utc": to_iso_utc(utc_now(), name="updated_at"),
        }
        response = execute(
            "update compatibility rule",
            lambda: self._client.table(_RULES_TABLE)
            .update(payload)
            .eq("rule_id", rule.rule_id)
            .execute(),
        )
        rows = response_rows(response, "update compatibility rule")
        if not rows:
            raise ValueError(f"Compatibility rule not found: {rule.rule_id}")
        return _row_to_rule(rows[0])

    def delete_rule(self, rule_id: str) -> None:
        response = execute(
            "delete compatibility rule",
            lambda: self._client.table(_RULES_TABLE).delete().eq("rule_id", rule_id).execute(),
        )
        response_rows(response, "delete compatibility rule")

    def list_universal_rules(self) -> List[CompatibilityRule]:
        response = execute(
            "list universal rules",
            lambda: self._client.table(_RULES_TABLE).select("*").eq("is_universal", True).execute(),
        )
        return [_row_to_rule(row) for row in response_rows(response, "list universal rules")]

    def list_rules_for_model(self, model_id: str) -> List[CompatibilityRule]:
        response = execute(
            "list rules for motorcycle model",
            lambda: self._client.table(_RULES_TABLE)
            .select("*")
            .contains("motorcycle_ids", [model_id])
            .execute(),
        )
        return [_row_to_rule(row) for row in response_rows(response, "list rules for motorcycle model")]


__all__ = [
    "SupabaseCompatibilityRuleRepository",
    "SupabaseMotorcycleRepository",
]
