"""
Domain: Motorcycle compatibility.

Rules implemented here:
- A compatibility entry is a (brand, model, year) triple recorded on a product.
  The year is either a single year ("2019") or an inclusive textual range
  ("2015-2020").
- Matching is progressive: brand is required, model and year each narrow the
  match further when present. A brand-only selector matches on brand alone.
- A product with no compatibility entries is incompatible unless a universal
  rule covers it.
- Compatibility rules are flattened into per-product entries: every supported
  year of every referenced motorcycle model becomes one entry.
- Entries are de-duplicated by their (brand, model, year) triple. Each entry
  records which rules contributed it so that removing one rule never removes
  entries another rule (or a manual edit) also contributed.

This module contains only pure domain entities/value objects: no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .time import require_utc_timestamp

EntryKey = Tuple[str, str, str]


def _parse_year_expression(text: str) -> Optional[Tuple[int, int]]:
    """
    Parse a year expression into an inclusive (start, end) pair.

    "2019" -> (2019, 2019); "2015-2020" -> (2015, 2020).
    Returns None for anything that is not a year or a well-formed range.
    """

    text = text.strip()
    if not text:
        return None

    if "-" in text:
        start_text, _, end_text = text.partition("-")
        try:
            start, end = int(start_text.strip()), int(end_text.strip())
        except ValueError:
            return None
        if start > end:
            return None
        return start, end

    try:
        year = int(text)
    except ValueError:
        return None
    return year, year


@dataclass(frozen=True, slots=True)
class CompatibilityEntry:
    """
    A single (brand, model, year) tuple a product supports.

    manual: entry was entered directly on the product by an admin.
    rule_ids: compatibility rules that contributed this entry.
    """

    brand: str
    model: str
    year: str
    manual: bool = True
    rule_ids: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not self.brand.strip():
            raise ValueError("brand must be non-empty")
        if not self.model.strip():
            raise ValueError("model must be non-empty")

    @property
    def key(self) -> EntryKey:
        return (self.brand, self.model, self.year.strip())

    @property
    def is_range(self) -> bool:
        bounds = _parse_year_expression(self.year)
        return bounds is not None and bounds[0] != bounds[1]

    def covers_year(self, year: int) -> bool:
        """Range entries match inclusively; single-year entries need exact equality."""

        bounds = _parse_year_expression(self.year)
        if bounds is None:
            return False
        start, end = bounds
        return start <= year <= end

    def matches(self, selector: "MotorcycleSelector") -> bool:
        if self.brand != selector.brand:
            return False
        if selector.model is not None and self.model != selector.model:
            return False
        if selector.year is not None and not self.covers_year(selector.year):
            return False
        return True


@dataclass(frozen=True, slots=True)
class MotorcycleSelector:
    """
    Progressive motorcycle filter: brand, then optionally model, then optionally year.
    """

    brand: str
    model: Optional[str] = None
    year: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.brand or not self.brand.strip():
            raise ValueError("brand must be non-empty")
        if self.model is not None and not self.model.strip():
            raise ValueError("model must be non-empty when given")
        if self.year is not None and self.year <= 0:
            raise ValueError("year must be a positive integer")

    def describe(self) -> str:
        parts = [self.brand]
        if self.model:
            parts.append(self.model)
        if self.year is not None:
            parts.append(str(self.year))
        return " ".join(parts)


@dataclass(frozen=True, slots=True)
class MotorcycleModel:
    """A catalogued motorcycle model with its explicit (possibly non-contiguous) years."""

    model_id: str
    brand: str
    model: str
    years: Tuple[int, ...]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    def fits(self, entry: CompatibilityEntry) -> bool:
        """True if the entry describes this model in at least one of its years."""

        if entry.brand != self.brand or entry.model != self.model:
            return False
        return any(entry.covers_year(year) for year in self.years)


@dataclass(frozen=True, slots=True)
class CompatibilityRule:
    """
    Admin-managed association between products and motorcycle models.

    When is_universal is set the rule's products fit every motorcycle and the
    motorcycle_ids are ignored for matching.
    """

    rule_id: str
    product_ids: Tuple[str, ...]
    motorcycle_ids: Tuple[str, ...]
    is_universal: bool = False
    category_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    def covers_product(self, product_id: str) -> bool:
        return product_id in self.product_ids


def is_compatible(
    entries: Sequence[CompatibilityEntry],
    selector: MotorcycleSelector,
    *,
    universal: bool = False,
) -> bool:
    """
    Decide whether a product with the given entries fits the selected motorcycle.

    universal: the product is covered by a universal rule.
    """

    if universal:
        return True
    if not entries:
        return False
    return any(entry.matches(selector) for entry in entries)


def expand_rule_to_compatibility_entries(
    rule: CompatibilityRule,
    models: Iterable[MotorcycleModel],
) -> List[CompatibilityEntry]:
    """
    Flatten a rule into one entry per (referenced model, supported year).

    Models the rule does not reference are ignored. The year list is expanded
    as given; gaps are preserved.
    """

    wanted = set(rule.motorcycle_ids)
    expanded: Dict[EntryKey, CompatibilityEntry] = {}
    for moto in models:
        if moto.model_id not in wanted:
            continue
        for year in sorted(set(moto.years)):
            entry = CompatibilityEntry(
                brand=moto.brand,
                model=moto.model,
                year=str(year),
                manual=False,
                rule_ids=frozenset({rule.rule_id}),
            )
            expanded.setdefault(entry.key, entry)
    return list(expanded.values())


def merge_rule_entries(
    existing: Sequence[CompatibilityEntry],
    rule_id: str,
    expanded: Iterable[CompatibilityEntry],
) -> Tuple[CompatibilityEntry, ...]:
    """
    Merge a rule's expanded entries into a product's list.

    Existing entries with the same triple gain the rule id instead of being
    duplicated, so merging the same rule twice yields the same list.
    """

    merged: List[CompatibilityEntry] = list(existing)
    index: Dict[EntryKey, int] = {}
    for position, entry in enumerate(merged):
        index.setdefault(entry.key, position)

    for entry in expanded:
        position = index.get(entry.key)
        if position is None:
            index[entry.key] = len(merged)
            merged.append(replace(entry, manual=False, rule_ids=frozenset({rule_id})))
            continue
        current = merged[position]
        if rule_id not in current.rule_ids:
            merged[position] = replace(current, rule_ids=current.rule_ids | {rule_id})

    return tuple(merged)


def subtract_rule_entries(
    existing: Sequence[CompatibilityEntry],
    rule_id: str,
) -> Tuple[CompatibilityEntry, ...]:
    """
    Remove exactly what a rule contributed to a product's list.

    Entries still backed by another rule or by a manual edit are kept; only
    the rule id is dropped from their provenance.
    """

    remaining: List[CompatibilityEntry] = []
    for entry in existing:
        if rule_id not in entry.rule_ids:
            remaining.append(entry)
            continue
        rule_ids = entry.rule_ids - {rule_id}
        if rule_ids or entry.manual:
            remaining.append(replace(entry, rule_ids=rule_ids))
    return tuple(remaining)


__all__ = [
    "CompatibilityEntry",
    "CompatibilityRule",
    "MotorcycleModel",
    "MotorcycleSelector",
    "expand_rule_to_compatibility_entries",
    "is_compatible",
    "merge_rule_entries",
    "subtract_rule_entries",
]
