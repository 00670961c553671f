"""
Compatibility resolver.

Answers compatibility in both directions (products for a motorcycle,
motorcycles for a product) and keeps the denormalized per-product
compatibility lists in step with the compatibility rules:

- Creating a rule fans its expanded entries out to every product it names.
- Updating a rule re-syncs old and new products in one write per product.
- Deleting a rule removes exactly what that rule contributed.
- Deleting a motorcycle model pulls it from every rule that references it.
- Each product write is a compare-and-set on its compatibility version; a
  lost race re-reads the product and re-applies the change.

Applying the same rule twice is a no-op (entries are merged by their
(brand, model, year) triple).
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from domain.compatibility import (
    CompatibilityEntry,
    CompatibilityRule,
    MotorcycleModel,
    MotorcycleSelector,
    expand_rule_to_compatibility_entries,
    merge_rule_entries,
    subtract_rule_entries,
)
from domain.product import Product
from repositories.protocols import (
    CompatibilityRuleRepository,
    MotorcycleRepository,
    ProductQueryFilters,
    ProductRepository,
)

logger = logging.getLogger(__name__)

_PAGE_SIZE = 500
_MAX_REWRITE_ATTEMPTS = 5

# Marks an update_rule field the caller did not send.
_KEEP: Any = object()

EntriesTransform = Callable[[Product], Tuple[CompatibilityEntry, ...]]


class CompatibilityConflictError(RuntimeError):
    """A product's compatibility list kept changing during a rule fan-out."""


class CompatibilityResolver:

    def __init__(
        self,
        product_repository: ProductRepository,
        motorcycle_repository: MotorcycleRepository,
        rule_repository: CompatibilityRuleRepository,
    ):
        self._products = product_repository
        self._motorcycles = motorcycle_repository
        self._rules = rule_repository

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_compatible(
        self,
        product: Product,
        brand: str,
        model: Optional[str] = None,
        year: Optional[int] = None,
    ) -> bool:
        """
        Check one product against a (progressively narrowed) motorcycle.

        A product without compatibility data is incompatible unless a
        universal rule covers it.
        """

        selector = MotorcycleSelector(brand=brand, model=model, year=year)
        universal = product.product_id in self._universal_product_ids()
        return product.fits(selector, universal=universal)

    def products_compatible_with(
        self,
        brand: str,
        model: Optional[str] = None,
        year: Optional[int] = None,
        category: Optional[str] = None,
    ) -> Set[str]:
        """
        Ids of products that fit the motorcycle, including universal-rule products.

        category (if given) restricts both the matched and the universal products.
        """

        selector = MotorcycleSelector(brand=brand, model=model, year=year)

        matched: Set[str] = set()
        candidates = ProductQueryFilters(category=category, compatible_brand=selector.brand)
        for product in self._iter_products(candidates):
            if product.fits(selector):
                matched.add(product.product_id)

        universal_ids = self._universal_product_ids(category_id=category)
        if universal_ids:
            if category is None:
                matched |= universal_ids
            else:
                matched |= {
                    p.product_id
                    for p in self._products.get_products(universal_ids)
                    if p.category == category
                }

        return matched

    def motorcycles_for_product(self, product_id: str) -> List[MotorcycleModel]:
        """Catalogued motorcycle models the product fits (all of them for universal products)."""

        product = self._products.get_product(product_id)
        if product is None:
            return []

        models = self._motorcycles.list_models()
        if product_id in self._universal_product_ids():
            return models
        return [m for m in models if any(m.fits(entry) for entry in product.compatible_with)]

    def list_motorcycle_models(self, brand: Optional[str] = None) -> List[MotorcycleModel]:
        return self._motorcycles.list_models(brand)

    def get_rule(self, rule_id: str) -> Optional[CompatibilityRule]:
        return self._rules.get_rule(rule_id)

    def expand_rule_to_compatibility_entries(self, rule: CompatibilityRule) -> List[CompatibilityEntry]:
        models = self._motorcycles.get_models(rule.motorcycle_ids)
        missing = set(rule.motorcycle_ids) - {m.model_id for m in models}
        if missing:
            logger.warning(
                "Rule %s references unknown motorcycle models: %s", rule.rule_id, sorted(missing)
            )
        return expand_rule_to_compatibility_entries(rule, models)

    # ------------------------------------------------------------------
    # Rule fan-out
    # ------------------------------------------------------------------

    def apply_rule_to_products(self, rule: CompatibilityRule) -> int:
        """Merge the rule's entries into each product it names; returns products changed."""

        expanded = self.expand_rule_to_compatibility_entries(rule)
        return self._rewrite(
            rule.product_ids,
            lambda product: merge_rule_entries(product.compatible_with, rule.rule_id, expanded),
        )

    def remove_rule_from_products(self, rule: CompatibilityRule) -> int:
        """Remove what the rule contributed from each product it names; returns products changed."""

        return self._rewrite(
            rule.product_ids,
            lambda product: subtract_rule_entries(product.compatible_with, rule.rule_id),
        )

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def create_rule(
        self,
        product_ids: Sequence[str],
        motorcycle_ids: Sequence[str],
        is_universal: bool = False,
        category_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CompatibilityRule:
        """
        Store a new rule and fan it out to its products.

        Raises:
            ValueError: no products, or a non-universal rule without motorcycles
        """

        _validate_rule_targets(product_ids, motorcycle_ids, is_universal)
        rule = self._rules.create_rule(
            product_ids=product_ids,
            motorcycle_ids=motorcycle_ids,
            is_universal=is_universal,
            category_id=category_id,
            notes=notes,
        )
        changed = self.apply_rule_to_products(rule)
        logger.info(
            "Created compatibility rule %s (%d products, %d models, universal=%s); %d products updated",
            rule.rule_id,
            len(rule.product_ids),
            len(rule.motorcycle_ids),
            rule.is_universal,
            changed,
        )
        return rule

    def update_rule(
        self,
        rule_id: str,
        product_ids: Optional[Sequence[str]] = None,
        motorcycle_ids: Optional[Sequence[str]] = None,
        is_universal: Optional[bool] = None,
        category_id: Any = _KEEP,
        notes: Any = _KEEP,
    ) -> Optional[CompatibilityRule]:
        """
        Change a rule and re-sync every product it used to name or now names.

        Omitted fields keep their stored values; category_id and notes can be
        cleared by passing None. Returns None if the rule does not exist.
        """

        existing = self._rules.get_rule(rule_id)
        if existing is None:
            return None

        candidate = replace(
            existing,
            product_ids=tuple(dict.fromkeys(product_ids)) if product_ids is not None else existing.product_ids,
            motorcycle_ids=(
                tuple(dict.fromkeys(motorcycle_ids)) if motorcycle_ids is not None else existing.motorcycle_ids
            ),
            is_universal=is_universal if is_universal is not None else existing.is_universal,
            category_id=existing.category_id if category_id is _KEEP else category_id,
            notes=existing.notes if notes is _KEEP else notes,
        )
        _validate_rule_targets(candidate.product_ids, candidate.motorcycle_ids, candidate.is_universal)

        updated = self._rules.save_rule(candidate)
        changed = self._resync(existing, updated)
        logger.info("Updated compatibility rule %s; %d products updated", rule_id, changed)
        return updated

    def delete_rule(self, rule_id: str) -> bool:
        """Remove a rule's contribution from its products, then the rule itself."""

        rule = self._rules.get_rule(rule_id)
        if rule is None:
            return False

        changed = self.remove_rule_from_products(rule)
        self._rules.delete_rule(rule_id)
        logger.info("Deleted compatibility rule %s; %d products updated", rule_id, changed)
        return True

    def add_motorcycle_model(self, brand: str, model: str, years: Iterable[int]) -> MotorcycleModel:
        year_list = sorted(set(years))
        if not brand.strip() or not model.strip():
            raise ValueError("brand and model must be non-empty")
        if not year_list:
            raise ValueError("a motorcycle model needs at least one year")
        if any(year <= 0 for year in year_list):
            raise ValueError("years must be positive integers")
        return self._motorcycles.add_model(brand.strip(), model.strip(), year_list)

    def delete_motorcycle_model(self, model_id: str) -> int:
        """
        Delete a model and pull it out of every rule referencing it.

        Returns the number of rules that were changed.
        """

        rules = self._rules.list_rules_for_model(model_id)
        for rule in rules:
            trimmed = replace(
                rule, motorcycle_ids=tuple(m for m in rule.motorcycle_ids if m != model_id)
            )
            self._rules.save_rule(trimmed)
            self._resync(rule, trimmed)

        self._motorcycles.delete_model(model_id)
        logger.info("Deleted motorcycle model %s; %d rules updated", model_id, len(rules))
        return len(rules)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resync(self, before: CompatibilityRule, after: CompatibilityRule) -> int:
        """Rewrite old and new products of a rule so they carry exactly `after`'s entries."""

        expanded = self.expand_rule_to_compatibility_entries(after)
        keep = set(after.product_ids)

        def transform(product: Product) -> Tuple[CompatibilityEntry, ...]:
            stripped = subtract_rule_entries(product.compatible_with, after.rule_id)
            if product.product_id in keep:
                return merge_rule_entries(stripped, after.rule_id, expanded)
            return stripped

        targets = tuple(dict.fromkeys(before.product_ids + after.product_ids))
        return self._rewrite(targets, transform)

    def _rewrite(self, product_ids: Sequence[str], transform: EntriesTransform) -> int:
        products = self._products.get_products(product_ids)
        found = {p.product_id for p in products}
        missing = [pid for pid in product_ids if pid not in found]
        if missing:
            logger.warning("Compatibility update skipped unknown products: %s", missing)

        return sum(1 for product in products if self._rewrite_product(product, transform))

    def _rewrite_product(self, product: Product, transform: EntriesTransform) -> bool:
        """
        Apply transform to one product's list with a compare-and-set write.

        A lost race re-reads the product and re-applies transform to the
        fresh list, so entries written by another rule are kept.
        """

        current: Optional[Product] = product
        for _ in range(_MAX_REWRITE_ATTEMPTS):
            if current is None:
                logger.warning("Product %s vanished during compatibility update", product.product_id)
                return False
            entries = transform(current)
            if entries == current.compatible_with:
                return False
            if self._products.update_compatibility(
                current.product_id, entries, current.compatibility_version
            ):
                return True
            current = self._products.get_product(product.product_id)

        raise CompatibilityConflictError(
            f"Compatibility of product {product.product_id} kept changing; "
            f"gave up after {_MAX_REWRITE_ATTEMPTS} attempts"
        )

    def _universal_product_ids(self, category_id: Optional[str] = None) -> Set[str]:
        ids: Set[str] = set()
        for rule in self._rules.list_universal_rules():
            if category_id and rule.category_id and rule.category_id != category_id:
                continue
            ids.update(rule.product_ids)
        return ids

    def _iter_products(self, filters: ProductQueryFilters) -> Iterator[Product]:
        offset = 0
        while True:
            page = self._products.search_products(filters, limit=_PAGE_SIZE, offset=offset)
            yield from page
            if len(page) < _PAGE_SIZE:
                return
            offset += _PAGE_SIZE


def _validate_rule_targets(
    product_ids: Sequence[str], motorcycle_ids: Sequence[str], is_universal: bool
) -> None:
    if not product_ids:
        raise ValueError("a compatibility rule needs at least one product")
    if not is_universal and not motorcycle_ids:
        raise ValueError("a non-universal compatibility rule needs at least one motorcycle model")


__all__ = ["CompatibilityConflictError", "CompatibilityResolver"]
