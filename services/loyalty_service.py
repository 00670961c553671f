"""
Loyalty accrual service.

Points changes are read-modify-write against the stored balance and are
committed with an optimistic check on that balance, so two concurrent
accruals for the same user cannot overwrite each other.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from domain.loyalty import (
    POINTS_UNIT,
    LoyaltyProgram,
    LoyaltyTier,
    PointsHistoryEntry,
    TierBenefits,
    benefits_for,
    points_for_order_total,
    tier_for,
)
from domain.time import utc_now
from repositories.protocols import LoyaltyRepository

logger = logging.getLogger(__name__)

_SAVE_ATTEMPTS = 5


class LoyaltyConflictError(RuntimeError):
    """Raised when a points change keeps losing to concurrent changes."""


class LoyaltyService:

    def __init__(self, loyalty_repository: LoyaltyRepository, points_unit: int = POINTS_UNIT):
        if points_unit <= 0:
            raise ValueError("points_unit must be > 0")
        self._programs = loyalty_repository
        self._points_unit = points_unit

    @staticmethod
    def tier_for(points: int) -> LoyaltyTier:
        return tier_for(points)

    @staticmethod
    def benefits_for(tier: LoyaltyTier) -> TierBenefits:
        return benefits_for(tier)

    def points_for_order_total(self, total: Decimal) -> int:
        return points_for_order_total(total, self._points_unit)

    def get_program(self, user_id: str) -> LoyaltyProgram:
        """Stored program for user_id, or an empty bronze program if there is none."""

        return self._programs.get_program(user_id) or LoyaltyProgram.empty(user_id)

    def add_points(
        self,
        user_id: str,
        amount: int,
        description: str,
        order_id: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> LoyaltyProgram:
        """
        Credit amount points to user_id, creating the program on first use.

        Raises:
            ValueError: amount is not positive
            LoyaltyConflictError: concurrent updates kept winning
        """

        if amount <= 0:
            raise ValueError("Points amount must be greater than zero")
        timestamp = at or utc_now()

        def change(program: LoyaltyProgram) -> tuple[LoyaltyProgram, PointsHistoryEntry]:
            return program.earn(amount, description, timestamp, order_id=order_id)

        updated = self._commit(user_id, change)
        logger.info(
            "Added %d points to %s (balance %d, tier %s)",
            amount,
            user_id,
            updated.points,
            updated.tier.value,
        )
        return updated

    def redeem_points(
        self,
        user_id: str,
        amount: int,
        description: str,
        at: Optional[datetime] = None,
    ) -> LoyaltyProgram:
        """
        Debit amount points from user_id.

        Raises:
            ValueError: amount is not positive
            InsufficientPointsError: amount exceeds the balance (nothing changes)
            LoyaltyConflictError: concurrent updates kept winning
        """

        if amount <= 0:
            raise ValueError("Points amount must be greater than zero")
        timestamp = at or utc_now()

        def change(program: LoyaltyProgram) -> tuple[LoyaltyProgram, PointsHistoryEntry]:
            return program.redeem(amount, description, timestamp)

        updated = self._commit(user_id, change)
        logger.info("Redeemed %d points from %s (balance %d)", amount, user_id, updated.points)
        return updated

    def award_for_order(
        self,
        user_id: str,
        order_id: str,
        total: Decimal,
        at: Optional[datetime] = None,
    ) -> Optional[LoyaltyProgram]:
        """Credit the points an order total earns; None when it earns nothing."""

        points = self.points_for_order_total(total)
        if points <= 0:
            return None
        return self.add_points(
            user_id,
            points,
            f"Points earned for order #{order_id}",
            order_id=order_id,
            at=at,
        )

    def _commit(self, user_id: str, change) -> LoyaltyProgram:
        for _ in range(_SAVE_ATTEMPTS):
            stored = self._programs.get_program(user_id)
            current = stored or LoyaltyProgram.empty(user_id)
            updated, entry = change(current)
            expected = stored.points if stored is not None else None
            if self._programs.save_points(updated, entry, expected_points=expected):
                return updated
            logger.debug("Points balance for %s changed concurrently; retrying", user_id)

        raise LoyaltyConflictError(
            f"Could not update points for {user_id} after {_SAVE_ATTEMPTS} attempts"
        )


__all__ = ["LoyaltyConflictError", "LoyaltyService"]
