"""
Domain: Loyalty program.

Rules implemented here:
- Tier is derived from points through fixed ascending thresholds:
    BRONZE:   points < 500
    SILVER:   500 <= points < 2000
    GOLD:     2000 <= points < 5000
    PLATINUM: points >= 5000
  The tier is never stored independently of the points that produce it.
- Points never go negative; redeeming more than the balance is refused.
- Points history is append-only.
- Orders earn one point per POINTS_UNIT of order total (rounded down).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Mapping, Optional, Tuple

from .time import require_utc_timestamp


class LoyaltyTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)


_TIER_ORDER: Tuple[LoyaltyTier, ...] = (
    LoyaltyTier.BRONZE,
    LoyaltyTier.SILVER,
    LoyaltyTier.GOLD,
    LoyaltyTier.PLATINUM,
)

# Minimum points for each tier, highest first.
TIER_THRESHOLDS: Tuple[Tuple[int, LoyaltyTier], ...] = (
    (5000, LoyaltyTier.PLATINUM),
    (2000, LoyaltyTier.GOLD),
    (500, LoyaltyTier.SILVER),
    (0, LoyaltyTier.BRONZE),
)

POINTS_UNIT: int = 100


def tier_for(points: int) -> LoyaltyTier:
    if points < 0:
        raise ValueError("points must be >= 0")
    for minimum, tier in TIER_THRESHOLDS:
        if points >= minimum:
            return tier
    return LoyaltyTier.BRONZE


def points_for_order_total(total: Decimal, points_unit: int = POINTS_UNIT) -> int:
    """One point per points_unit of order total, rounded down."""

    if points_unit <= 0:
        raise ValueError("points_unit must be > 0")
    if total <= 0:
        return 0
    return int((total / Decimal(points_unit)).to_integral_value(rounding=ROUND_FLOOR))


@dataclass(frozen=True, slots=True)
class TierBenefits:
    discount_percentage: int
    free_shipping: bool
    priority_support: bool
    exclusive_offers: bool


TIER_BENEFITS: Mapping[LoyaltyTier, TierBenefits] = {
    LoyaltyTier.BRONZE: TierBenefits(5, False, False, False),
    LoyaltyTier.SILVER: TierBenefits(7, False, False, False),
    LoyaltyTier.GOLD: TierBenefits(10, True, True, False),
    LoyaltyTier.PLATINUM: TierBenefits(15, True, True, True),
}


def benefits_for(tier: LoyaltyTier) -> TierBenefits:
    return TIER_BENEFITS[tier]


class InsufficientPointsError(ValueError):
    """Raised when a redemption exceeds the current points balance."""

    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient points to redeem. Requested: {requested}, Available: {available}"
        )


class PointsEntryType(str, Enum):
    EARNED = "earned"
    REDEEMED = "redeemed"


@dataclass(frozen=True, slots=True)
class PointsHistoryEntry:
    user_id: str
    amount: int
    entry_type: PointsEntryType
    description: str
    created_at: datetime
    order_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError("amount must be > 0")
        require_utc_timestamp("created_at", self.created_at)


@dataclass(frozen=True, slots=True)
class LoyaltyProgram:
    """
    Points balance and history for one user.

    Transitions return new instances together with the history entry they
    appended; the original program is left unchanged.
    """

    user_id: str
    points: int = 0
    history: Tuple[PointsHistoryEntry, ...] = ()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.points < 0:
            raise ValueError("points must be >= 0")

    @staticmethod
    def empty(user_id: str) -> "LoyaltyProgram":
        return LoyaltyProgram(user_id=user_id)

    @property
    def tier(self) -> LoyaltyTier:
        return tier_for(self.points)

    @property
    def benefits(self) -> TierBenefits:
        return benefits_for(self.tier)

    def earn(
        self,
        amount: int,
        description: str,
        at: datetime,
        order_id: Optional[str] = None,
    ) -> tuple["LoyaltyProgram", PointsHistoryEntry]:
        if amount <= 0:
            raise ValueError("Points amount must be greater than zero")
        entry = PointsHistoryEntry(
            user_id=self.user_id,
            amount=amount,
            entry_type=PointsEntryType.EARNED,
            description=description,
            created_at=at,
            order_id=order_id,
        )
        return self._append(self.points + amount, entry, at), entry

    def redeem(
        self,
        amount: int,
        description: str,
        at: datetime,
    ) -> tuple["LoyaltyProgram", PointsHistoryEntry]:
        if amount <= 0:
            raise ValueError("Points amount must be greater than zero")
        if amount > self.points:
            raise InsufficientPointsError(requested=amount, available=self.points)
        entry = PointsHistoryEntry(
            user_id=self.user_id,
            amount=amount,
            entry_type=PointsEntryType.REDEEMED,
            description=description,
            created_at=at,
        )
        return self._append(self.points - amount, entry, at), entry

    def _append(self, points: int, entry: PointsHistoryEntry, at: datetime) -> "LoyaltyProgram":
        return LoyaltyProgram(
            user_id=self.user_id,
            points=points,
            history=(entry,) + self.history,
            created_at=self.created_at or at,
            updated_at=at,
        )
