"""Rental engine configuration.

Thresholds, limits and penalty rates are frozen dataclasses:
- Default values match the store's standing business rules
- Immutability (frozen=True) prevents accidental mutation at runtime
- Overrides come from environment variables via RentalConfig.from_env()
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal


# ---------------------------------------------------------------------------
# Nested config sections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BatchLimits:
    """Per-request size limits."""

    max_items: int = 50
    max_total_quantity: int = 1000
    large_batch_warning: int = 100  # total quantity
    max_return_items: int = 50


@dataclass(frozen=True)
class OperatingHours:
    """Store opening hours used by the timing-window rule."""

    timezone: str = "Asia/Jakarta"
    opens_at: int = 8    # hour, inclusive
    closes_at: int = 20  # hour, exclusive
    closed_weekdays: tuple[int, ...] = (6,)  # Monday=0, Sunday=6


@dataclass(frozen=True)
class PenaltyConfig:
    """Late-fee and damage/loss penalty rates."""

    late_fee_daily_rate: Decimal = Decimal("5000")
    max_late_days: int = 365
    minor_damage_multiplier: int = 1
    moderate_damage_multiplier: int = 2
    severe_damage_multiplier: int = 4
    # Charged for a lost item whose product has no acquisition cost.
    # None means such returns are rejected instead of guessed.
    lost_item_fallback_cost: Decimal | None = None


@dataclass(frozen=True)
class ConcurrencyConfig:
    """Staleness window for the conflict pre-check and commit timeout."""

    staleness_window: timedelta = timedelta(minutes=5)
    commit_timeout_seconds: float = 10.0
    max_future_return: timedelta = timedelta(hours=24)


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RentalConfig:
    """Complete configuration for the rental lifecycle engine.

    Usage::

        config = RentalConfig.from_env()
        if total_quantity > config.batch.max_total_quantity:
            reject(...)
    """

    batch: BatchLimits = field(default_factory=BatchLimits)
    hours: OperatingHours = field(default_factory=OperatingHours)
    penalty: PenaltyConfig = field(default_factory=PenaltyConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)

    @classmethod
    def default(cls) -> "RentalConfig":
        """Create config with all defaults."""
        return cls()

    @classmethod
    def from_env(cls, prefix: str = "RENTAL_") -> "RentalConfig":
        """Create config from environment variables.

        Example: RENTAL_LATE_FEE_DAILY_RATE=7500
        """
        def get(name: str) -> str | None:
            value = os.getenv(f"{prefix}{name}")
            return value if value not in (None, "") else None

        batch_overrides = {}
        for name, key in (
            ("MAX_BATCH_ITEMS", "max_items"),
            ("MAX_BATCH_QUANTITY", "max_total_quantity"),
            ("LARGE_BATCH_WARNING", "large_batch_warning"),
            ("MAX_RETURN_ITEMS", "max_return_items"),
        ):
            if get(name):
                batch_overrides[key] = int(get(name))

        hours_overrides = {}
        if get("BUSINESS_TIMEZONE"):
            hours_overrides["timezone"] = get("BUSINESS_TIMEZONE")
        if get("OPENS_AT"):
            hours_overrides["opens_at"] = int(get("OPENS_AT"))
        if get("CLOSES_AT"):
            hours_overrides["closes_at"] = int(get("CLOSES_AT"))

        penalty_overrides = {}
        if get("LATE_FEE_DAILY_RATE"):
            penalty_overrides["late_fee_daily_rate"] = Decimal(get("LATE_FEE_DAILY_RATE"))
        if get("MAX_LATE_DAYS"):
            penalty_overrides["max_late_days"] = int(get("MAX_LATE_DAYS"))
        if get("LOST_ITEM_FALLBACK_COST"):
            penalty_overrides["lost_item_fallback_cost"] = Decimal(get("LOST_ITEM_FALLBACK_COST"))

        concurrency_overrides = {}
        if get("STALENESS_MINUTES"):
            concurrency_overrides["staleness_window"] = timedelta(
                minutes=float(get("STALENESS_MINUTES"))
            )
        if get("COMMIT_TIMEOUT_SECONDS"):
            concurrency_overrides["commit_timeout_seconds"] = float(get("COMMIT_TIMEOUT_SECONDS"))

        return cls(
            batch=BatchLimits(**batch_overrides),
            hours=OperatingHours(**hours_overrides),
            penalty=PenaltyConfig(**penalty_overrides),
            concurrency=ConcurrencyConfig(**concurrency_overrides),
        )
