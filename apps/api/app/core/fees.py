"""Fee and revenue calculations for gateway payment methods."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

QRIS_TIER_THRESHOLD_IDR = 110_000
QRIS_LOW_TIER_RATE = Decimal("0.02")
QRIS_LOW_TIER_FLAT_IDR = 500
QRIS_HIGH_TIER_RATE = Decimal("0.025")
VIRTUAL_ACCOUNT_FLAT_IDR = 4_500
PAYPAL_RATE = Decimal("0.03")


@dataclass(frozen=True)
class RevenueSplit:
    """How a transaction fee is shared between the platform and the gateway provider."""

    platform_share: int
    provider_share: int

    @property
    def total(self) -> int:
        return self.platform_share + self.provider_share


def _as_amount(value: object) -> int:
    if isinstance(value, bool):
        return 0
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return 0
    if not amount.is_finite():
        return 0
    return int(amount.to_integral_value(rounding=ROUND_HALF_UP))


def _percent_of(amount: int, rate: Decimal) -> int:
    return int((Decimal(amount) * rate).to_integral_value(rounding=ROUND_HALF_UP))


def compute_fee(method: str | None, amount: object) -> int:
    """Return the total fee in IDR charged for ``amount`` paid via ``method``.

    Unknown methods carry no fee and unparsable amounts are treated as zero.
    """

    normalized = (method or "").strip().lower()
    nominal = _as_amount(amount)

    if normalized == "qris":
        if nominal >= QRIS_TIER_THRESHOLD_IDR:
            return _percent_of(nominal, QRIS_HIGH_TIER_RATE)
        return _percent_of(nominal, QRIS_LOW_TIER_RATE) + QRIS_LOW_TIER_FLAT_IDR
    if normalized.endswith("_va"):
        return VIRTUAL_ACCOUNT_FLAT_IDR
    if normalized == "paypal":
        return _percent_of(nominal, PAYPAL_RATE)
    return 0


def split_revenue(total_fee: object, platform_fee_setting: object) -> RevenueSplit:
    """Split ``total_fee`` into the platform cut (capped at the fee) and the provider remainder."""

    fee = max(0, _as_amount(total_fee))
    platform_share = min(fee, max(0, _as_amount(platform_fee_setting)))
    return RevenueSplit(platform_share=platform_share, provider_share=fee - platform_share)


def calculate_received_amount(amount: object, total_fee: object) -> int:
    """Return what the merchant keeps from a paid transaction after fees."""

    nominal = max(0, _as_amount(amount))
    fee = max(0, _as_amount(total_fee))
    return max(0, nominal - fee)
