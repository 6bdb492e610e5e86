"""
Eligibility checks for discount redemption.

validate_discount_code is read-only: it never touches used_count.
Recording a redemption is a separate call (discount_usage_service).
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from app.models import Discount, DiscountType, DiscountStatus
from app.exceptions import (
    DiscountNotFoundError, NotYetActiveError, DiscountExpiredError, DiscountInactiveError,
    UsageLimitReachedError, BelowMinimumOrderError, ValidationFailureError
)
from app.services.discount_code_service import normalize_code
from app.services.discount_status_service import utcnow, refresh_stale_status
from app.utils.number_format import quantize_money, parse_decimal

logger = logging.getLogger(__name__)


@dataclass
class DiscountQuote:
    """Result of a successful validation."""
    discount: Discount
    discount_amount: Decimal
    final_amount: Decimal

    def to_dict(self, now: Optional[datetime] = None):
        return {
            'discount': self.discount.to_dict(now),
            'discountAmount': float(self.discount_amount),
            'finalAmount': float(self.final_amount),
        }


def check_redeemable(discount: Discount, now: datetime) -> None:
    """
    Date window, status and usage-limit checks, in that order.

    Shared by validation and the usage ledger so both reject identically.
    """
    if now < discount.start_date:
        raise NotYetActiveError(discount.start_date)

    if now > discount.end_date:
        raise DiscountExpiredError(discount.end_date)

    if discount.status != DiscountStatus.ACTIVE.value:
        raise DiscountInactiveError(discount.status)

    if discount.usage_limit is not None and (discount.used_count or 0) >= discount.usage_limit:
        raise UsageLimitReachedError(discount.usage_limit)


def calculate_discount_amount(discount: Discount, order_amount: Decimal) -> Decimal:
    """
    Percentage: order * value / 100, capped by max_discount when > 0.
    Fixed: value as-is, even when larger than the order.
    """
    value = Decimal(discount.value or 0)
    if discount.type == DiscountType.PERCENTAGE.value:
        amount = order_amount * value / Decimal('100')
        max_discount = Decimal(discount.max_discount or 0)
        if max_discount > 0 and amount > max_discount:
            amount = max_discount
    else:
        amount = value
    return quantize_money(amount)


def validate_discount_code(
    session,
    code: str,
    owner_id: int,
    order_amount: Decimal,
    now: Optional[datetime] = None
) -> DiscountQuote:
    """
    Decide whether (code, owner) is redeemable for order_amount right now.

    Raises the first failing rejection: not found, not yet active, expired,
    inactive, limit reached, below minimum order.
    """
    now = now or utcnow()
    try:
        order_amount = parse_decimal(order_amount, 'Order amount')
    except ValueError as e:
        raise ValidationFailureError(str(e))

    discount = session.query(Discount).filter(
        Discount.code == normalize_code(code),
        Discount.created_by == owner_id
    ).first()

    if not discount:
        raise DiscountNotFoundError("Discount code not found")

    if refresh_stale_status(session, discount, now):
        session.commit()

    check_redeemable(discount, now)

    min_order = Decimal(discount.min_order or 0)
    if min_order > 0 and order_amount < min_order:
        raise BelowMinimumOrderError(min_order)

    discount_amount = calculate_discount_amount(discount, order_amount)
    final_amount = quantize_money(max(Decimal('0'), order_amount - discount_amount))

    logger.info(
        f"[DISCOUNT] Code {discount.code} valid for owner {owner_id}: "
        f"order={order_amount} discount={discount_amount} final={final_amount}"
    )
    return DiscountQuote(discount=discount, discount_amount=discount_amount, final_amount=final_amount)
