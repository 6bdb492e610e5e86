"""
Usage ledger - records discount redemptions.

The limit check and the counter increment are a single conditional UPDATE,
so concurrent redemptions near the usage limit cannot overshoot it.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from prometheus_client import Counter
from sqlalchemy import update, or_, case, null
from sqlalchemy.exc import SQLAlchemyError

from app.models import Discount, DiscountStatus
from app.exceptions import (
    DiscountNotFoundError, DiscountRejection, UsageLimitReachedError, ValidationFailureError,
    InternalFailureError
)
from app.services.discount_status_service import utcnow, refresh_stale_status
from app.services.discount_validation_service import check_redeemable
from app.utils.number_format import quantize_money, parse_decimal

logger = logging.getLogger(__name__)

discount_redemptions_total = Counter(
    'discount_redemptions_total',
    'Discount redemption attempts recorded by the usage ledger',
    ['outcome']
)


def _redeem_statement(discount_id: int, order_amount: Decimal, now: datetime):
    """Compare-and-increment: only matches while the discount is still redeemable."""
    return (
        update(Discount)
        .where(
            Discount.id == discount_id,
            Discount.status == DiscountStatus.ACTIVE.value,
            Discount.start_date <= now,
            Discount.end_date >= now,
            or_(Discount.usage_limit.is_(None), Discount.used_count < Discount.usage_limit)
        )
        .values(
            used_count=Discount.used_count + 1,
            orders_used=Discount.orders_used + 1,
            revenue_generated=Discount.revenue_generated + order_amount,
            # used_count < usage_limit holds here, so this never goes negative
            remaining_uses=case(
                (Discount.usage_limit.is_(None), null()),
                else_=Discount.usage_limit - Discount.used_count - 1
            )
        )
        .execution_options(synchronize_session=False)
    )


def record_usage(
    session,
    discount_id: int,
    order_id: Any,
    order_amount: Decimal,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Record one redemption of a discount against an order.

    Re-checks validity against the stored state regardless of any earlier
    validation call, then increments used_count/orders_used and adds the
    order amount to revenue_generated atomically.

    Returns:
        dict with id, code, orderId, usedCount, remainingUses, revenueGenerated

    Raises:
        DiscountNotFoundError, NotYetActiveError, DiscountExpiredError,
        DiscountInactiveError, UsageLimitReachedError, ValidationFailureError
    """
    if order_id is None or str(order_id).strip() == '':
        raise ValidationFailureError('Order ID and amount are required')

    try:
        order_amount = quantize_money(parse_decimal(order_amount, 'Order amount', allow_negative=True))
    except ValueError as e:
        raise ValidationFailureError(str(e))
    if order_amount <= 0:
        raise ValidationFailureError('Order amount must be greater than 0')

    now = now or utcnow()

    try:
        discount = session.get(Discount, discount_id)
        if not discount:
            raise DiscountNotFoundError()

        refresh_stale_status(session, discount, now)
        check_redeemable(discount, now)

        result = session.execute(_redeem_statement(discount.id, order_amount, now))

        if result.rowcount == 0:
            # Lost the race: report what the winner left behind
            session.rollback()
            discount = session.get(Discount, discount_id)
            if not discount:
                raise DiscountNotFoundError()
            check_redeemable(discount, now)
            raise UsageLimitReachedError(discount.usage_limit)

        session.commit()
        session.refresh(discount)

    except DiscountRejection:
        session.rollback()
        discount_redemptions_total.labels(outcome='rejected').inc()
        raise
    except (DiscountNotFoundError, ValidationFailureError):
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[DISCOUNT] Failed to record usage for discount {discount_id}: {e}", exc_info=True)
        raise InternalFailureError('Error updating discount usage', detail=str(e))

    discount_redemptions_total.labels(outcome='recorded').inc()
    try:
        from app.services.cache_service import get_cache
        get_cache().invalidate_module(discount.created_by, 'discounts')
    except RuntimeError as e:
        logger.debug(f"[CACHE] Skipping invalidation: {e}")
    logger.info(
        f"[DISCOUNT] Recorded usage of {discount.code} (id={discount.id}) for order {order_id}: "
        f"used={discount.used_count} remaining={discount.remaining_uses}"
    )

    return {
        'id': discount.id,
        'code': discount.code,
        'orderId': order_id,
        'usedCount': discount.used_count,
        'remainingUses': discount.remaining_uses,
        'revenueGenerated': float(discount.revenue_generated or 0),
        'ordersUsed': discount.orders_used,
    }
