"""
Temporal state evaluation for discounts.

The evaluator is a pure function of the stored fields and the current
time. It is run before every ORM persist of a Discount and lazily on read
for rows whose stored status has gone stale: an 'upcoming' whose window
has opened, or an 'active' whose window has closed.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy import and_

logger = logging.getLogger(__name__)

STATUS_UPCOMING = 'upcoming'
STATUS_ACTIVE = 'active'
STATUS_EXPIRED = 'expired'
STATUS_PAUSED = 'paused'

SECONDS_PER_DAY = 24 * 60 * 60


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def derive_status(now: datetime, start_date: datetime, end_date: datetime) -> str:
    """Date-window status, ignoring any manual pin."""
    if now < start_date:
        return STATUS_UPCOMING
    if now > end_date:
        return STATUS_EXPIRED
    return STATUS_ACTIVE


def compute_remaining_uses(usage_limit: Optional[int], used_count: Optional[int]) -> Optional[int]:
    if usage_limit is None:
        return None
    return max(0, int(usage_limit) - int(used_count or 0))


def evaluate_state(
    now: datetime,
    start_date: datetime,
    end_date: datetime,
    usage_limit: Optional[int],
    used_count: Optional[int],
    current_status: Optional[str]
) -> Tuple[str, Optional[int]]:
    """
    Return (status, remaining_uses) for the given stored state.

    A paused discount stays paused; anything else follows the date window.
    Exhausting the usage limit never changes the status.
    """
    if current_status == STATUS_PAUSED:
        status = STATUS_PAUSED
    else:
        status = derive_status(now, start_date, end_date)
    return status, compute_remaining_uses(usage_limit, used_count)


def apply_temporal_state(discount, now: Optional[datetime] = None) -> bool:
    """Write the evaluated state onto a Discount instance. Returns True if anything changed."""
    if discount.start_date is None or discount.end_date is None:
        return False

    now = now or utcnow()
    status, remaining = evaluate_state(
        now,
        discount.start_date,
        discount.end_date,
        discount.usage_limit,
        discount.used_count,
        discount.status
    )
    changed = status != discount.status or remaining != discount.remaining_uses
    discount.status = status
    discount.remaining_uses = remaining
    return changed


def refresh_stale_status(session, discount, now: Optional[datetime] = None) -> bool:
    """
    Re-derive a discount whose stored status no longer matches the clock.

    Only 'upcoming' past its start and 'active' past its end are touched.
    Neither can be redeemed in that state, so re-deriving them never undoes
    a meaningful override; 'paused' and 'expired' are left alone.
    Flushes the change when one is made.
    """
    now = now or utcnow()
    if discount.status == STATUS_UPCOMING:
        stale = now >= discount.start_date
    elif discount.status == STATUS_ACTIVE:
        stale = now > discount.end_date
    else:
        return False
    if not stale:
        return False

    previous = discount.status
    apply_temporal_state(discount, now)
    # Consumed by the before_update listener so the flush keeps this clock
    discount._evaluated_at = now
    session.flush()
    logger.info(f"[DISCOUNT] Refreshed discount {discount.id} from {previous} to {discount.status}")
    return True


def refresh_stale_statuses(session, owner_id: Optional[int] = None, now: Optional[datetime] = None) -> int:
    """Bulk form of refresh_stale_status, optionally for one owner."""
    from app.models import Discount

    now = now or utcnow()
    scope = []
    if owner_id is not None:
        scope.append(Discount.created_by == owner_id)
    base = scope + [Discount.status == STATUS_UPCOMING, Discount.start_date <= now]

    expired = session.query(Discount).filter(
        and_(*base, Discount.end_date < now)
    ).update({Discount.status: STATUS_EXPIRED}, synchronize_session=False)

    activated = session.query(Discount).filter(
        and_(*base, Discount.end_date >= now)
    ).update({Discount.status: STATUS_ACTIVE}, synchronize_session=False)

    lapsed = session.query(Discount).filter(
        and_(*scope, Discount.status == STATUS_ACTIVE, Discount.end_date < now)
    ).update({Discount.status: STATUS_EXPIRED}, synchronize_session=False)

    return expired + activated + lapsed


def refresh_discount_statuses(session, owner_id: Optional[int] = None, now: Optional[datetime] = None) -> int:
    """
    Re-derive the stored status of every non-paused discount.

    Equivalent to re-saving each row. Manual 'active'/'expired' overrides
    set through the bulk endpoint are replaced by the date-derived value.
    """
    from app.models import Discount

    now = now or utcnow()
    scope = [Discount.status != STATUS_PAUSED]
    if owner_id is not None:
        scope.append(Discount.created_by == owner_id)

    updated = 0
    updated += session.query(Discount).filter(
        and_(*scope, Discount.start_date > now, Discount.status != STATUS_UPCOMING)
    ).update({Discount.status: STATUS_UPCOMING}, synchronize_session=False)
    updated += session.query(Discount).filter(
        and_(*scope, Discount.end_date < now, Discount.status != STATUS_EXPIRED)
    ).update({Discount.status: STATUS_EXPIRED}, synchronize_session=False)
    updated += session.query(Discount).filter(
        and_(
            *scope,
            Discount.start_date <= now,
            Discount.end_date >= now,
            Discount.status != STATUS_ACTIVE
        )
    ).update({Discount.status: STATUS_ACTIVE}, synchronize_session=False)

    logger.info(f"[DISCOUNT] Status sweep updated {updated} discount(s)")
    return updated


# =====================================================
# READ-TIME DERIVED FIELDS
# =====================================================

def days_remaining(end_date: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    """ceil((end - now) / 1 day); negative once expired."""
    if end_date is None:
        return None
    now = now or utcnow()
    return math.ceil((end_date - now).total_seconds() / SECONDS_PER_DAY)


def usage_percentage(used_count: int, usage_limit: Optional[int]) -> int:
    if not usage_limit:
        return 0
    # JS Math.round semantics: halves round up
    return int(math.floor(used_count / usage_limit * 100 + 0.5))


def is_currently_active(discount, now: Optional[datetime] = None) -> bool:
    """Live activity predicate, independent of how stale the stored status is."""
    now = now or utcnow()
    if discount.start_date is None or discount.end_date is None:
        return False
    # A stored 'upcoming' inside its window is only stale, not paused or forced
    return discount.start_date <= now <= discount.end_date and discount.status in (STATUS_ACTIVE, STATUS_UPCOMING)
