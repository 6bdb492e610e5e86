"""
Discount repository - owner-scoped persistence and queries.

Every write goes through an ORM flush, which runs the temporal state
evaluator registered on the Discount mapper. The bulk status update is
the one deliberate exception: it is a plain UPDATE and pins the status
until the next individual save.
"""
import logging
import math
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import or_, and_, func, case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from flask import current_app, has_app_context

from app.models import (
    AppUser, Discount, DiscountType, DiscountStatus, CustomerType, AppliesTo, BULK_STATUSES
)
from app.exceptions import (
    SaasError, NotFoundError, ValidationFailureError, InvalidDateRangeError, DuplicateCodeError,
    NotOwnerError, InternalFailureError
)
from app.services.discount_code_service import (
    generate_discount_code, ensure_code_available, normalize_code
)
from app.services.discount_status_service import utcnow, refresh_stale_status, refresh_stale_statuses
from app.services.ownership_service import (
    ResourceKind, Access, get_owned_or_raise, find_not_owned, load_owned_many
)
from app.services.storage_service import save_discount_image, delete_discount_image
from app.utils.number_format import (
    parse_decimal, parse_optional_int, parse_bool, parse_datetime, parse_id_list
)

logger = logging.getLogger(__name__)

CACHE_MODULE = 'discounts'

SORT_FIELDS = {
    'createdAt': Discount.created_at,
    'updatedAt': Discount.updated_at,
    'name': Discount.name,
    'code': Discount.code,
    'value': Discount.value,
    'startDate': Discount.start_date,
    'endDate': Discount.end_date,
    'usedCount': Discount.used_count,
    'revenueGenerated': Discount.revenue_generated,
}

DISCOUNT_TYPES = {t.value for t in DiscountType}
DISCOUNT_STATUSES = {s.value for s in DiscountStatus}
CUSTOMER_TYPES = {c.value for c in CustomerType}
APPLIES_TO = {a.value for a in AppliesTo}


def _invalidate_stats_cache(owner_id: int) -> None:
    """Drop the cached stats summary for an owner."""
    try:
        from app.services.cache_service import get_cache
        get_cache().invalidate_module(owner_id, CACHE_MODULE)
    except RuntimeError as e:
        logger.debug(f"[CACHE] Skipping invalidation: {e}")


def _config(key: str, default: int) -> int:
    if has_app_context():
        return int(current_app.config.get(key, default))
    return default


# =====================================================
# INPUT PARSING
# =====================================================

def parse_discount_payload(data: Mapping[str, Any], partial: bool = False) -> Tuple[Dict[str, Any], List[str]]:
    """
    Validate a create/update payload and map it onto Discount columns.

    With partial=True only the keys present in data are parsed (PUT
    semantics of the storefront API). The code is not handled here.

    Returns:
        (fields, errors)
    """
    errors = []
    fields = {}

    def wanted(key):
        return not partial or key in data

    if wanted('name'):
        name = str(data.get('name') or '').strip()
        if not name:
            errors.append('Discount name is required')
        elif len(name) > 100:
            errors.append('Discount name cannot exceed 100 characters')
        else:
            fields['name'] = name

    if 'description' in data:
        description = str(data.get('description') or '').strip()
        if len(description) > 500:
            errors.append('Description cannot exceed 500 characters')
        else:
            fields['description'] = description

    if wanted('type'):
        discount_type = str(data.get('type') or DiscountType.PERCENTAGE.value).strip().lower()
        if discount_type not in DISCOUNT_TYPES:
            errors.append('Discount type must be percentage or fixed')
        else:
            fields['type'] = discount_type

    if wanted('value'):
        if data.get('value') in (None, ''):
            errors.append('Discount value is required')
        else:
            try:
                fields['value'] = parse_decimal(data.get('value'), 'Discount value')
            except ValueError as e:
                errors.append(str(e))

    for key, column, label in (('minOrder', 'min_order', 'Minimum order'),
                               ('maxDiscount', 'max_discount', 'Maximum discount')):
        if key in data and data.get(key) not in (None, ''):
            try:
                fields[column] = parse_decimal(data.get(key), label)
            except ValueError as e:
                errors.append(str(e))
        elif not partial or key in data:
            fields[column] = Decimal('0')

    for key, column, label in (('startDate', 'start_date', 'Start date'),
                               ('endDate', 'end_date', 'End date')):
        if wanted(key):
            try:
                fields[column] = parse_datetime(data.get(key), label)
            except ValueError as e:
                errors.append(str(e))

    if 'usageLimit' in data:
        try:
            fields['usage_limit'] = parse_optional_int(data.get('usageLimit'), 'Usage limit', minimum=1)
        except ValueError as e:
            errors.append(str(e))

    if wanted('customerType'):
        customer_type = str(data.get('customerType') or CustomerType.ALL.value).strip()
        if customer_type not in CUSTOMER_TYPES:
            errors.append('Customer type must be one of: ' + ', '.join(sorted(CUSTOMER_TYPES)))
        else:
            fields['customer_type'] = customer_type

    if wanted('appliesTo'):
        applies_to = str(data.get('appliesTo') or AppliesTo.ALL_PRODUCTS.value).strip()
        if applies_to not in APPLIES_TO:
            errors.append('Applies to must be one of: ' + ', '.join(sorted(APPLIES_TO)))
        else:
            fields['applies_to'] = applies_to

    for key in ('categories', 'products'):
        if key in data:
            try:
                fields[f'{key}_ids'] = parse_id_list(data.get(key), key.capitalize())
            except ValueError as e:
                errors.append(str(e))

    for key, column, default in (('oneTimeUse', 'one_time_use', False),
                                 ('combineWithOther', 'combine_with_other', True),
                                 ('excludeSaleItems', 'exclude_sale_items', False)):
        if wanted(key):
            fields[column] = parse_bool(data.get(key), default=default)

    if partial and 'status' in data:
        status = str(data.get('status') or '').strip()
        if status not in DISCOUNT_STATUSES:
            errors.append('Invalid status value')
        else:
            fields['status'] = status

    return fields, errors


def validate_date_window(start_date: datetime, end_date: datetime, now: Optional[datetime] = None) -> None:
    """start must not be after end, and end must not already be in the past."""
    now = now or utcnow()
    if start_date > end_date:
        raise InvalidDateRangeError("End date must be after start date")
    if end_date < now:
        raise InvalidDateRangeError("End date must be in the future")


def _resolve_scope(session, owner_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Turn category/product id lists into owned rows; unknown ids are a validation failure."""
    resolved = {}
    try:
        if 'categories_ids' in fields:
            resolved['categories'] = load_owned_many(
                session, ResourceKind.CATEGORY, fields.pop('categories_ids'), owner_id
            )
        if 'products_ids' in fields:
            resolved['products'] = load_owned_many(
                session, ResourceKind.PRODUCT, fields.pop('products_ids'), owner_id
            )
    except NotFoundError as e:
        raise ValidationFailureError(e.message)
    return resolved


def _check_scope_presence(applies_to: str, categories: list, products: list) -> None:
    if applies_to == AppliesTo.SELECTED_CATEGORIES.value and not categories:
        raise ValidationFailureError('Select at least one category for this discount')
    if applies_to == AppliesTo.SELECTED_PRODUCTS.value and not products:
        raise ValidationFailureError('Select at least one product for this discount')


def _handle_write_error(session, error: Exception, code: Optional[str], action: str, image_key: Optional[str]):
    """Roll back, drop any freshly uploaded image and translate the error."""
    session.rollback()
    if image_key:
        if not delete_discount_image(image_key):
            logger.warning(f"[DISCOUNT] Orphaned image left in storage: {image_key}")

    if isinstance(error, SaasError):
        raise error
    if isinstance(error, IntegrityError):
        message = str(error.orig).lower()
        if code and ('uq_discount_owner_code' in message or 'unique' in message):
            raise DuplicateCodeError(code)
    logger.error(f"[DISCOUNT] Error {action} discount: {error}", exc_info=True)
    raise InternalFailureError(f'Error {action} discount', detail=str(error))


# =====================================================
# COMMANDS
# =====================================================

def create_discount(session, owner_id: int, data: Mapping[str, Any], image=None, now: Optional[datetime] = None) -> Discount:
    """
    Create a discount owned by owner_id.

    The code is taken from data['code'] (normalized, must be free for this
    owner) or generated. Dates are validated before anything is written.
    """
    now = now or utcnow()
    fields, errors = parse_discount_payload(data)
    if errors:
        raise ValidationFailureError(errors)
    validate_date_window(fields['start_date'], fields['end_date'], now)

    code = None
    image_key = None
    try:
        raw_code = data.get('code')
        if raw_code is not None and str(raw_code).strip():
            code = ensure_code_available(session, owner_id, raw_code)
        else:
            code = generate_discount_code(session, owner_id)

        scope = _resolve_scope(session, owner_id, fields)
        _check_scope_presence(fields['applies_to'], scope.get('categories', []), scope.get('products', []))

        image_key = save_discount_image(image, owner_id)

        discount = Discount(
            created_by=owner_id,
            code=code,
            image_path=image_key,
            used_count=0,
            orders_used=0,
            revenue_generated=Decimal('0'),
            **fields
        )
        discount.categories = scope.get('categories', [])
        discount.products = scope.get('products', [])

        session.add(discount)
        session.commit()
    except (SaasError, SQLAlchemyError) as e:
        _handle_write_error(session, e, code, 'creating', image_key)

    _invalidate_stats_cache(owner_id)
    logger.info(f"[DISCOUNT] Created discount {discount.id} ({discount.code}) for owner {owner_id}, status={discount.status}")
    return discount


def get_discount(session, discount_id: int, requester: AppUser, now: Optional[datetime] = None) -> Discount:
    """Owners read their own discounts; admins may read any."""
    discount = get_owned_or_raise(session, ResourceKind.DISCOUNT, discount_id, requester, Access.READ)
    if refresh_stale_status(session, discount, now):
        session.commit()
    return discount


def update_discount(
    session,
    discount_id: int,
    requester: AppUser,
    data: Mapping[str, Any],
    image=None,
    now: Optional[datetime] = None
) -> Discount:
    """
    Partially update a discount (owner only).

    Counters, createdBy and derived fields are ignored if sent. Setting
    status to 'paused' pins it; any other status un-pauses and is then
    re-derived from the dates.
    """
    now = now or utcnow()
    discount = get_owned_or_raise(session, ResourceKind.DISCOUNT, discount_id, requester, Access.WRITE)

    fields, errors = parse_discount_payload(data, partial=True)
    if errors:
        raise ValidationFailureError(errors)

    if 'start_date' in fields or 'end_date' in fields:
        validate_date_window(
            fields.get('start_date', discount.start_date),
            fields.get('end_date', discount.end_date),
            now
        )

    code = None
    image_key = None
    old_image = discount.image_path
    try:
        raw_code = data.get('code')
        if raw_code is not None and str(raw_code).strip():
            code = normalize_code(raw_code)
            if code != discount.code:
                code = ensure_code_available(session, requester.id, code, exclude_id=discount.id)
                discount.code = code

        scope = _resolve_scope(session, requester.id, fields)
        applies_to = fields.get('applies_to', discount.applies_to)
        _check_scope_presence(
            applies_to,
            scope.get('categories', discount.categories),
            scope.get('products', discount.products)
        )

        for column, value in fields.items():
            setattr(discount, column, value)
        if 'categories' in scope:
            discount.categories = scope['categories']
        if 'products' in scope:
            discount.products = scope['products']

        image_key = save_discount_image(image, requester.id)
        if image_key:
            discount.image_path = image_key

        session.commit()
    except (SaasError, SQLAlchemyError) as e:
        _handle_write_error(session, e, code, 'updating', image_key)

    if image_key and old_image:
        delete_discount_image(old_image)

    _invalidate_stats_cache(discount.created_by)
    logger.info(f"[DISCOUNT] Updated discount {discount.id} ({discount.code}), status={discount.status}")
    return discount


def delete_discount(session, discount_id: int, requester: AppUser) -> None:
    """Hard delete (owner only). Image removal is best-effort."""
    discount = get_owned_or_raise(session, ResourceKind.DISCOUNT, discount_id, requester, Access.WRITE)
    image_path = discount.image_path
    code = discount.code

    try:
        session.delete(discount)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[DISCOUNT] Error deleting discount {discount_id}: {e}", exc_info=True)
        raise InternalFailureError('Error deleting discount', detail=str(e))

    if image_path:
        delete_discount_image(image_path)

    _invalidate_stats_cache(requester.id)
    logger.info(f"[DISCOUNT] Deleted discount {discount_id} ({code})")


def bulk_update_status(session, requester: AppUser, discount_ids: Any, status: str) -> int:
    """
    Force a status onto several discounts at once.

    Rejects the whole batch if any id belongs to someone else. The UPDATE
    bypasses the date-based derivation until each row's next save.

    Returns:
        Number of discounts whose status actually changed
    """
    if not isinstance(discount_ids, (list, tuple)) or not discount_ids:
        raise ValidationFailureError('Discount IDs array is required')
    try:
        ids = parse_id_list(list(discount_ids), 'Discount IDs')
    except ValueError as e:
        raise ValidationFailureError(str(e))

    if status not in BULK_STATUSES:
        raise ValidationFailureError('Invalid status value')

    not_owned = find_not_owned(session, ResourceKind.DISCOUNT, ids, requester.id)
    if not_owned:
        logger.warning(f"Ownership violation: user {requester.id} bulk-updated discounts {not_owned}")
        raise NotOwnerError("You do not own some of these discounts", not_owned=not_owned)

    try:
        modified = session.query(Discount).filter(
            Discount.id.in_(ids),
            Discount.created_by == requester.id,
            Discount.status != status
        ).update({Discount.status: status}, synchronize_session=False)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[DISCOUNT] Bulk status update failed: {e}", exc_info=True)
        raise InternalFailureError('Error updating discount status', detail=str(e))

    # Objects already loaded in this session still hold the old status
    session.expire_all()
    _invalidate_stats_cache(requester.id)
    logger.info(f"[DISCOUNT] Bulk status -> {status}: {modified} discount(s) for owner {requester.id}")
    return modified


# =====================================================
# QUERIES
# =====================================================

def list_discounts(
    session,
    owner_id: int,
    search: Optional[str] = None,
    status: Optional[str] = None,
    discount_type: Optional[str] = None,
    sort_by: str = 'createdAt',
    sort_order: str = 'desc',
    page: int = 1,
    limit: Optional[int] = None,
    now: Optional[datetime] = None
) -> Tuple[List[Discount], Dict[str, int]]:
    """
    Paginated, filtered listing of one owner's discounts.

    Stale 'upcoming' rows are promoted first so status filters see the
    current window.
    """
    limit = limit or _config('DISCOUNT_LIST_DEFAULT_LIMIT', 10)
    max_limit = _config('DISCOUNT_LIST_MAX_LIMIT', 100)
    if page < 1:
        raise ValidationFailureError('page must be at least 1')
    if limit < 1:
        raise ValidationFailureError('limit must be at least 1')
    limit = min(limit, max_limit)

    if sort_by not in SORT_FIELDS:
        raise ValidationFailureError('sortBy must be one of: ' + ', '.join(SORT_FIELDS))
    if sort_order not in ('asc', 'desc'):
        raise ValidationFailureError('sortOrder must be asc or desc')

    if refresh_stale_statuses(session, owner_id, now):
        session.commit()

    query = session.query(Discount).filter(Discount.created_by == owner_id)

    if search:
        term = f"%{search.strip().lower()}%"
        query = query.filter(or_(
            func.lower(Discount.name).like(term),
            func.lower(Discount.code).like(term),
            func.lower(Discount.description).like(term)
        ))

    if status and status != 'all':
        if status not in DISCOUNT_STATUSES:
            raise ValidationFailureError('Invalid status filter')
        query = query.filter(Discount.status == status)

    if discount_type and discount_type != 'all':
        if discount_type not in DISCOUNT_TYPES:
            raise ValidationFailureError('Invalid type filter')
        query = query.filter(Discount.type == discount_type)

    total = query.count()

    column = SORT_FIELDS[sort_by]
    ordering = column.desc() if sort_order == 'desc' else column.asc()
    tiebreak = Discount.id.desc() if sort_order == 'desc' else Discount.id.asc()
    discounts = query.order_by(ordering, tiebreak).offset((page - 1) * limit).limit(limit).all()

    pagination = {
        'total': total,
        'page': page,
        'limit': limit,
        'pages': math.ceil(total / limit) if total else 0,
    }
    return discounts, pagination


def _round_percent(part: int, whole: int) -> int:
    if not whole:
        return 0
    ratio = Decimal(part) / Decimal(whole) * 100
    return int(ratio.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def _load_stats(session, owner_id: int, now: datetime) -> Dict[str, Any]:
    in_window_active = and_(
        Discount.start_date <= now,
        Discount.end_date >= now,
        Discount.status == DiscountStatus.ACTIVE.value
    )

    def count_status(value):
        return func.coalesce(func.sum(case((Discount.status == value, 1), else_=0)), 0)

    row = session.query(
        func.count(Discount.id),
        func.coalesce(func.sum(case((in_window_active, 1), else_=0)), 0),
        count_status(DiscountStatus.UPCOMING.value),
        count_status(DiscountStatus.EXPIRED.value),
        count_status(DiscountStatus.PAUSED.value),
        func.coalesce(func.sum(Discount.used_count), 0),
        func.coalesce(func.sum(Discount.revenue_generated), 0),
        func.coalesce(func.sum(Discount.orders_used), 0),
    ).filter(Discount.created_by == owner_id).one()

    total, active, upcoming, expired, paused, usage, revenue, orders = row
    total = int(total or 0)
    active = int(active or 0)

    return {
        'totalDiscounts': total,
        'activeDiscounts': active,
        'upcomingDiscounts': int(upcoming or 0),
        'expiredDiscounts': int(expired or 0),
        'pausedDiscounts': int(paused or 0),
        'totalUsage': int(usage or 0),
        'totalRevenue': float(revenue or 0),
        'totalOrders': int(orders or 0),
        'avgUsageRate': _round_percent(active, total),
    }


def get_discount_stats(session, owner_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Per-owner summary: counts by status, usage, revenue and orders.

    avgUsageRate is round(activeDiscounts / totalDiscounts * 100), 0 with
    no discounts. Cached per owner; any discount write invalidates it.
    """
    now = now or utcnow()
    if refresh_stale_statuses(session, owner_id, now):
        session.commit()
        _invalidate_stats_cache(owner_id)

    def loader():
        return _load_stats(session, owner_id, now)

    try:
        from app.services.cache_service import get_cache
        cache = get_cache()
    except RuntimeError:
        return loader()

    return cache.memoize(owner_id, CACHE_MODULE, 'stats', loader, ttl=_config('CACHE_STATS_TTL', 60))
