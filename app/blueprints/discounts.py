"""
Discounts blueprint - owner-scoped discount management and redemption API.

All responses use the {success, message, data} envelope. Errors are raised
as SaasError subclasses and rendered by the app-level error handler.
"""
from flask import Blueprint, request, jsonify, g

from app.database import get_session
from app.middleware import require_login
from app.decorators.permissions import require_role
from app.models import UserRole
from app.exceptions import ValidationFailureError
from app.services import discount_service
from app.services.discount_validation_service import validate_discount_code
from app.services.discount_usage_service import record_usage
from app.services.discount_status_service import utcnow
from app.utils.number_format import parse_decimal, parse_optional_int

discounts_bp = Blueprint('discounts', __name__, url_prefix='/api/discounts')

SHOP_OWNER = UserRole.SHOP_OWNER.value
ADMIN = UserRole.ADMIN.value


def _respond(message, data=None, status=200, **extra):
    body = {'success': True, 'message': message, 'data': data}
    body.update(extra)
    return jsonify(body), status


def _request_payload():
    """
    Read a JSON or multipart body.

    Multipart repeated fields become lists and a trailing '[]' on the field
    name is dropped, so 'categories[]=1&categories[]=2' and a JSON-encoded
    'categories' string are both accepted.

    Returns:
        (data dict, uploaded image or None)
    """
    if request.is_json:
        data = request.get_json(silent=True)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValidationFailureError('Request body must be a JSON object')
        return data, None

    data = {}
    for key in request.form.keys():
        values = request.form.getlist(key)
        name = key[:-2] if key.endswith('[]') else key
        data[name] = values if len(values) > 1 or key.endswith('[]') else values[0]
    return data, request.files.get('image')


def _query_int(name, default, minimum):
    try:
        value = parse_optional_int(request.args.get(name), name, minimum=minimum)
    except ValueError as e:
        raise ValidationFailureError(str(e))
    return default if value is None else value


# =====================================================
# REDEMPTION
# =====================================================

@discounts_bp.route('/validate/<code>', methods=['GET'])
@require_login
def validate_code(code):
    """Check a code against an order amount without consuming a use."""
    raw_amount = request.args.get('orderAmount')
    if raw_amount in (None, ''):
        raise ValidationFailureError('Order amount is required')
    try:
        order_amount = parse_decimal(raw_amount, 'Order amount')
    except ValueError as e:
        raise ValidationFailureError(str(e))

    owner_id = _query_int('ownerId', g.user_id, minimum=1)

    now = utcnow()
    quote = validate_discount_code(get_session(), code, owner_id, order_amount, now=now)
    return _respond('Discount code is valid', quote.to_dict(now))


@discounts_bp.route('/<int:discount_id>/use', methods=['PATCH'])
@require_login
def use_discount(discount_id):
    """Record a redemption against an order."""
    data, _ = _request_payload()
    order_id = data.get('orderId')
    raw_amount = data.get('orderAmount')
    if order_id in (None, '') or raw_amount in (None, ''):
        raise ValidationFailureError('Order ID and amount are required')
    try:
        order_amount = parse_decimal(raw_amount, 'Order amount')
    except ValueError as e:
        raise ValidationFailureError(str(e))

    result = record_usage(get_session(), discount_id, order_id, order_amount)
    return _respond('Discount usage updated successfully', result)


# =====================================================
# MANAGEMENT
# =====================================================

@discounts_bp.route('', methods=['POST'])
@require_role(SHOP_OWNER)
def create_discount():
    data, image = _request_payload()
    discount = discount_service.create_discount(get_session(), g.user_id, data, image=image)
    return _respond('Discount created successfully', discount.to_dict(), status=201)


@discounts_bp.route('', methods=['GET'])
@require_role(SHOP_OWNER)
def list_discounts():
    page = _query_int('page', 1, minimum=1)
    limit = _query_int('limit', None, minimum=1)

    discounts, pagination = discount_service.list_discounts(
        get_session(),
        g.user_id,
        search=request.args.get('search', '').strip() or None,
        status=request.args.get('status') or None,
        discount_type=request.args.get('type') or None,
        sort_by=request.args.get('sortBy', 'createdAt'),
        sort_order=request.args.get('sortOrder', 'desc'),
        page=page,
        limit=limit,
    )
    now = utcnow()
    return _respond(
        'Discounts retrieved successfully',
        [d.to_dict(now) for d in discounts],
        pagination=pagination
    )


@discounts_bp.route('/stats/summary', methods=['GET'])
@require_role(SHOP_OWNER)
def discount_stats():
    stats = discount_service.get_discount_stats(get_session(), g.user_id)
    return _respond('Discount statistics retrieved successfully', stats)


@discounts_bp.route('/bulk/status', methods=['PATCH'])
@require_role(SHOP_OWNER)
def bulk_status():
    data, _ = _request_payload()
    modified = discount_service.bulk_update_status(
        get_session(), g.user, data.get('discountIds'), data.get('status')
    )
    return _respond(
        f'{modified} discount(s) updated successfully',
        {'modifiedCount': modified}
    )


@discounts_bp.route('/<int:discount_id>', methods=['GET'])
@require_role(SHOP_OWNER, ADMIN)
def get_discount(discount_id):
    discount = discount_service.get_discount(get_session(), discount_id, g.user)
    return _respond('Discount retrieved successfully', discount.to_dict())


@discounts_bp.route('/<int:discount_id>', methods=['PUT'])
@require_role(SHOP_OWNER)
def update_discount(discount_id):
    data, image = _request_payload()
    discount = discount_service.update_discount(get_session(), discount_id, g.user, data, image=image)
    return _respond('Discount updated successfully', discount.to_dict())


@discounts_bp.route('/<int:discount_id>', methods=['DELETE'])
@require_role(SHOP_OWNER)
def delete_discount(discount_id):
    discount_service.delete_discount(get_session(), discount_id, g.user)
    return _respond('Discount deleted successfully')
