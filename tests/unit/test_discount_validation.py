"""
Unit tests for discount eligibility and amount calculation.
"""

from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.models import Discount
from app.exceptions import (
    DiscountNotFoundError, NotYetActiveError, DiscountExpiredError, DiscountInactiveError,
    UsageLimitReachedError, BelowMinimumOrderError
)
from app.services.discount_status_service import utcnow
from app.services.discount_validation_service import calculate_discount_amount, validate_discount_code


def _discount(**fields):
    base = {'type': 'percentage', 'value': Decimal('10'), 'max_discount': Decimal('0')}
    base.update(fields)
    return SimpleNamespace(**base)


class TestCalculateDiscountAmount:

    def test_percentage(self):
        assert calculate_discount_amount(_discount(), Decimal('100')) == Decimal('10.00')

    def test_percentage_clamped_by_max_discount(self):
        amount = calculate_discount_amount(_discount(max_discount=Decimal('5')), Decimal('100'))
        assert amount == Decimal('5')

    def test_percentage_rounds_to_cents(self):
        amount = calculate_discount_amount(_discount(value=Decimal('15')), Decimal('33.33'))
        assert amount == Decimal('5.00')

    def test_fixed_not_clamped_to_order(self):
        amount = calculate_discount_amount(_discount(type='fixed', value=Decimal('20')), Decimal('15'))
        assert amount == Decimal('20.00')


class TestValidateDiscountCode:

    def test_percentage_quote(self, session, owner, make_discount):
        make_discount(code='SAVE10', value=Decimal('10'), max_discount=Decimal('5'))

        quote = validate_discount_code(session, 'save10', owner.id, Decimal('100'))

        assert quote.discount_amount == Decimal('5')
        assert quote.final_amount == Decimal('95.00')
        payload = quote.to_dict()
        assert payload['discountAmount'] == 5.0
        assert payload['finalAmount'] == 95.0
        assert payload['discount']['code'] == 'SAVE10'

    def test_fixed_final_amount_floors_at_zero(self, session, owner, make_discount):
        make_discount(code='TWENTY', type='fixed', value=Decimal('20'))

        quote = validate_discount_code(session, 'TWENTY', owner.id, Decimal('15'))

        assert quote.discount_amount == Decimal('20.00')
        assert quote.final_amount == Decimal('0.00')

    def test_does_not_consume_a_use(self, session, owner, make_discount):
        discount = make_discount(code='ONCE', usage_limit=1)

        for _ in range(3):
            validate_discount_code(session, 'ONCE', owner.id, Decimal('50'))

        session.expire_all()
        assert session.get(Discount, discount.id).used_count == 0

    def test_unknown_code(self, session, owner):
        with pytest.raises(DiscountNotFoundError):
            validate_discount_code(session, 'NOPE', owner.id, Decimal('50'))

    def test_code_is_owner_scoped(self, session, owner, other_owner, make_discount):
        make_discount(code='MINE')
        with pytest.raises(DiscountNotFoundError):
            validate_discount_code(session, 'MINE', other_owner.id, Decimal('50'))

    def test_not_yet_active(self, session, owner, make_discount):
        now = utcnow()
        make_discount(code='LATER', start_date=now + timedelta(days=2), end_date=now + timedelta(days=5))

        with pytest.raises(NotYetActiveError) as exc_info:
            validate_discount_code(session, 'LATER', owner.id, Decimal('50'))
        assert 'startDate' in exc_info.value.payload

    def test_expired(self, session, owner, make_discount):
        now = utcnow()
        make_discount(code='GONE', start_date=now - timedelta(days=5), end_date=now - timedelta(days=1))

        with pytest.raises(DiscountExpiredError) as exc_info:
            validate_discount_code(session, 'GONE', owner.id, Decimal('50'))
        assert exc_info.value.to_dict()['code'] == 'EXPIRED'

    def test_paused_is_inactive(self, session, owner, make_discount):
        discount = make_discount(code='PAUSED')
        discount.status = 'paused'
        session.commit()

        with pytest.raises(DiscountInactiveError):
            validate_discount_code(session, 'PAUSED', owner.id, Decimal('50'))

    def test_limit_reached(self, session, owner, make_discount):
        make_discount(code='USEDUP', usage_limit=2, used_count=2)

        with pytest.raises(UsageLimitReachedError):
            validate_discount_code(session, 'USEDUP', owner.id, Decimal('50'))

    def test_below_minimum_order(self, session, owner, make_discount):
        make_discount(code='BIGCART', min_order=Decimal('100'))

        with pytest.raises(BelowMinimumOrderError) as exc_info:
            validate_discount_code(session, 'BIGCART', owner.id, Decimal('99.99'))
        assert exc_info.value.payload == {'minOrder': 100.0}

    def test_date_checks_come_before_status(self, session, owner, make_discount):
        now = utcnow()
        discount = make_discount(code='OLDPAUSE', start_date=now - timedelta(days=5), end_date=now - timedelta(days=1))
        discount.status = 'paused'
        session.commit()

        with pytest.raises(DiscountExpiredError):
            validate_discount_code(session, 'OLDPAUSE', owner.id, Decimal('50'))
