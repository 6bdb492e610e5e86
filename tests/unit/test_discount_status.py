"""
Unit tests for the temporal state evaluator and read-time derived fields.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

from app.models import Discount
from app.services.discount_status_service import (
    derive_status, compute_remaining_uses, evaluate_state, apply_temporal_state,
    days_remaining, usage_percentage, is_currently_active, refresh_stale_status,
    refresh_stale_statuses, refresh_discount_statuses, utcnow
)

NOW = datetime(2026, 3, 15, 12, 0, 0)


class TestDeriveStatus:

    def test_before_window_is_upcoming(self):
        assert derive_status(NOW, NOW + timedelta(hours=1), NOW + timedelta(days=1)) == 'upcoming'

    def test_inside_window_is_active(self):
        assert derive_status(NOW, NOW - timedelta(days=1), NOW + timedelta(days=1)) == 'active'

    def test_after_window_is_expired(self):
        assert derive_status(NOW, NOW - timedelta(days=5), NOW - timedelta(seconds=1)) == 'expired'

    def test_window_bounds_are_inclusive(self):
        assert derive_status(NOW, NOW, NOW + timedelta(days=1)) == 'active'
        assert derive_status(NOW, NOW - timedelta(days=1), NOW) == 'active'


class TestEvaluateState:

    def test_paused_stays_paused_regardless_of_dates(self):
        status, _ = evaluate_state(NOW, NOW - timedelta(days=10), NOW - timedelta(days=1), None, 0, 'paused')
        assert status == 'paused'

    def test_manual_expired_is_re_derived(self):
        status, _ = evaluate_state(NOW, NOW - timedelta(days=1), NOW + timedelta(days=1), None, 0, 'expired')
        assert status == 'active'

    def test_exhausting_limit_does_not_change_status(self):
        status, remaining = evaluate_state(NOW, NOW - timedelta(days=1), NOW + timedelta(days=1), 3, 3, 'active')
        assert status == 'active'
        assert remaining == 0

    def test_remaining_uses(self):
        assert compute_remaining_uses(None, 7) is None
        assert compute_remaining_uses(10, 3) == 7
        assert compute_remaining_uses(10, None) == 10
        assert compute_remaining_uses(2, 5) == 0


class TestApplyTemporalState:

    def test_reports_change(self):
        discount = SimpleNamespace(
            start_date=NOW + timedelta(days=1), end_date=NOW + timedelta(days=2),
            usage_limit=5, used_count=1, status='active', remaining_uses=None
        )
        assert apply_temporal_state(discount, NOW) is True
        assert discount.status == 'upcoming'
        assert discount.remaining_uses == 4
        assert apply_temporal_state(discount, NOW) is False

    def test_missing_dates_are_left_alone(self):
        discount = SimpleNamespace(start_date=None, end_date=None, status='active', remaining_uses=None)
        assert apply_temporal_state(discount, NOW) is False


class TestDerivedFields:

    def test_days_remaining_rounds_up(self):
        assert days_remaining(NOW + timedelta(days=2, hours=1), NOW) == 3
        assert days_remaining(NOW + timedelta(days=2), NOW) == 2
        assert days_remaining(None, NOW) is None

    def test_days_remaining_negative_when_expired(self):
        assert days_remaining(NOW - timedelta(days=2), NOW) == -2

    def test_usage_percentage(self):
        assert usage_percentage(0, None) == 0
        assert usage_percentage(1, 3) == 33
        assert usage_percentage(1, 8) == 13  # 12.5 rounds half up
        assert usage_percentage(4, 4) == 100

    def test_is_currently_active(self):
        live = SimpleNamespace(start_date=NOW - timedelta(days=1), end_date=NOW + timedelta(days=1), status='active')
        paused = SimpleNamespace(start_date=live.start_date, end_date=live.end_date, status='paused')
        stale = SimpleNamespace(start_date=live.start_date, end_date=live.end_date, status='upcoming')
        over = SimpleNamespace(start_date=NOW - timedelta(days=3), end_date=NOW - timedelta(days=1), status='active')

        assert is_currently_active(live, NOW) is True
        assert is_currently_active(paused, NOW) is False
        assert is_currently_active(stale, NOW) is True
        assert is_currently_active(over, NOW) is False


class TestOrmEvaluation:
    """The evaluator runs on every ORM insert/update of a Discount."""

    def test_insert_derives_status_and_remaining(self, make_discount):
        now = utcnow()
        upcoming = make_discount(start_date=now + timedelta(days=2), end_date=now + timedelta(days=9), usage_limit=10)
        assert upcoming.status == 'upcoming'
        assert upcoming.remaining_uses == 10

        unlimited = make_discount()
        assert unlimited.status == 'active'
        assert unlimited.remaining_uses is None

    def test_update_recomputes_remaining(self, session, make_discount):
        discount = make_discount(usage_limit=10)
        discount.used_count = 4
        session.commit()
        assert discount.remaining_uses == 6

        discount.usage_limit = 5
        session.commit()
        assert discount.remaining_uses == 1

    def test_moving_dates_re_derives_status(self, session, make_discount):
        discount = make_discount()
        now = utcnow()
        discount.start_date = now - timedelta(days=10)
        discount.end_date = now - timedelta(days=1)
        session.commit()
        assert discount.status == 'expired'

    def test_pause_is_sticky_across_unrelated_edits(self, session, make_discount):
        discount = make_discount()
        discount.status = 'paused'
        session.commit()

        discount.name = 'Renamed'
        discount.value = Decimal('15')
        session.commit()
        assert discount.status == 'paused'


class TestStaleStatus:

    def test_refresh_promotes_opened_upcoming(self, session, make_discount):
        discount = make_discount()
        # Stored while the window was still closed
        session.query(Discount).filter(Discount.id == discount.id).update(
            {Discount.status: 'upcoming'}, synchronize_session=False
        )
        session.commit()
        assert discount.status == 'upcoming'

        assert refresh_stale_status(session, discount) is True
        session.commit()
        assert discount.status == 'active'

    def test_refresh_ignores_other_statuses(self, session, make_discount):
        discount = make_discount()
        assert refresh_stale_status(session, discount) is False

    def test_refresh_expires_lapsed_active(self, session, make_discount):
        now = utcnow()
        discount = make_discount(start_date=now - timedelta(days=1), end_date=now + timedelta(hours=1))
        discount_id = discount.id

        assert refresh_stale_status(session, discount, now + timedelta(days=1)) is True
        session.commit()
        session.expire_all()

        assert session.get(Discount, discount_id).status == 'expired'

    def test_refresh_leaves_paused_past_end(self, session, make_discount):
        now = utcnow()
        discount = make_discount(end_date=now + timedelta(hours=1))
        discount.status = 'paused'
        session.commit()

        assert refresh_stale_status(session, discount, now + timedelta(days=1)) is False
        assert discount.status == 'paused'

    def test_refresh_stale_statuses_bulk(self, session, owner, make_discount):
        now = utcnow()
        make_discount(start_date=now + timedelta(hours=1), end_date=now + timedelta(days=3))
        make_discount(start_date=now + timedelta(hours=1), end_date=now + timedelta(hours=2))
        make_discount(start_date=now + timedelta(days=5), end_date=now + timedelta(days=6))
        make_discount(start_date=now - timedelta(days=1), end_date=now + timedelta(hours=1))

        refreshed = refresh_stale_statuses(session, owner.id, now + timedelta(hours=3))
        session.commit()
        session.expire_all()

        assert refreshed == 3
        statuses = sorted(d.status for d in session.query(Discount).all())
        assert statuses == ['active', 'expired', 'expired', 'upcoming']

    def test_sweep_keeps_paused(self, session, owner, make_discount):
        now = utcnow()
        paused = make_discount()
        paused.status = 'paused'
        forced = make_discount()
        session.commit()
        session.query(Discount).filter(Discount.id == forced.id).update(
            {Discount.status: 'expired'}, synchronize_session=False
        )
        session.commit()

        updated = refresh_discount_statuses(session, owner_id=owner.id, now=now)
        session.commit()
        session.expire_all()

        assert updated == 1
        assert session.get(Discount, paused.id).status == 'paused'
        assert session.get(Discount, forced.id).status == 'active'
