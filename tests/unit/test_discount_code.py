"""
Unit tests for discount code generation and per-owner uniqueness.
"""

import pytest

from app.exceptions import DuplicateCodeError, GenerationExhaustedError, ValidationFailureError
from app.services import discount_code_service
from app.services.discount_code_service import (
    CODE_ALPHABET, normalize_code, code_exists, generate_discount_code, ensure_code_available
)


class TestGenerateDiscountCode:

    def test_default_shape(self, session, owner):
        code = generate_discount_code(session, owner.id)
        assert len(code) == 8
        assert all(ch in CODE_ALPHABET for ch in code)

    def test_custom_length(self, session, owner):
        assert len(generate_discount_code(session, owner.id, length=12)) == 12

    def test_skips_codes_taken_by_the_same_owner(self, session, owner, make_discount, monkeypatch):
        make_discount(code='AAAAAAAA')
        draws = iter('A' * 8 + 'B' * 8)
        monkeypatch.setattr(discount_code_service.secrets, 'choice', lambda alphabet: next(draws))

        assert generate_discount_code(session, owner.id) == 'BBBBBBBB'

    def test_exhaustion_raises(self, session, owner, make_discount, monkeypatch):
        make_discount(code='AAAAAAAA')
        monkeypatch.setattr(discount_code_service.secrets, 'choice', lambda alphabet: 'A')

        with pytest.raises(GenerationExhaustedError) as exc_info:
            generate_discount_code(session, owner.id, max_attempts=3)
        assert exc_info.value.status_code == 503
        assert exc_info.value.payload == {'attempts': 3}


class TestEnsureCodeAvailable:

    def test_normalizes(self, session, owner):
        assert ensure_code_available(session, owner.id, '  save10 ') == 'SAVE10'
        assert normalize_code(None) == ''

    def test_duplicate_for_same_owner(self, session, owner, make_discount):
        make_discount(code='SAVE10')
        with pytest.raises(DuplicateCodeError) as exc_info:
            ensure_code_available(session, owner.id, 'save10')
        assert exc_info.value.status_code == 409
        assert exc_info.value.to_dict()['code'] == 'DUPLICATE_CODE'

    def test_other_owner_may_reuse_code(self, session, owner, other_owner, make_discount):
        make_discount(code='SAVE10')
        assert ensure_code_available(session, other_owner.id, 'SAVE10') == 'SAVE10'

    def test_exclude_id_allows_keeping_own_code(self, session, owner, make_discount):
        discount = make_discount(code='SAVE10')
        assert code_exists(session, owner.id, 'SAVE10') is True
        assert code_exists(session, owner.id, 'SAVE10', exclude_id=discount.id) is False

    def test_rejects_empty_and_too_long(self, session, owner):
        with pytest.raises(ValidationFailureError):
            ensure_code_available(session, owner.id, '   ')
        with pytest.raises(ValidationFailureError):
            ensure_code_available(session, owner.id, 'X' * 21)
