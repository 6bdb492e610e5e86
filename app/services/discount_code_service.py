"""
Discount code generation and per-owner uniqueness checks.

Codes are unique per (owner, code): two shops may both run SAVE10.
"""
import logging
import secrets
import string
from typing import Optional

from flask import current_app, has_app_context

from app.models import Discount
from app.exceptions import DuplicateCodeError, GenerationExhaustedError, ValidationFailureError

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_MAX_LENGTH = 20
DEFAULT_CODE_LENGTH = 8
DEFAULT_MAX_ATTEMPTS = 20


def normalize_code(code: Optional[str]) -> str:
    """Trim and uppercase a caller-supplied code."""
    return (code or '').strip().upper()


def _config(key: str, default: int) -> int:
    if has_app_context():
        return int(current_app.config.get(key, default))
    return default


def code_exists(session, owner_id: int, code: str, exclude_id: Optional[int] = None) -> bool:
    query = session.query(Discount.id).filter(
        Discount.created_by == owner_id,
        Discount.code == code
    )
    if exclude_id is not None:
        query = query.filter(Discount.id != exclude_id)
    return query.first() is not None


def generate_discount_code(
    session,
    owner_id: int,
    length: Optional[int] = None,
    max_attempts: Optional[int] = None
) -> str:
    """
    Draw random codes from [A-Z0-9] until one is free for this owner.

    Raises:
        GenerationExhaustedError: if every draw within max_attempts collided
    """
    length = length or _config('DISCOUNT_CODE_LENGTH', DEFAULT_CODE_LENGTH)
    max_attempts = max_attempts or _config('DISCOUNT_CODE_MAX_ATTEMPTS', DEFAULT_MAX_ATTEMPTS)

    for attempt in range(1, max_attempts + 1):
        candidate = ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length))
        if not code_exists(session, owner_id, candidate):
            if attempt > 1:
                logger.info(f"[DISCOUNT] Generated code for owner {owner_id} after {attempt} attempts")
            return candidate

    logger.error(f"[DISCOUNT] Code generation exhausted for owner {owner_id} ({max_attempts} attempts)")
    raise GenerationExhaustedError(max_attempts)


def ensure_code_available(session, owner_id: int, code: str, exclude_id: Optional[int] = None) -> str:
    """
    Normalize a caller-supplied code and check it is free for this owner.

    Returns the normalized code.
    """
    normalized = normalize_code(code)
    if not normalized:
        raise ValidationFailureError('Discount code cannot be empty')
    if len(normalized) > CODE_MAX_LENGTH:
        raise ValidationFailureError(f'Discount code cannot exceed {CODE_MAX_LENGTH} characters')

    if code_exists(session, owner_id, normalized, exclude_id=exclude_id):
        raise DuplicateCodeError(normalized)
    return normalized
