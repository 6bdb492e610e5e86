"""Custom exceptions for the storefront application."""


class SaasError(Exception):
    """Base exception for all application errors."""
    code = 'INTERNAL_FAILURE'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = {
            'success': False,
            'message': self.message,
            'code': self.code,
        }
        if self.payload:
            rv['data'] = dict(self.payload)
        return rv


class BusinessLogicError(SaasError):
    """Exception raised for business logic violations."""
    code = 'BUSINESS_RULE'

    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(SaasError):
    """Exception raised when a resource is not found."""
    code = 'NOT_FOUND'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class UnauthorizedError(SaasError):
    """Raised when a user lacks permission for an action."""
    code = 'FORBIDDEN'

    def __init__(self, message="Unauthorized access", payload=None):
        super().__init__(message, 403, payload)


class AuthenticationError(SaasError):
    """Raised when the request carries no valid credentials."""
    code = 'UNAUTHENTICATED'

    def __init__(self, message="Access denied. Please log in to continue."):
        super().__init__(message, 401)


class ValidationFailureError(BusinessLogicError):
    """Malformed or missing input fields."""
    code = 'VALIDATION_FAILURE'

    def __init__(self, errors, message=None):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(message or ", ".join(self.errors), payload={'errors': self.errors})


class InternalFailureError(SaasError):
    """Infrastructure failure (storage, cache, database) surfaced to callers."""
    code = 'INTERNAL_FAILURE'

    def __init__(self, message="Internal Server Error", detail=None):
        payload = {'detail': detail} if detail else None
        super().__init__(message, 500, payload)


# =====================================================
# DISCOUNT ENGINE
# =====================================================

class DiscountNotFoundError(NotFoundError):
    def __init__(self, message="Discount not found"):
        super().__init__(message)


class NotOwnerError(UnauthorizedError):
    """Ownership or role violation."""
    code = 'NOT_OWNER'

    def __init__(self, message="You do not own this discount", not_owned=None):
        payload = {'notOwned': list(not_owned)} if not_owned else None
        super().__init__(message, payload)


class DuplicateCodeError(BusinessLogicError):
    code = 'DUPLICATE_CODE'

    def __init__(self, code_value):
        self.code_value = code_value
        super().__init__(
            f"Discount code {code_value} already exists for your shop",
            status_code=409,
            payload={'code': code_value}
        )


class InvalidDateRangeError(BusinessLogicError):
    code = 'INVALID_DATE_RANGE'

    def __init__(self, message="End date must be after start date"):
        super().__init__(message)


class GenerationExhaustedError(SaasError):
    """No free discount code could be drawn within the retry budget."""
    code = 'GENERATION_EXHAUSTED'

    def __init__(self, attempts):
        super().__init__(
            f"Could not generate a unique discount code after {attempts} attempts",
            503,
            {'attempts': attempts}
        )


class DiscountRejection(BusinessLogicError):
    """A code exists but cannot be redeemed right now."""
    code = 'REJECTED'


class NotYetActiveError(DiscountRejection):
    code = 'NOT_YET_ACTIVE'

    def __init__(self, start_date):
        super().__init__("Discount is not active yet", payload={'startDate': _iso(start_date)})


class DiscountExpiredError(DiscountRejection):
    code = 'EXPIRED'

    def __init__(self, end_date):
        super().__init__("Discount has expired", payload={'endDate': _iso(end_date)})


class DiscountInactiveError(DiscountRejection):
    code = 'INACTIVE'

    def __init__(self, status=None):
        payload = {'status': status} if status else None
        super().__init__("Discount is not active", payload=payload)


class UsageLimitReachedError(DiscountRejection):
    code = 'LIMIT_REACHED'

    def __init__(self, usage_limit=None):
        payload = {'usageLimit': usage_limit} if usage_limit is not None else None
        super().__init__("Discount usage limit reached", payload=payload)


class BelowMinimumOrderError(DiscountRejection):
    code = 'BELOW_MINIMUM'

    def __init__(self, min_order):
        super().__init__(
            f"Minimum order amount is ${min_order}",
            payload={'minOrder': float(min_order)}
        )


def _iso(value):
    return value.isoformat() if value is not None else None
