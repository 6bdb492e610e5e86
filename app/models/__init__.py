"""Models package - exports all SQLAlchemy models."""
# Accounts
from app.models.app_user import AppUser, UserRole

# Catalog references
from app.models.category import Category
from app.models.product import Product

# Discount engine
from app.models.discount import (
    Discount, DiscountType, DiscountStatus, CustomerType, AppliesTo, BULK_STATUSES,
    discount_category, discount_product
)

__all__ = [
    'AppUser', 'UserRole',
    'Category', 'Product',
    'Discount', 'DiscountType', 'DiscountStatus', 'CustomerType', 'AppliesTo', 'BULK_STATUSES',
    'discount_category', 'discount_product',
]
