"""Discount model - owner-scoped promotional codes."""
import enum
from sqlalchemy import (
    Column, String, Text, Boolean, Integer, Numeric, DateTime, ForeignKey,
    Table, UniqueConstraint, Index, event
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntId
from app.services.discount_status_service import (
    apply_temporal_state, days_remaining, usage_percentage, is_currently_active, utcnow
)


class DiscountType(str, enum.Enum):
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'


class DiscountStatus(str, enum.Enum):
    """Lifecycle status. PAUSED is the only manual pin."""
    UPCOMING = 'upcoming'
    ACTIVE = 'active'
    EXPIRED = 'expired'
    PAUSED = 'paused'


class CustomerType(str, enum.Enum):
    ALL = 'all'
    NEW = 'new'
    RETURNING = 'returning'
    VIP = 'vip'


class AppliesTo(str, enum.Enum):
    ALL_PRODUCTS = 'all_products'
    SELECTED_CATEGORIES = 'selected_categories'
    SELECTED_PRODUCTS = 'selected_products'


# Statuses an owner may force through the bulk endpoint
BULK_STATUSES = (DiscountStatus.ACTIVE.value, DiscountStatus.PAUSED.value, DiscountStatus.EXPIRED.value)


discount_category = Table(
    'discount_category',
    Base.metadata,
    Column('discount_id', BigIntId, ForeignKey('discount.id', ondelete='CASCADE'), primary_key=True),
    Column('category_id', BigIntId, ForeignKey('category.id', ondelete='CASCADE'), primary_key=True),
)

discount_product = Table(
    'discount_product',
    Base.metadata,
    Column('discount_id', BigIntId, ForeignKey('discount.id', ondelete='CASCADE'), primary_key=True),
    Column('product_id', BigIntId, ForeignKey('product.id', ondelete='CASCADE'), primary_key=True),
)


class Discount(Base):
    """
    Discount campaign owned by a single shop owner.

    status and remaining_uses are derived on every ORM flush (see the
    mapper events at the bottom of this module). used_count, orders_used
    and revenue_generated are only written by the usage ledger.
    """

    __tablename__ = 'discount'
    __table_args__ = (
        UniqueConstraint('created_by', 'code', name='uq_discount_owner_code'),
        Index('ix_discount_dates', 'start_date', 'end_date'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    created_by = Column(BigIntId, ForeignKey('app_user.id'), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(20), nullable=False)
    description = Column(String(500), nullable=False, default='')
    type = Column(String(20), nullable=False, default=DiscountType.PERCENTAGE.value)
    value = Column(Numeric(12, 2), nullable=False)
    image_path = Column(String(255), nullable=True)

    min_order = Column(Numeric(12, 2), nullable=False, default=0)
    max_discount = Column(Numeric(12, 2), nullable=False, default=0)  # 0 = no cap

    # Naive UTC
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)

    usage_limit = Column(Integer, nullable=True)  # NULL = unlimited
    used_count = Column(Integer, nullable=False, default=0)
    remaining_uses = Column(Integer, nullable=True)

    customer_type = Column(String(20), nullable=False, default=CustomerType.ALL.value)
    applies_to = Column(String(30), nullable=False, default=AppliesTo.ALL_PRODUCTS.value)
    one_time_use = Column(Boolean, nullable=False, default=False)
    combine_with_other = Column(Boolean, nullable=False, default=True)
    exclude_sale_items = Column(Boolean, nullable=False, default=False)

    status = Column(String(20), nullable=False, default=DiscountStatus.ACTIVE.value, index=True)
    revenue_generated = Column(Numeric(14, 2), nullable=False, default=0)
    orders_used = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    owner = relationship('AppUser')
    categories = relationship('Category', secondary=discount_category, lazy='selectin')
    products = relationship('Product', secondary=discount_product, lazy='selectin')

    def __repr__(self):
        return f"<Discount(id={self.id}, code='{self.code}', status='{self.status}')>"

    @property
    def image_url(self):
        """Public URL for the discount image, or None."""
        if not self.image_path:
            return None
        if self.image_path.startswith(('http://', 'https://')):
            return self.image_path

        from flask import current_app
        public_url = current_app.config.get('S3_PUBLIC_URL', 'http://localhost:9000')
        bucket = current_app.config.get('S3_BUCKET', 'uploads')
        return f"{public_url.rstrip('/')}/{bucket.strip('/')}/{self.image_path.lstrip('/')}"

    def to_dict(self, now=None):
        """JSON payload including the read-time derived fields."""
        now = now or utcnow()
        return {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'description': self.description or '',
            'type': self.type,
            'value': float(self.value or 0),
            'image': self.image_url,
            'minOrder': float(self.min_order or 0),
            'maxDiscount': float(self.max_discount or 0),
            'startDate': self.start_date.isoformat() if self.start_date else None,
            'endDate': self.end_date.isoformat() if self.end_date else None,
            'usageLimit': self.usage_limit,
            'usedCount': self.used_count or 0,
            'remainingUses': self.remaining_uses,
            'customerType': self.customer_type,
            'appliesTo': self.applies_to,
            'categories': [c.to_summary() for c in self.categories],
            'products': [p.to_summary() for p in self.products],
            'oneTimeUse': bool(self.one_time_use),
            'combineWithOther': bool(self.combine_with_other),
            'excludeSaleItems': bool(self.exclude_sale_items),
            'status': self.status,
            'revenueGenerated': float(self.revenue_generated or 0),
            'ordersUsed': self.orders_used or 0,
            'createdBy': self.created_by,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
            'daysRemaining': days_remaining(self.end_date, now),
            'usagePercentage': usage_percentage(self.used_count or 0, self.usage_limit),
            'isActive': is_currently_active(self, now),
        }


@event.listens_for(Discount, 'before_insert')
@event.listens_for(Discount, 'before_update')
def _derive_discount_state(mapper, connection, target):
    """Recompute status and remaining_uses before every ORM persist."""
    apply_temporal_state(target, target.__dict__.pop('_evaluated_at', None))
