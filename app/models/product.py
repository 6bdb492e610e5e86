"""Product model."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntId


class Product(Base):
    """Product model (only the fields discounts need to reference)."""

    __tablename__ = 'product'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    created_by = Column(BigIntId, ForeignKey('app_user.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    category_id = Column(BigIntId, ForeignKey('category.id'), nullable=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    owner = relationship('AppUser')
    category = relationship('Category', foreign_keys=[category_id])

    def to_summary(self):
        return {'id': self.id, 'name': self.name, 'price': float(self.price or 0)}

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}')>"
