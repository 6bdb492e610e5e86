"""Category model."""
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntId


class Category(Base):
    """Product Category, unique by name per owner."""

    __tablename__ = 'category'
    __table_args__ = (
        UniqueConstraint('created_by', 'name', name='uq_category_owner_name'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    created_by = Column(BigIntId, ForeignKey('app_user.id'), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    owner = relationship('AppUser')

    def to_summary(self):
        return {'id': self.id, 'name': self.name}

    def __repr__(self):
        return f"<Category(id={self.id}, name='{self.name}')>"
