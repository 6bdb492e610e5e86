"""AppUser model - platform accounts (shop owners, admins, customers)."""
import enum
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from app.database import Base, BigIntId


class UserRole(enum.Enum):
    """Platform-wide roles."""
    SHOP_OWNER = 'shopOwner'
    ADMIN = 'admin'
    CUSTOMER = 'customer'


class AppUser(Base):
    """AppUser model - every authenticated caller resolves to one of these."""

    __tablename__ = 'app_user'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=True)
    full_name = Column(String(200), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.SHOP_OWNER.value)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def set_password(self, password):
        """Set password hash."""
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def is_admin(self):
        """Admins have cross-tenant read visibility."""
        return self.role == UserRole.ADMIN.value

    def is_shop_owner(self):
        return self.role == UserRole.SHOP_OWNER.value

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}', role='{self.role}')>"
