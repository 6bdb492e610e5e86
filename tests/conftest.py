import pytest
from datetime import timedelta
from decimal import Decimal
import uuid

from app import create_app
from app.database import Base, db_session, get_session, create_tables, drop_tables
from app.models import AppUser, UserRole, Category, Product, Discount
from app.services.auth_service import issue_access_token
from app.services.discount_status_service import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (SQLite, no Redis, no S3)."""
    app = create_app('config.TestConfig')
    with app.app_context():
        drop_tables()
        create_tables()
    yield app
    with app.app_context():
        db_session.remove()
        drop_tables()


@pytest.fixture(autouse=True)
def app_context(app):
    """Run every test inside an app context and empty all tables afterwards."""
    ctx = app.app_context()
    ctx.push()
    yield
    db_session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        db_session.execute(table.delete())
    db_session.commit()
    db_session.remove()
    ctx.pop()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Database session for testing."""
    return get_session()


def _make_user(session, role, label):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(
        email=f'{label}-{suffix}@test.com',
        full_name=label.replace('-', ' ').title(),
        role=role,
        active=True
    )
    user.set_password('password123')
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture(scope='function')
def owner(session):
    """Shop owner A."""
    return _make_user(session, UserRole.SHOP_OWNER.value, 'owner-a')


@pytest.fixture(scope='function')
def other_owner(session):
    """Shop owner B, used for isolation tests."""
    return _make_user(session, UserRole.SHOP_OWNER.value, 'owner-b')


@pytest.fixture(scope='function')
def admin(session):
    return _make_user(session, UserRole.ADMIN.value, 'admin')


@pytest.fixture(scope='function')
def customer(session):
    return _make_user(session, UserRole.CUSTOMER.value, 'customer')


def bearer(user):
    return {'Authorization': f'Bearer {issue_access_token(user)}'}


@pytest.fixture(scope='function')
def owner_headers(owner):
    return bearer(owner)


@pytest.fixture(scope='function')
def other_headers(other_owner):
    return bearer(other_owner)


@pytest.fixture(scope='function')
def admin_headers(admin):
    return bearer(admin)


@pytest.fixture(scope='function')
def customer_headers(customer):
    return bearer(customer)


@pytest.fixture(scope='function')
def category(session, owner):
    category = Category(created_by=owner.id, name='Shoes')
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


@pytest.fixture(scope='function')
def product(session, owner, category):
    product = Product(created_by=owner.id, name='Running Shoe', category_id=category.id, price=Decimal('80.00'))
    session.add(product)
    session.commit()
    session.refresh(product)
    return product


@pytest.fixture(scope='function')
def make_discount(session, owner):
    """
    Factory inserting a discount directly through the ORM.

    Defaults to an active 10% discount running from yesterday to next week.
    """
    owner_id = owner.id

    def factory(**overrides):
        now = utcnow()
        fields = {
            'created_by': owner_id,
            'name': 'Spring Sale',
            'code': 'SPRING' + uuid.uuid4().hex[:8].upper(),
            'type': 'percentage',
            'value': Decimal('10'),
            'start_date': now - timedelta(days=1),
            'end_date': now + timedelta(days=7),
        }
        fields.update(overrides)
        discount = Discount(**fields)
        session.add(discount)
        session.commit()
        session.refresh(discount)
        return discount
    return factory


@pytest.fixture(scope='function')
def discount(make_discount):
    return make_discount()
