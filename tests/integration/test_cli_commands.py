"""
Integration tests for the Flask CLI commands.
"""

from app.models import AppUser, Discount
from app.services.auth_service import decode_access_token


def test_create_user_and_issue_token(app, session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        'create-user', '--email', 'Shop@Example.com', '--password', 'secret123', '--role', 'shopOwner'
    ])
    assert result.exit_code == 0, result.output
    assert 'User created successfully' in result.output

    user = session.query(AppUser).filter_by(email='shop@example.com').one()
    assert user.role == 'shopOwner'
    assert user.check_password('secret123')

    result = runner.invoke(args=['issue-token', '--email', 'shop@example.com'])
    assert result.exit_code == 0, result.output
    assert decode_access_token(result.output.strip()) == user.id


def test_create_user_rejects_short_password(app):
    result = app.test_cli_runner().invoke(args=['create-user', '--email', 'x@example.com', '--password', '123'])
    assert result.exit_code == 1
    assert 'Password must be at least 6 characters' in result.output


def test_issue_token_unknown_user(app):
    result = app.test_cli_runner().invoke(args=['issue-token', '--email', 'nobody@example.com'])
    assert result.exit_code == 1


def test_refresh_discount_status(app, session, discount):
    discount_id = discount.id
    session.query(Discount).filter(Discount.id == discount_id).update(
        {Discount.status: 'expired'}, synchronize_session=False
    )
    session.commit()

    result = app.test_cli_runner().invoke(args=['refresh-discount-status'])

    assert result.exit_code == 0, result.output
    assert '1 discount(s) updated.' in result.output
    session.expire_all()
    assert session.get(Discount, discount_id).status == 'active'
