import pytest

from expense_flow.auth import AuthService, InMemoryCredentialStore
from expense_flow.errors import AuthenticationError, ConflictError, ValidationError


@pytest.fixture
def auth(store):
    store.create_user(email="sarah@agency.com", name="Sarah Miller", department="Marketing")
    store.create_user(email="left@agency.com", name="Former Employee", is_active=False)
    return AuthService(store, InMemoryCredentialStore())


def test_login_issues_token_that_resolves_to_user(auth):
    token, user = auth.login("sarah@agency.com")

    assert token
    assert auth.authenticate(token) == user


def test_login_rejects_unknown_and_inactive_users(auth):
    with pytest.raises(AuthenticationError):
        auth.login("nobody@agency.com")
    with pytest.raises(AuthenticationError):
        auth.login("left@agency.com")


def test_register_creates_employee_and_rejects_duplicates(auth):
    token, user = auth.register("dana@agency.com", "Dana Lee", "Sales")

    assert user.role == "employee"
    assert user.department == "Sales"
    assert auth.authenticate(token).id == user.id
    with pytest.raises(ConflictError):
        auth.register("dana@agency.com", "Dana Again")
    with pytest.raises(ValidationError):
        auth.register("", "No Email")
    with pytest.raises(ValidationError):
        auth.register("noname@agency.com", "  ")


def test_logout_revokes_token(auth):
    token, _ = auth.login("sarah@agency.com")

    auth.logout(token)

    with pytest.raises(AuthenticationError):
        auth.authenticate(token)
    with pytest.raises(AuthenticationError):
        auth.authenticate(None)
