"""Tests for UserManager."""

import pytest
from pydantic import ValidationError

from librarydesk.users import UserCreate, UserManager, UserUpdate


def registration(**overrides) -> UserCreate:
    data = {
        "email": "new@example.com",
        "password": "correct horse",
        "first_name": "New",
        "last_name": "Reader",
    }
    data.update(overrides)
    return UserCreate(**data)


class TestCreateUser:
    """Tests for user registration."""

    def test_defaults(self, users):
        user = users.create_user(registration())

        assert user.is_active is True
        assert user.max_loans == 5
        assert user.get_roles() == ["user"]
        assert not user.is_admin

    def test_password_is_hashed(self, users):
        user = users.create_user(registration())
        assert user.password_hash != "correct horse"

    def test_email_lowercased(self, users):
        user = users.create_user(registration(email="Mixed.Case@Example.com"))
        assert user.email == "mixed.case@example.com"
        assert users.get_user_by_email("MIXED.case@example.com").id == user.id

    def test_duplicate_email_rejected(self, users, user):
        with pytest.raises(ValueError, match="already exists"):
            users.create_user(registration(email="READER@example.com"))

    def test_invalid_email_rejected(self):
        with pytest.raises(ValidationError):
            registration(email="not-an-email")

    def test_short_password_rejected(self):
        with pytest.raises(ValidationError):
            registration(password="short")

    def test_custom_cap_and_admin(self, users):
        user = users.create_user(registration(max_loans=2, is_admin=True))
        assert user.max_loans == 2
        assert user.is_admin

    def test_default_cap_from_config(self, db, monkeypatch):
        monkeypatch.setenv("LIBRARYDESK_MAX_LOANS", "7")
        assert UserManager(db).create_user(registration()).max_loans == 7


class TestAccountChanges:
    """Tests for activation, caps and roles."""

    def test_deactivate_and_reactivate(self, users, user):
        assert users.set_active(user.id, False).is_active is False
        assert users.set_active(user.id, True).is_active is True

    def test_set_missing_user(self, users):
        assert users.set_active("missing", False) is None

    def test_negative_cap_rejected(self, users, user):
        with pytest.raises(ValueError):
            users.set_max_loans(user.id, -1)

    def test_grant_and_revoke_admin(self, users, user):
        assert users.grant_admin(user.id).is_admin
        assert not users.grant_admin(user.id, admin=False).is_admin

    def test_update_profile(self, users, user):
        updated = users.update_user(user.id, UserUpdate(phone="0102030405"))
        assert updated.phone == "0102030405"
        assert updated.first_name == "Ada"

    def test_list_active_only(self, users, user, other_user):
        users.set_active(other_user.id, False)

        assert len(users.list_users()) == 2
        assert [u.id for u in users.list_users(active_only=True)] == [user.id]


class TestQueries:
    """Tests for credential checks and loan counts."""

    def test_verify_password(self, users, user):
        assert users.verify_password("reader@example.com", "password").id == user.id
        assert users.verify_password("reader@example.com", "wrong") is None
        assert users.verify_password("nobody@example.com", "password") is None

    def test_count_open_loans(self, users, loans, user, book, make_book):
        loans.borrow(user.id, book.id)
        returned = loans.borrow(user.id, make_book().id)
        loans.return_book(returned.id)

        assert users.count_open_loans(user.id) == 1
