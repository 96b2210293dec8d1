"""
Unit tests for the identity user store and sign-in manager.

Tests cover:
- User CRUD and name normalization
- Password hashing
- Concurrency stamps
- Lockout bookkeeping
- Cookie signing
"""

import pytest

from appliance.identity_host.identity.schemes import CookieSigner, SignInManager, SignInResult
from appliance.identity_host.identity.users import (
    ConcurrencyError,
    DuplicateUserError,
    PasswordHasher,
    UserStore,
)
from appliance.identity_host.store.migrator import SchemaMigrator


@pytest.fixture
def users(store):
    """UserStore over a migrated store, with a fast hasher."""
    SchemaMigrator().migrate(store)
    return UserStore(store, hasher=PasswordHasher(time_cost=1, memory_cost=8, parallelism=1))


class TestPasswordHasher:
    """Tests for PasswordHasher."""

    @pytest.fixture
    def hasher(self):
        return PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)

    def test_verify(self, hasher):
        encoded = hasher.hash_password("s3cret!")

        assert encoded.startswith("$argon2id$")
        assert "s3cret!" not in encoded
        assert hasher.verify_password(encoded, "s3cret!") is True
        assert hasher.verify_password(encoded, "wrong") is False

    def test_salted(self, hasher):
        assert hasher.hash_password("same") != hasher.hash_password("same")

    @pytest.mark.parametrize(
        "encoded",
        [
            None,
            "",
            "plain",
            "md5$1$abc$def",
            "pbkdf2_sha256$not-a-number$!!$!!",
            "$argon2id$v=19$m=8,t=1,p=1$@@@@$@@@@",
            "$argon2id$v=19$garbage",
        ],
    )
    def test_unreadable_hashes_never_match(self, hasher, encoded):
        """Corrupt or foreign stored hashes fail verification instead of raising."""
        assert hasher.verify_password(encoded, "x") is False

    def test_needs_rehash_on_cost_change(self, hasher):
        encoded = hasher.hash_password("pw")

        assert hasher.needs_rehash(encoded) is False
        assert PasswordHasher(time_cost=2, memory_cost=8, parallelism=1).needs_rehash(encoded) is True
        assert hasher.needs_rehash("plain") is True


class TestUserStore:
    """Tests for UserStore."""

    def test_create_and_find(self, users):
        user = users.create("alice", "Alice@Example.com", "s3cret!")

        assert user.normalized_user_name == "ALICE"
        assert users.find_by_id(user.id) == user
        assert users.find_by_name(" Alice ").id == user.id
        assert users.find_by_email("alice@example.COM").id == user.id
        assert users.find_by_name("bob") is None

    def test_duplicate_name(self, users):
        users.create("alice", "a@example.com", "pw")

        with pytest.raises(DuplicateUserError):
            users.create("ALICE", "other@example.com", "pw")

    def test_update_changes_concurrency_stamp(self, users):
        user = users.create("alice", "a@example.com", "pw")

        updated = users.confirm_email(user)

        assert updated.email_confirmed is True
        assert updated.concurrency_stamp != user.concurrency_stamp
        assert users.find_by_id(user.id).email_confirmed is True

    def test_stale_update_rejected(self, users):
        """An update based on an outdated row is refused."""
        user = users.create("alice", "a@example.com", "pw")
        users.confirm_email(user)

        with pytest.raises(ConcurrencyError):
            users.confirm_email(user)

    def test_set_password_rotates_security_stamp(self, users):
        user = users.create("alice", "a@example.com", "old")

        updated = users.set_password(user, "new")

        assert updated.security_stamp != user.security_stamp
        assert users.check_password(updated, "new") is True
        assert users.check_password(updated, "old") is False

    def test_delete(self, users):
        user = users.create("alice", "a@example.com", "pw")

        assert users.delete(user.id) is True
        assert users.delete(user.id) is False
        assert users.find_by_id(user.id) is None

    def test_lockout_after_failures(self, users):
        user = users.create("alice", "a@example.com", "pw")
        for _ in range(3):
            user = users.record_failed_access(user, max_attempts=3)

        assert users.is_locked_out(user) is True
        assert user.access_failed_count == 0

        user = users.reset_access_failed(user)
        assert users.is_locked_out(user) is False


class TestSignInManager:
    """Tests for password sign-in outcomes."""

    @pytest.fixture
    def manager(self, users):
        return SignInManager(users, CookieSigner("test-secret"))

    def test_unknown_user(self, manager):
        result, user = manager.password_sign_in("nobody", "pw")

        assert result is SignInResult.FAILED
        assert user is None

    def test_unconfirmed_not_allowed(self, manager, users):
        users.create("alice", "a@example.com", "pw")

        result, _ = manager.password_sign_in("alice", "pw")

        assert result is SignInResult.NOT_ALLOWED

    def test_confirmation_not_required(self, users):
        users.create("alice", "a@example.com", "pw")
        manager = SignInManager(users, CookieSigner("k"), require_confirmed_account=False)

        result, _ = manager.password_sign_in("alice", "pw")

        assert result is SignInResult.SUCCEEDED

    def test_success_and_wrong_password(self, manager, users):
        users.confirm_email(users.create("alice", "a@example.com", "pw"))

        assert manager.password_sign_in("alice", "pw")[0] is SignInResult.SUCCEEDED
        assert manager.password_sign_in("alice", "nope")[0] is SignInResult.FAILED

    def test_locks_out(self, manager, users):
        users.confirm_email(users.create("alice", "a@example.com", "pw"))
        results = [manager.password_sign_in("alice", "nope")[0] for _ in range(5)]

        assert results[-1] is SignInResult.LOCKED_OUT
        assert manager.password_sign_in("alice", "pw")[0] is SignInResult.LOCKED_OUT


class TestCookieSigner:
    """Tests for CookieSigner."""

    def test_tampered_value_rejected(self):
        signer = CookieSigner("k")
        token = signer.sign("user|stamp|1")

        assert signer.unsign(token) == "user|stamp|1"
        assert signer.unsign(token[:-1] + ("0" if token[-1] != "0" else "1")) is None
        assert CookieSigner("other").unsign(token) is None
        assert signer.unsign(None) is None
        assert signer.unsign("no-dot") is None
