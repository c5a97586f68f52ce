"""Unit tests for turnstile.services.password_reset: token issuance, expiry and single use."""

import threading
import unittest
from datetime import timedelta
from unittest.mock import MagicMock

from turnstile.core.config import AuthOptions
from turnstile.core.locks import KeyedLock
from turnstile.services.errors import (
    EXPIRED_RESET_TOKEN,
    INVALID_RESET_TOKEN,
    STORE_ERROR,
    USER_NOT_FOUND,
    AuthError,
)
from turnstile.services.password_reset import PasswordResetService, is_token_expired
from tests.support import T0, FakeClock, FakeHasher, InMemoryCredentialStore, make_user


def _service(
    *users, cost_factor: int = 12
) -> tuple[PasswordResetService, InMemoryCredentialStore, FakeHasher, FakeClock]:
    store = InMemoryCredentialStore(*users)
    hasher = FakeHasher()
    clock = FakeClock()
    service = PasswordResetService(
        users=store,
        hasher=hasher,
        options=AuthOptions(cost_factor=cost_factor),
        locks=KeyedLock(),
        logger=MagicMock(),
        clock=clock,
    )
    return service, store, hasher, clock


class TestGenerateResetPasswordToken(unittest.TestCase):
    def test_lookup_by_email(self) -> None:
        service, store, _, _ = _service(make_user())
        user = service.generate_reset_password_token("user1@example.com")
        self.assertEqual(user.id, 1)
        self.assertIsNotNone(user.reset_password_token)
        self.assertEqual(store.get(1).reset_password_token, user.reset_password_token)

    def test_lookup_by_username(self) -> None:
        service, _, _, _ = _service(make_user())
        user = service.generate_reset_password_token("user1")
        self.assertEqual(user.id, 1)

    def test_email_takes_priority_over_username(self) -> None:
        by_username = make_user(1, username="shared@example.com", email="one@example.com")
        by_email = make_user(2, username="two", email="shared@example.com")
        service, store, _, _ = _service(by_username, by_email)
        user = service.generate_reset_password_token("shared@example.com")
        self.assertEqual(user.id, 2)
        self.assertIsNone(store.get(1).reset_password_token)

    def test_unknown_identifier(self) -> None:
        service, store, _, _ = _service(make_user())
        for identifier in ("ghost", "", None):
            with self.assertRaises(AuthError) as ctx:
                service.generate_reset_password_token(identifier)
            self.assertEqual(ctx.exception.kind, USER_NOT_FOUND)
        self.assertEqual(store.update_calls, 0)

    def test_expiry_is_now_plus_ttl(self) -> None:
        service, _, _, _ = _service(make_user())
        user = service.generate_reset_password_token("user1")
        self.assertEqual(user.reset_password_token_expires, T0 + timedelta(hours=24))

    def test_token_has_at_least_128_bits(self) -> None:
        service, _, _, _ = _service(make_user())
        token = service.generate_reset_password_token("user1").reset_password_token
        # token_urlsafe: ~6 bits per character.
        self.assertGreaterEqual(len(token) * 6, 128)

    def test_new_token_replaces_previous(self) -> None:
        service, _, _, _ = _service(make_user())
        first = service.generate_reset_password_token("user1").reset_password_token
        second = service.generate_reset_password_token("user1").reset_password_token
        self.assertNotEqual(first, second)
        with self.assertRaises(AuthError) as ctx:
            service.reset_password(first, "new-password-1")
        self.assertEqual(ctx.exception.kind, INVALID_RESET_TOKEN)
        service.reset_password(second, "new-password-1")

    def test_store_failure_is_generic(self) -> None:
        service, store, _, _ = _service(make_user())
        store.fail_updates = True
        with self.assertRaises(AuthError) as ctx:
            service.generate_reset_password_token("user1")
        self.assertEqual(ctx.exception.kind, STORE_ERROR)


class TestResetPassword(unittest.TestCase):
    def test_redeem_within_ttl(self) -> None:
        service, store, hasher, clock = _service(
            make_user(must_reset_password=True, bad_login_attempts=5), cost_factor=9
        )
        token = service.generate_reset_password_token("user1").reset_password_token
        clock.advance(timedelta(hours=23, minutes=59))
        user = service.reset_password(token, "brand-new-pass")
        self.assertEqual(user.password_hash, "hashed:brand-new-pass")
        self.assertFalse(user.must_reset_password)
        self.assertIsNone(user.reset_password_token)
        self.assertIsNone(user.reset_password_token_expires)
        self.assertEqual(user.bad_login_attempts, 0)
        self.assertEqual(hasher.hash_calls, [("brand-new-pass", 9)])
        self.assertEqual(store.get(1).password_hash, "hashed:brand-new-pass")

    def test_expired_token_fails_and_stays(self) -> None:
        service, store, hasher, clock = _service(make_user())
        token = service.generate_reset_password_token("user1").reset_password_token
        clock.advance(timedelta(hours=24, minutes=1))
        with self.assertRaises(AuthError) as ctx:
            service.reset_password(token, "brand-new-pass")
        self.assertEqual(ctx.exception.kind, EXPIRED_RESET_TOKEN)
        user = store.get(1)
        self.assertEqual(user.reset_password_token, token)
        self.assertIsNotNone(user.reset_password_token_expires)
        self.assertEqual(user.password_hash, "hashed:correct-horse")
        self.assertEqual(hasher.hash_calls, [])

    def test_second_redemption_is_invalid(self) -> None:
        service, _, _, _ = _service(make_user())
        token = service.generate_reset_password_token("user1").reset_password_token
        service.reset_password(token, "brand-new-pass")
        with self.assertRaises(AuthError) as ctx:
            service.reset_password(token, "another-pass")
        self.assertEqual(ctx.exception.kind, INVALID_RESET_TOKEN)

    def test_unknown_or_empty_token(self) -> None:
        service, _, _, _ = _service(make_user())
        for token in ("not-a-token", "", None):
            with self.assertRaises(AuthError) as ctx:
                service.reset_password(token, "brand-new-pass")
            self.assertEqual(ctx.exception.kind, INVALID_RESET_TOKEN)

    def test_reset_does_not_lift_suspension(self) -> None:
        service, store, _, _ = _service(make_user(status="suspended"))
        token = service.generate_reset_password_token("user1").reset_password_token
        service.reset_password(token, "brand-new-pass")
        self.assertEqual(store.get(1).status, "suspended")

    def test_concurrent_redemptions_apply_once(self) -> None:
        service, store, _, _ = _service(make_user())
        token = service.generate_reset_password_token("user1").reset_password_token
        results: list[str] = []
        barrier = threading.Barrier(5)

        def redeem(i: int) -> None:
            barrier.wait()
            try:
                service.reset_password(token, f"password-{i}")
                results.append("ok")
            except AuthError as e:
                results.append(e.kind)

        threads = [threading.Thread(target=redeem, args=(i,)) for i in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(results.count("ok"), 1)
        self.assertEqual(results.count(INVALID_RESET_TOKEN), 4)
        self.assertIsNone(store.get(1).reset_password_token)


class TestIsTokenExpired(unittest.TestCase):
    def test_boundary(self) -> None:
        user = make_user(reset_password_token="t", reset_password_token_expires=T0)
        self.assertFalse(is_token_expired(user, T0 - timedelta(seconds=1)))
        self.assertTrue(is_token_expired(user, T0))

    def test_missing_expiry_counts_as_expired(self) -> None:
        self.assertTrue(is_token_expired(make_user(), T0))


if __name__ == "__main__":
    unittest.main()
