import unittest
from datetime import timedelta

from youfin import create_app
from youfin.config import TestingConfig
from youfin.extensions import db
from youfin.models import User, SessionToken, SecurityEvent
from youfin.services import session_service, login_throttle_service
from youfin.time_utils import utcnow


class SessionServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app(TestingConfig)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(SecurityEvent).delete()
        db.session.query(SessionToken).delete()
        db.session.query(User).delete()
        db.session.commit()

        self.user = User(
            first_name="Pat",
            last_name="Tester",
            username="pattester1234",
            email="pat@youfin.test",
            password_hash="x",
            role="parent",
            is_verified=True,
        )
        db.session.add(self.user)
        db.session.commit()

    def test_create_and_validate(self):
        session, token = session_service.create_session(self.user.id, user_agent="pytest", ip_address="127.0.0.1")
        self.assertEqual(len(token), 64)
        self.assertNotEqual(session.token_hash, token)

        context = session_service.validate_session(token)
        self.assertIsNotNone(context)
        self.assertEqual(context.user.id, self.user.id)
        self.assertEqual(context.session.id, session.id)

    def test_unknown_token(self):
        self.assertIsNone(session_service.validate_session("nope"))

    def test_create_for_missing_user(self):
        with self.assertRaises(ValueError):
            session_service.create_session(9999)

    def test_expired_session_rejected(self):
        session, token = session_service.create_session(self.user.id)
        session.expires_at = utcnow() - timedelta(seconds=1)
        db.session.commit()
        self.assertIsNone(session_service.validate_session(token))

    def test_idle_session_revoked(self):
        session, token = session_service.create_session(self.user.id)
        session.last_used_at = utcnow() - timedelta(hours=3)
        db.session.commit()

        self.assertIsNone(session_service.validate_session(token))
        db.session.refresh(session)
        self.assertTrue(session.is_revoked)
        self.assertEqual(session.revoked_reason, "Idle timeout")

    def test_revoke_session(self):
        _, token = session_service.create_session(self.user.id)
        self.assertTrue(session_service.revoke_session(token))
        self.assertFalse(session_service.revoke_session(token))
        self.assertIsNone(session_service.validate_session(token))

    def test_revoke_all_user_sessions(self):
        tokens = [session_service.create_session(self.user.id)[1] for _ in range(3)]
        self.assertEqual(session_service.revoke_all_user_sessions(self.user.id), 3)
        for token in tokens:
            self.assertIsNone(session_service.validate_session(token))

    def test_cleanup_expired_sessions(self):
        old, _ = session_service.create_session(self.user.id)
        old.created_at = utcnow() - timedelta(days=40)
        old.expires_at = utcnow() - timedelta(days=39)
        _, fresh_token = session_service.create_session(self.user.id)
        db.session.commit()

        self.assertEqual(session_service.cleanup_expired_sessions(older_than_days=30), 1)
        self.assertIsNotNone(session_service.validate_session(fresh_token))


class LoginThrottleTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app(TestingConfig)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(SecurityEvent).delete()
        db.session.commit()

    def test_lock_after_max_attempts(self):
        for _ in range(login_throttle_service.MAX_FAILED_ATTEMPTS - 1):
            login_throttle_service.record_failed_attempt("someone@youfin.test")
        self.assertEqual(login_throttle_service.is_account_locked("someone@youfin.test"), (False, None))

        login_throttle_service.record_failed_attempt("SOMEONE@youfin.test")
        locked, seconds = login_throttle_service.is_account_locked("someone@youfin.test")
        self.assertTrue(locked)
        self.assertGreater(seconds, 0)

    def test_old_failures_do_not_count(self):
        old = utcnow() - timedelta(minutes=20)
        for _ in range(login_throttle_service.MAX_FAILED_ATTEMPTS):
            db.session.add(SecurityEvent(
                event_type="LOGIN_FAILED",
                action="someone@youfin.test",
                success=False,
                occurred_at=old,
            ))
        db.session.commit()

        self.assertEqual(login_throttle_service.get_recent_failed_attempts("someone@youfin.test"), 0)
        self.assertFalse(login_throttle_service.get_lockout_status("someone@youfin.test")["locked"])

    def test_cleanup_security_events(self):
        db.session.add(SecurityEvent(
            event_type="LOGIN_FAILED",
            action="someone@youfin.test",
            success=False,
            occurred_at=utcnow() - timedelta(days=120),
        ))
        db.session.commit()
        login_throttle_service.record_failed_attempt("someone@youfin.test")

        self.assertEqual(login_throttle_service.cleanup_security_events(retention_days=90), 1)
        self.assertEqual(db.session.query(SecurityEvent).count(), 1)


if __name__ == "__main__":
    unittest.main()
