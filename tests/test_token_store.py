import unittest
from datetime import timedelta, timezone

from src.botm.errors import UserNotFound
from src.botm.models import NEVER, User
from src.botm.token_store import TokenStore
from tests.fakes import NOW, add_user, memory_sessionmaker


class TestTokenStore(unittest.TestCase):
    def setUp(self):
        self.Session = memory_sessionmaker()
        self.db = self.Session()
        self.store = TokenStore(self.db)

    def tearDown(self):
        self.db.close()

    def test_get_credential_returns_utc_snapshot(self):
        add_user(self.Session, "u1", access_token="at", refresh_token="rt", expiry=NOW)

        cred = self.store.get_credential("u1")
        self.assertEqual(cred.user_id, "u1")
        self.assertTrue(cred.active)
        self.assertEqual(cred.access_token, "at")
        self.assertEqual(cred.refresh_token, "rt")
        self.assertEqual(cred.expiry, NOW)
        self.assertEqual(cred.expiry.tzinfo, timezone.utc)

    def test_get_credential_missing(self):
        with self.assertRaises(UserNotFound):
            self.store.get_credential("missing")

    def test_list_active_filters_inactive_users(self):
        add_user(self.Session, "b")
        add_user(self.Session, "a")
        add_user(self.Session, "off", active=False)

        self.assertEqual([c.user_id for c in self.store.list_active()], ["a", "b"])
        self.assertEqual([c.user_id for c in self.store.list_active("b")], ["b"])
        self.assertEqual(self.store.list_active("off"), [])
        self.assertEqual(self.store.list_active("unknown"), [])

    def test_update_access_and_refresh(self):
        add_user(self.Session, "u1", refresh_token="rt-1")
        expiry = NOW + timedelta(hours=1)

        self.store.update_access("u1", "at-2", expiry)
        self.store.update_refresh("u1", "rt-2")

        cred = self.store.get_credential("u1")
        self.assertEqual(cred.access_token, "at-2")
        self.assertEqual(cred.expiry, expiry)
        self.assertEqual(cred.refresh_token, "rt-2")

    def test_update_access_with_rotated_refresh_token(self):
        add_user(self.Session, "u1", refresh_token="rt-1")

        self.store.update_access("u1", "at-2", NOW, refresh_token="rt-2")

        cred = self.store.get_credential("u1")
        self.assertEqual(cred.access_token, "at-2")
        self.assertEqual(cred.refresh_token, "rt-2")

    def test_delete(self):
        add_user(self.Session, "u1")
        add_user(self.Session, "u2")

        self.assertTrue(self.store.delete("u1"))
        self.assertFalse(self.store.delete("u1"))

        with self.assertRaises(UserNotFound):
            self.store.get_credential("u1")
        self.assertEqual([c.user_id for c in self.store.list_active()], ["u2"])

    def test_upsert_creates_active_user(self):
        cred = self.store.upsert("new", access_token="at", expiry=NOW, refresh_token="rt")
        self.assertEqual(cred.user_id, "new")
        self.assertTrue(cred.active)
        self.assertEqual(self.store.get_credential("new").refresh_token, "rt")

    def test_upsert_requires_refresh_token_for_new_user(self):
        with self.assertRaises(ValueError):
            self.store.upsert("new", access_token="at", expiry=NOW)

    def test_upsert_reactivates_and_keeps_refresh_token(self):
        add_user(self.Session, "u1", active=False, refresh_token="rt-1")

        cred = self.store.upsert("u1", access_token="at-2", expiry=NOW)
        self.assertTrue(cred.active)
        self.assertEqual(cred.access_token, "at-2")
        self.assertEqual(cred.refresh_token, "rt-1")

    def test_rows_without_access_token_are_already_expired(self):
        with self.Session() as db:
            db.add(User(spotify_id="legacy", active=True, refresh_token="rt"))
            db.commit()

        cred = self.store.get_credential("legacy")
        self.assertEqual(cred.access_token, "")
        self.assertEqual(cred.expiry, NEVER)
        self.assertLess(cred.expiry, NOW)


if __name__ == "__main__":
    unittest.main(verbosity=2)
