import unittest
from datetime import UTC, datetime

from chat_sync.models import AuthorKind, Message, Session, default_session_title, parse_timestamp
from tests.base import message_payload, session_payload


class ModelParsingTests(unittest.TestCase):
    def test_session_from_api(self) -> None:
        session = Session.from_api(session_payload("A", "Planning", updated="2026-01-03T08:00:00Z"))

        self.assertEqual("A", session.id)
        self.assertEqual(7, session.user_id)
        self.assertEqual("Planning", session.title)
        self.assertEqual(datetime(2026, 1, 1, 10, 0, tzinfo=UTC), session.created_at)
        self.assertEqual(datetime(2026, 1, 3, 8, 0, tzinfo=UTC), session.last_updated_at)

    def test_blank_title_gets_a_dated_default(self) -> None:
        session = Session.from_api(session_payload("A", "  "))

        self.assertEqual("Session 2026-01-01 10:00", session.title)
        self.assertEqual(session.title, default_session_title(session.created_at))

    def test_last_updated_never_precedes_created(self) -> None:
        session = Session.from_api(session_payload("A", updated="2025-12-31T00:00:00Z"))

        self.assertEqual(session.created_at, session.last_updated_at)

    def test_with_touch_only_moves_forward(self) -> None:
        session = Session.from_api(session_payload("A"))
        later = datetime(2026, 2, 1, tzinfo=UTC)

        self.assertEqual(later, session.with_touch(later).last_updated_at)
        self.assertIs(session, session.with_touch(datetime(2025, 1, 1, tzinfo=UTC)))

    def test_message_from_api(self) -> None:
        user = Message.from_api(message_payload(1, "A", "hi"))
        bot = Message.from_api(message_payload(2, "A", "hello", is_user=False))

        self.assertEqual(AuthorKind.USER, user.author)
        self.assertEqual(7, user.user_id)
        self.assertEqual("Ann", user.sender_name)
        self.assertFalse(bot.is_user)
        self.assertIsNone(bot.user_id)

    def test_naive_timestamps_are_utc(self) -> None:
        self.assertEqual(UTC, parse_timestamp("2026-01-01T10:00:00").tzinfo)
        with self.assertRaises(ValueError):
            parse_timestamp("")


if __name__ == "__main__":
    unittest.main()
