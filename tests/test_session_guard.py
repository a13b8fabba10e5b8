import asyncio
import unittest

from chat_sync.cache import EntryStatus, recent_messages_key, sessions_by_user_key
from chat_sync.errors import NetworkUnreachableError, ServerError
from tests.base import USER_ID, FakeTransport, make_client, message_payload, session_payload

SESSIONS_PATH = f"/ChatSessions/user/{USER_ID}"
RECENT_A = "/ChatMessages/session/A/recent"


class SessionGuardTests(unittest.TestCase):
    def setUp(self) -> None:
        self._transport = FakeTransport()

    def test_messages_stay_disabled_until_session_list_loads(self) -> None:
        client = make_client(self._transport)
        self._transport.script("GET", SESSIONS_PATH, [session_payload("A")])
        self._transport.script("GET", RECENT_A, [message_payload(1, "A")])

        async def run() -> None:
            before = client.recent_messages("A")
            self.assertFalse(before.enabled)
            self.assertEqual(0, self._transport.count("GET", RECENT_A))

            await client.load_sessions()
            after = await client.load_recent_messages("A")
            self.assertTrue(after.enabled)
            self.assertEqual(1, len(after.payload))

        asyncio.run(run())
        self.assertEqual(1, self._transport.count("GET", RECENT_A))
        self.assertIn(recent_messages_key("A", 5, True), client.store)

    def test_unknown_session_is_never_fetched(self) -> None:
        client = make_client(self._transport)
        self._transport.script("GET", SESSIONS_PATH, [session_payload("A")])

        async def run() -> None:
            await client.load_sessions()
            result = client.recent_messages("ghost")
            self.assertFalse(result.enabled)
            self.assertFalse(client.guard.allows(USER_ID, "ghost"))
            self.assertTrue(client.guard.allows(USER_ID, "A"))

        asyncio.run(run())
        self.assertEqual(1, len(self._transport.calls))

    def test_server_error_on_messages_reads_as_empty_and_rechecks_sessions(self) -> None:
        client = make_client(self._transport)
        self._transport.script("GET", SESSIONS_PATH, [session_payload("A")])
        self._transport.script("GET", RECENT_A, ServerError("session gone", status_code=500, path=RECENT_A))

        async def run() -> None:
            await client.load_sessions()
            result = await client.load_recent_messages("A")
            self.assertEqual((), result.payload)
            self.assertEqual(EntryStatus.FRESH, result.status)

        asyncio.run(run())
        self.assertEqual(1, self._transport.count("GET", RECENT_A))
        self.assertEqual(EntryStatus.STALE, client.store.get(sessions_by_user_key(USER_ID)).status)

    def test_network_failure_on_messages_is_absorbed_too(self) -> None:
        client = make_client(self._transport)
        self._transport.script("GET", SESSIONS_PATH, [session_payload("A")])
        self._transport.script("GET", RECENT_A, NetworkUnreachableError("down"))

        async def run() -> None:
            await client.load_sessions()
            result = await client.load_recent_messages("A")
            self.assertFalse(result.is_error)

        asyncio.run(run())
        self.assertEqual(1, self._transport.count("GET", RECENT_A))


if __name__ == "__main__":
    unittest.main()
