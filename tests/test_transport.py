import asyncio
import json
import unittest

import httpx

from chat_sync.api import ChatApi
from chat_sync.errors import (
    NetworkUnreachableError,
    NotFoundError,
    ServerError,
    UnauthorizedError,
    UnclassifiedError,
)
from chat_sync.transport import HttpTransport, unwrap_envelope
from tests.base import message_payload, session_payload


def _transport(handler, token: str | None = "tok") -> HttpTransport:
    client = httpx.AsyncClient(base_url="http://chat.test/api", transport=httpx.MockTransport(handler))
    return HttpTransport("http://chat.test/api", token_provider=lambda: token, client=client)


class HttpTransportTests(unittest.TestCase):
    def test_sends_bearer_token_and_unwraps_envelope(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"success": True, "statusCode": 200, "message": "", "data": [1, 2]})

        async def run():
            transport = _transport(handler)
            try:
                return await transport.send("get", "/ChatSessions/user/7")
            finally:
                await transport.close()

        result = asyncio.run(run())

        self.assertEqual([1, 2], result)
        self.assertEqual("GET", seen[0].method)
        self.assertEqual("http://chat.test/api/ChatSessions/user/7", str(seen[0].url))
        self.assertEqual("Bearer tok", seen[0].headers["Authorization"])

    def test_omits_authorization_without_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        async def run():
            transport = _transport(handler, token=None)
            try:
                return await transport.send("DELETE", "/ChatMessages/3")
            finally:
                await transport.close()

        self.assertIsNone(asyncio.run(run()))
        self.assertNotIn("Authorization", seen[0].headers)

    def test_status_codes_map_to_error_kinds(self) -> None:
        cases = [
            (401, UnauthorizedError),
            (404, NotFoundError),
            (500, ServerError),
            (503, ServerError),
            (400, UnclassifiedError),
            (409, UnclassifiedError),
        ]
        for status, expected in cases:
            with self.subTest(status=status):

                def handler(request: httpx.Request, status=status) -> httpx.Response:
                    return httpx.Response(status, json={"message": f"status {status}"})

                async def run():
                    transport = _transport(handler)
                    try:
                        await transport.send("GET", "/ChatSessions/A")
                    finally:
                        await transport.close()

                with self.assertRaises(expected) as ctx:
                    asyncio.run(run())
                self.assertEqual(status, ctx.exception.status_code)
                self.assertEqual(f"status {status}", ctx.exception.message)
                self.assertEqual("/ChatSessions/A", ctx.exception.path)

    def test_connection_failure_is_network_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async def run():
            transport = _transport(handler)
            try:
                await transport.send("GET", "/ChatSessions/user/7")
            finally:
                await transport.close()

        with self.assertRaises(NetworkUnreachableError) as ctx:
            asyncio.run(run())
        self.assertIsNone(ctx.exception.status_code)

    def test_unwrap_envelope_leaves_plain_payloads(self) -> None:
        self.assertEqual({"id": 1}, unwrap_envelope({"id": 1}))
        self.assertEqual({"data": 1}, unwrap_envelope({"data": 1}))
        self.assertEqual(5, unwrap_envelope({"success": True, "data": 5}))


class ChatApiTests(unittest.TestCase):
    def _api(self, routes: dict[tuple[str, str], httpx.Response], seen: list[httpx.Request]) -> tuple[ChatApi, HttpTransport]:
        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return routes[(request.method, request.url.path)]

        transport = _transport(handler)
        return ChatApi(transport), transport

    def test_reads_decode_sessions_and_messages(self) -> None:
        seen: list[httpx.Request] = []
        routes = {
            ("GET", "/api/ChatSessions/user/7"): httpx.Response(200, json=[session_payload("A")]),
            ("GET", "/api/ChatMessages/session/A/recent"): httpx.Response(200, json=[message_payload(1, "A")]),
        }

        async def run():
            api, transport = self._api(routes, seen)
            try:
                return await api.list_sessions(7), await api.recent_messages("A", 3)
            finally:
                await transport.close()

        sessions, messages = asyncio.run(run())

        self.assertEqual("A", sessions[0].id)
        self.assertEqual(1, messages[0].id)
        self.assertTrue(messages[0].is_user)
        self.assertEqual("3", seen[1].url.params["count"])

    def test_send_message_posts_camel_case_body(self) -> None:
        seen: list[httpx.Request] = []
        routes = {("POST", "/api/ChatMessages"): httpx.Response(201, json=message_payload(4, "A", "yo"))}

        async def run():
            api, transport = self._api(routes, seen)
            try:
                return await api.send_message("A", user_id=7, content="yo", sender_name="Ann")
            finally:
                await transport.close()

        message = asyncio.run(run())

        self.assertEqual(4, message.id)
        self.assertEqual(
            {"sessionId": "A", "userId": 7, "content": "yo", "senderName": "Ann", "isUser": True},
            json.loads(seen[0].content),
        )

    def test_malformed_payload_is_unclassified(self) -> None:
        seen: list[httpx.Request] = []
        routes = {("GET", "/api/ChatSessions/user/7"): httpx.Response(200, json={"unexpected": True})}

        async def run():
            api, transport = self._api(routes, seen)
            try:
                await api.list_sessions(7)
            finally:
                await transport.close()

        with self.assertRaises(UnclassifiedError):
            asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
