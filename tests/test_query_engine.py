import asyncio
import unittest

from chat_sync.cache import CacheStore, EntryStatus, sessions_by_user_key
from chat_sync.errors import ServerError, UnauthorizedError
from chat_sync.query import QueryEngine, QueryOptions
from tests.base import FakeClock, RecordingSleep

KEY = sessions_by_user_key(7)


class QueryEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self._clock = FakeClock()
        self._store = CacheStore(clock=self._clock)
        self._sleep = RecordingSleep()
        self._unauthorized: list[UnauthorizedError] = []
        self._engine = QueryEngine(self._store, on_unauthorized=self._unauthorized.append, sleep=self._sleep)

    def test_concurrent_queries_share_one_fetch(self) -> None:
        calls = 0

        async def fetcher():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0)
            return ("a",)

        async def run() -> None:
            results = [self._engine.query(KEY, fetcher) for _ in range(3)]
            self.assertTrue(all(r.is_loading for r in results))
            self.assertEqual(1, len({id(r.task) for r in results}))
            await results[0].task

        asyncio.run(run())

        self.assertEqual(1, calls)
        self.assertEqual(EntryStatus.FRESH, self._store.get(KEY).status)
        self.assertEqual(("a",), self._store.get(KEY).payload)

    def test_fresh_entry_is_served_from_cache_until_it_ages(self) -> None:
        calls = 0

        async def fetcher():
            nonlocal calls
            calls += 1
            return (calls,)

        options = QueryOptions(stale_after_ms=60_000)

        async def run() -> None:
            await self._engine.fetch(KEY, fetcher, options)
            self._clock.advance(30)
            cached = self._engine.query(KEY, fetcher, options)
            self.assertIsNone(cached.task)
            self.assertEqual((1,), cached.payload)

            self._clock.advance(31)
            refreshed = await self._engine.fetch(KEY, fetcher, options)
            self.assertEqual((2,), refreshed.payload)

        asyncio.run(run())
        self.assertEqual(2, calls)

    def test_failed_refetch_keeps_previous_payload(self) -> None:
        calls = 0

        async def fetcher():
            nonlocal calls
            calls += 1
            raise ServerError("boom", status_code=500)

        self._store.set(KEY, ("old",))
        self._store.invalidate(KEY)

        result = asyncio.run(self._engine.fetch(KEY, fetcher))

        self.assertTrue(result.is_error)
        self.assertEqual(("old",), result.payload)
        self.assertIsInstance(result.error, ServerError)
        self.assertEqual(3, calls)
        self.assertEqual([2.0, 4.0], self._sleep.delays)

    def test_errored_entry_is_not_refetched_until_forced(self) -> None:
        outcomes = [ServerError("boom", status_code=500)] * 3 + [("ok",)]

        async def fetcher():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        async def run() -> None:
            await self._engine.fetch(KEY, fetcher)
            again = self._engine.query(KEY, fetcher)
            self.assertIsNone(again.task)
            self.assertTrue(again.is_error)

            retried = await self._engine.refetch(KEY, fetcher)
            self.assertEqual(("ok",), retried.payload)
            self.assertEqual(EntryStatus.FRESH, retried.status)

        asyncio.run(run())

    def test_disabled_query_returns_placeholder_without_fetching(self) -> None:
        async def fetcher():
            raise AssertionError("must not fetch")

        async def run() -> None:
            result = self._engine.query(KEY, fetcher, QueryOptions(enabled=False, placeholder=("p",)))
            self.assertFalse(result.enabled)
            self.assertEqual(("p",), result.payload)
            self.assertIsNone(result.task)

        asyncio.run(run())
        self.assertNotIn(KEY, self._store)

    def test_unauthorized_fetch_notifies_once_without_retry(self) -> None:
        calls = 0

        async def fetcher():
            nonlocal calls
            calls += 1
            raise UnauthorizedError("expired", status_code=401)

        result = asyncio.run(self._engine.fetch(KEY, fetcher))

        self.assertTrue(result.is_error)
        self.assertEqual(1, calls)
        self.assertEqual(1, len(self._unauthorized))

    def test_local_write_during_fetch_triggers_a_follow_up_fetch_without_overlap(self) -> None:
        active = 0
        peak = 0
        calls = 0

        async def run() -> None:
            release = asyncio.Event()

            async def fetcher():
                nonlocal active, peak, calls
                calls += 1
                active += 1
                peak = max(peak, active)
                await release.wait()
                active -= 1
                return (f"v{calls}",)

            self._store.set(KEY, ("v0",))
            self._store.invalidate(KEY)

            first = self._engine.query(KEY, fetcher)
            await asyncio.sleep(0)
            self._store.update(KEY, lambda items: items + ("local",))
            second = self._engine.query(KEY, fetcher)
            self.assertIsNot(first.task, second.task)

            release.set()
            await second.task

        asyncio.run(run())

        self.assertEqual(1, peak)
        self.assertEqual(2, calls)
        self.assertEqual(("v2",), self._store.get(KEY).payload)
        self.assertEqual(EntryStatus.FRESH, self._store.get(KEY).status)


if __name__ == "__main__":
    unittest.main()
