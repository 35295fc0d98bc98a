"""Unit tests for the aiosqlite transcript store."""
import asyncio
import os
import sqlite3
import sys
import tempfile
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

os.environ["ANTHROPIC_API_KEY"] = ""   # triggers mock mode

from trialgate import database
from trialgate.errors import StoreUnavailable
from trialgate.models.session import Sender


class TranscriptTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self._tmp.name, "transcript.db")

    def tearDown(self):
        self._tmp.cleanup()

    def run_with_db(self, body):
        """Open a fresh store, run body(), and always close the store afterwards."""
        async def _run():
            await database.get_db(self.db_path)
            try:
                return await body()
            finally:
                await database.close_db()
        return asyncio.run(_run())


class TestTranscriptStore(TranscriptTestCase):
    def test_append_assigns_id_and_timestamp(self):
        async def body():
            return await database.append_message(Sender.USER, "start", "sess-1")

        msg = self.run_with_db(body)
        self.assertEqual(msg.id, 1)
        self.assertEqual(msg.sender, "User")
        self.assertEqual(msg.message, "start")
        self.assertEqual(msg.session_id, "sess-1")
        self.assertTrue(msg.timestamp)

    def test_list_returns_chronological_order(self):
        async def body():
            await database.append_message(Sender.USER, "start")
            await database.append_message(Sender.BOT, "welcome aboard")
            await database.append_message(Sender.SYSTEM, "upstream down")
            return await database.list_messages()

        messages = self.run_with_db(body)
        self.assertEqual([m.sender for m in messages], ["User", "Bot", "System"])
        self.assertEqual([m.id for m in messages], [1, 2, 3])

    def test_timestamps_strictly_increase_under_concurrency(self):
        async def body():
            await asyncio.gather(*[
                database.append_message(Sender.USER, f"msg {i}", f"s{i % 3}")
                for i in range(50)
            ])
            return await database.list_messages()

        messages = self.run_with_db(body)
        self.assertEqual(len(messages), 50)
        stamps = [m.timestamp for m in messages]
        self.assertEqual(stamps, sorted(stamps))
        self.assertEqual(len(set(stamps)), 50)

    def test_filter_by_session(self):
        async def body():
            await database.append_message(Sender.USER, "a", "one")
            await database.append_message(Sender.USER, "b", "two")
            await database.append_message(Sender.BOT, "c", "one")
            return await database.list_messages("one")

        messages = self.run_with_db(body)
        self.assertEqual([m.message for m in messages], ["a", "c"])

    def test_durable_across_reopen(self):
        async def body():
            await database.append_message(Sender.USER, "remember me")

        self.run_with_db(body)
        conn = sqlite3.connect(self.db_path)
        try:
            rows = conn.execute("SELECT sender, message FROM messages").fetchall()
        finally:
            conn.close()
        self.assertEqual(rows, [("User", "remember me")])

    def test_table_creation_is_idempotent(self):
        async def first():
            await database.append_message(Sender.USER, "one")

        async def second():
            await database.append_message(Sender.USER, "two")
            return await database.list_messages()

        self.run_with_db(first)
        messages = self.run_with_db(second)
        self.assertEqual([m.message for m in messages], ["one", "two"])

    def test_schema_columns(self):
        self.run_with_db(lambda: asyncio.sleep(0))
        conn = sqlite3.connect(self.db_path)
        try:
            cols = [row[1] for row in conn.execute("PRAGMA table_info(messages)")]
        finally:
            conn.close()
        self.assertEqual(cols, ["id", "sender", "message", "timestamp", "session_id"])


class TestStoreUnavailable(unittest.TestCase):
    def tearDown(self):
        asyncio.run(database.close_db())

    def test_append_before_init(self):
        self.assertFalse(database.is_ready())
        with self.assertRaises(StoreUnavailable):
            asyncio.run(database.append_message(Sender.USER, "hi"))

    def test_list_before_init(self):
        with self.assertRaises(StoreUnavailable):
            asyncio.run(database.list_messages())

    def test_unopenable_path(self):
        with tempfile.TemporaryDirectory() as tmp:
            not_a_dir = os.path.join(tmp, "plain-file")
            open(not_a_dir, "w").close()

            async def _run():
                await database.get_db(os.path.join(not_a_dir, "t.db"))

            with self.assertRaises(StoreUnavailable):
                asyncio.run(_run())
        self.assertFalse(database.is_ready())

    def test_reopens_after_failed_open(self):
        with tempfile.TemporaryDirectory() as tmp:
            blocked = os.path.join(tmp, "data")
            open(blocked, "w").close()
            path = os.path.join(blocked, "t.db")

            async def _run():
                with self.assertRaises(StoreUnavailable):
                    await database.get_db(path)
                with self.assertRaises(StoreUnavailable):
                    await database.append_message(Sender.USER, "too early")

                os.remove(blocked)
                os.mkdir(blocked)
                await database.append_message(Sender.USER, "hello")
                self.assertTrue(database.is_ready())
                messages = await database.list_messages()
                await database.close_db()
                return messages

            messages = asyncio.run(_run())
        self.assertEqual([m.message for m in messages], ["hello"])


if __name__ == "__main__":
    unittest.main(verbosity=2)
