import os
import shutil
import tempfile
import threading
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from core.db import Db
from core.errors import ConstraintViolation
from core.models.usage import Usage
from core.usage_service import (
    check_cap,
    get_today_usage,
    increment_usage,
    serialize_usage,
    today_key,
    usage_snapshot,
)

DAY = datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc)
NEXT_DAY = datetime(2024, 1, 2, 0, 0, 1, tzinfo=timezone.utc)


class UsageLedgerTestCase(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp(prefix="usage-ledger-")
        self.db = Db(f"sqlite:///{os.path.join(self.temp_dir, 'ledger.db')}")
        self.db.create_tables()
        self.session = self.db.get_session()

    def tearDown(self):
        self.session.close()
        self.db.dispose()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_today_key_is_utc_date(self):
        late_utc = datetime(2024, 1, 1, 23, 0, tzinfo=timezone.utc)
        self.assertEqual(today_key(late_utc), "2024-01-01")
        self.assertEqual(today_key(datetime(2024, 1, 1, 23, 59)), "2024-01-01")

    def test_no_record_until_first_increment(self):
        self.assertIsNone(get_today_usage(self.session, "c1", now=DAY))
        self.assertTrue(check_cap(self.session, "c1", 20, now=DAY))
        # 读操作不会落库
        self.assertEqual(self.session.query(Usage).count(), 0)

    def test_daily_scenario(self):
        first = increment_usage(self.session, "c1", "turns", now=DAY)
        self.assertEqual((first.turns, first.stories, first.seconds_tts), (1, 0, 0.0))
        self.assertEqual(first.date, "2024-01-01")

        second = increment_usage(self.session, "c1", "stories", seconds_tts=12.5, now=DAY)
        self.assertEqual((second.turns, second.stories, second.seconds_tts), (1, 1, 12.5))

        third = increment_usage(self.session, "c1", "turns", amount=2, now=DAY)
        self.assertEqual((third.turns, third.stories), (3, 1))

        self.assertTrue(check_cap(self.session, "c1", 4, now=DAY))
        self.assertFalse(check_cap(self.session, "c1", 3, now=DAY))

        # 新的一天从 0 开始
        self.assertIsNone(get_today_usage(self.session, "c1", now=NEXT_DAY))
        self.assertTrue(check_cap(self.session, "c1", 3, now=NEXT_DAY))
        self.assertEqual(get_today_usage(self.session, "c1", now=DAY).turns, 3)

    def test_single_record_per_child_and_day(self):
        for _ in range(5):
            increment_usage(self.session, "c1", "turns", now=DAY)
        increment_usage(self.session, "c2", "turns", now=DAY)
        rows = self.session.query(Usage).filter(Usage.child_id == "c1").all()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].turns, 5)
        self.assertEqual(get_today_usage(self.session, "c2", now=DAY).turns, 1)

    def test_zero_amount_creates_record(self):
        usage = increment_usage(self.session, "c1", "stories", amount=0, seconds_tts=3, now=DAY)
        self.assertEqual((usage.turns, usage.stories, usage.seconds_tts), (0, 0, 3.0))

    def test_cap_boundary(self):
        for _ in range(20):
            increment_usage(self.session, "c1", "turns", now=DAY)
        self.assertFalse(check_cap(self.session, "c1", 20, now=DAY))
        self.assertTrue(check_cap(self.session, "c1", 21, now=DAY))

    def test_stories_do_not_count_against_cap(self):
        for _ in range(3):
            increment_usage(self.session, "c1", "stories", now=DAY)
        self.assertTrue(check_cap(self.session, "c1", 1, now=DAY))

    def test_invalid_arguments_rejected_before_store(self):
        with self.assertRaises(ConstraintViolation):
            increment_usage(self.session, "", "turns", now=DAY)
        with self.assertRaises(ConstraintViolation):
            increment_usage(self.session, "c1", "minutes", now=DAY)
        with self.assertRaises(ConstraintViolation):
            increment_usage(self.session, "c1", "turns", amount=-1, now=DAY)
        with self.assertRaises(ConstraintViolation):
            increment_usage(self.session, "c1", "turns", amount=1.5, now=DAY)
        with self.assertRaises(ConstraintViolation):
            increment_usage(self.session, "c1", "turns", seconds_tts=float("nan"), now=DAY)
        with self.assertRaises(ConstraintViolation):
            check_cap(self.session, "c1", 0, now=DAY)
        with self.assertRaises(ConstraintViolation):
            get_today_usage(self.session, "   ")
        self.assertEqual(self.session.query(Usage).count(), 0)

    def test_snapshot_and_serialize(self):
        increment_usage(self.session, "c1", "turns", amount=4, seconds_tts=1.5, now=DAY)
        snapshot = usage_snapshot(self.session, "c1", 3, now=DAY)
        self.assertEqual(snapshot["date"], "2024-01-01")
        self.assertEqual(snapshot["turns"], 4)
        self.assertEqual(snapshot["remaining"], 0)

        data = serialize_usage(get_today_usage(self.session, "c1", now=DAY))
        self.assertEqual(data["child_id"], "c1")
        self.assertEqual(data["seconds_tts"], 1.5)
        self.assertIsNone(serialize_usage(None))

        empty = usage_snapshot(self.session, "c9", 20, now=DAY)
        self.assertEqual((empty["turns"], empty["remaining"]), (0, 20))

    def test_concurrent_increments_are_not_lost(self):
        workers, per_worker = 4, 10
        errors = []

        def _run():
            session = self.db.get_session()
            try:
                for _ in range(per_worker):
                    increment_usage(session, "c1", "turns", seconds_tts=0.5, now=DAY)
            except Exception as e:  # 汇总到主线程断言
                errors.append(e)
            finally:
                session.close()

        threads = [threading.Thread(target=_run) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        usage = get_today_usage(self.session, "c1", now=DAY)
        self.assertEqual(usage.turns, workers * per_worker)
        self.assertAlmostEqual(usage.seconds_tts, workers * per_worker * 0.5)


class GenericDialectIncrementTestCase(unittest.TestCase):
    """没有原生 upsert 的数据库：先原地自增，没有记录再插入。"""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp(prefix="usage-generic-")
        self.db = Db(f"sqlite:///{os.path.join(self.temp_dir, 'ledger.db')}")
        self.db.create_tables()
        self.session = self.db.get_session()
        self.dialect = patch("core.usage_service._dialect_name", return_value="generic")
        self.dialect.start()

    def tearDown(self):
        self.dialect.stop()
        self.session.close()
        self.db.dispose()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_insert_then_increment(self):
        first = increment_usage(self.session, "c1", "turns", seconds_tts=2, now=DAY)
        self.assertEqual((first.turns, first.stories, first.seconds_tts), (1, 0, 2.0))
        second = increment_usage(self.session, "c1", "stories", seconds_tts=1, now=DAY)
        self.assertEqual((second.turns, second.stories, second.seconds_tts), (1, 1, 3.0))
        self.assertEqual(self.session.query(Usage).count(), 1)

    def test_lost_insert_falls_back_to_increment(self):
        original = self.session.execute
        calls = []

        def racing_execute(statement, *args, **kwargs):
            calls.append(statement)
            if len(calls) == 1:
                # 第一次自增落空的同时，另一台设备建好了当天记录
                other = self.db.get_session()
                try:
                    increment_usage(other, "c1", "turns", now=DAY)
                finally:
                    other.close()
                return MagicMock(rowcount=0)
            return original(statement, *args, **kwargs)

        with patch.object(self.session, "execute", side_effect=racing_execute):
            usage = increment_usage(self.session, "c1", "turns", now=DAY)
        self.assertEqual(usage.turns, 2)
        self.assertEqual(self.session.query(Usage).count(), 1)


if __name__ == "__main__":
    unittest.main()
