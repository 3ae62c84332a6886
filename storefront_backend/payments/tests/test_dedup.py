# payments/tests/test_dedup.py

from django.core.cache import cache
from django.test import SimpleTestCase

from payments.services.dedup import CacheSeenStore, InMemorySeenStore


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class InMemorySeenStoreTests(SimpleTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.store = InMemorySeenStore(ttl_seconds=3600, clock=self.clock)

    def test_mark_then_seen(self):
        self.assertFalse(self.store.seen("req-1"))
        self.store.mark_seen("req-1")
        self.assertTrue(self.store.seen("req-1"))
        self.assertFalse(self.store.seen("req-2"))

    def test_entries_expire_after_ttl(self):
        self.store.mark_seen("req-1")

        self.clock.now += 3599
        self.assertTrue(self.store.seen("req-1"))

        self.clock.now += 1
        self.assertFalse(self.store.seen("req-1"))
        self.assertEqual(len(self.store), 0)

    def test_repeat_mark_keeps_first_seen(self):
        self.store.mark_seen("req-1")
        self.clock.now += 3000
        self.store.mark_seen("req-1")

        self.clock.now += 600
        self.assertFalse(self.store.seen("req-1"))

    def test_empty_key_never_stored(self):
        self.store.mark_seen("")
        self.assertFalse(self.store.seen(""))
        self.assertEqual(len(self.store), 0)


class CacheSeenStoreTests(SimpleTestCase):
    def setUp(self):
        cache.clear()
        self.store = CacheSeenStore(ttl_seconds=60)

    def tearDown(self):
        cache.clear()

    def test_mark_then_seen(self):
        self.assertFalse(self.store.seen("req-1"))
        self.store.mark_seen("req-1")
        self.assertTrue(self.store.seen("req-1"))

    def test_instances_share_state(self):
        self.store.mark_seen("req-1")
        self.assertTrue(CacheSeenStore(ttl_seconds=60).seen("req-1"))

    def test_empty_key_ignored(self):
        self.store.mark_seen("")
        self.assertFalse(self.store.seen(""))
