"""
Tests for the change journal and the watch bus
"""

import threading
from unittest.mock import Mock

import pytest

from layered_config import ChangeEvent, ChangeJournal, ChangeRecord, KeyStore, WatchBus


class TestChangeJournal:

    def test_capacity_evicts_oldest(self):
        journal = ChangeJournal(capacity=3)

        for i in range(4):
            journal.record(ChangeRecord(key=f"k{i}", previous_value=None, new_value=i))

        assert len(journal) == 3
        assert [r.key for r in journal.history()] == ["k1", "k2", "k3"]

    def test_store_writes_past_capacity(self):
        """capacity + 1 writes keep the newest capacity records"""
        store = KeyStore(journal=ChangeJournal(capacity=100))

        for i in range(101):
            store.set("counter", i)

        history = store.journal.history()
        assert len(history) == 100
        assert history[0].new_value == 1
        assert history[-1].new_value == 100

    def test_filter_by_key(self):
        journal = ChangeJournal()
        journal.record(ChangeRecord(key="a", previous_value=None, new_value=1))
        journal.record(ChangeRecord(key="b", previous_value=None, new_value=2))
        journal.record(ChangeRecord(key="a", previous_value=1, new_value=3))

        assert [r.new_value for r in journal.history("a")] == [1, 3]

    def test_history_is_a_copy(self):
        journal = ChangeJournal()
        journal.record(ChangeRecord(key="a", previous_value=None, new_value=1))

        journal.history().clear()

        assert len(journal) == 1

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            ChangeJournal(capacity=0)

    def test_record_to_dict(self):
        record = ChangeRecord(key="a", previous_value=None, new_value=1, source="overlay:local.json")

        data = record.to_dict()

        assert data["key"] == "a"
        assert data["source"] == "overlay:local.json"
        assert data["timestamp"].endswith("+00:00")


class TestWatchBus:

    def setup_method(self):
        self.bus = WatchBus()
        self.event = ChangeEvent(key="theme", previous="light", next="dark")

    def test_publish_to_key_watchers(self):
        first, second, other = Mock(), Mock(), Mock()
        self.bus.watch("theme", first)
        self.bus.watch("theme", second)
        self.bus.watch("locale", other)

        self.bus.publish(self.event)

        first.assert_called_once_with(self.event)
        second.assert_called_once_with(self.event)
        other.assert_not_called()

    def test_unwatch_removes_only_that_callback(self):
        first, second = Mock(), Mock()
        subscription = self.bus.watch("theme", first)
        self.bus.watch("theme", second)

        subscription.unwatch()
        self.bus.publish(self.event)

        first.assert_not_called()
        second.assert_called_once()

    def test_last_unwatch_releases_key(self):
        subscription = self.bus.watch("theme", Mock())

        subscription()

        assert not self.bus.has_watchers("theme")
        assert self.bus.watcher_count() == 0

    def test_unwatch_is_idempotent(self):
        callback = Mock()
        subscription = self.bus.watch("theme", callback)

        subscription()
        subscription()

        assert subscription.active is False

    def test_global_watchers(self):
        key_watcher, global_watcher = Mock(), Mock()
        self.bus.watch("theme", key_watcher)
        self.bus.watch_all(global_watcher)

        self.bus.publish(self.event)
        self.bus.publish(ChangeEvent(key="locale", previous=None, next="en"))

        key_watcher.assert_called_once()
        assert global_watcher.call_count == 2

    def test_failing_watcher_does_not_stop_others(self):
        failing = Mock(side_effect=RuntimeError("boom"))
        healthy = Mock()
        self.bus.watch("theme", failing)
        self.bus.watch_all(healthy)

        self.bus.publish(self.event)

        failing.assert_called_once()
        healthy.assert_called_once_with(self.event)

    def test_callback_may_unwatch_during_delivery(self):
        other = Mock()
        subscriptions = []

        def once(event):
            subscriptions[0].unwatch()

        subscriptions.append(self.bus.watch("theme", once))
        self.bus.watch("theme", other)

        self.bus.publish(self.event)
        self.bus.publish(self.event)

        assert other.call_count == 2
        assert self.bus.watcher_count("theme") == 1

    def test_store_bus_shares_store_lock(self):
        store = KeyStore()

        assert store.bus._lock is store.lock

    def test_subscriptions_change_while_publishing_from_another_thread(self):
        errors = []
        stop = threading.Event()
        self.bus.watch("theme", Mock())

        def publisher():
            try:
                while not stop.is_set():
                    self.bus.publish(self.event)
            except Exception as e:
                errors.append(e)

        thread = threading.Thread(target=publisher)
        thread.start()
        try:
            for _ in range(2000):
                self.bus.watch("theme", Mock()).unwatch()
        finally:
            stop.set()
            thread.join(timeout=5)

        assert errors == []
        assert self.bus.watcher_count("theme") == 1

    def test_watcher_count(self):
        self.bus.watch("theme", Mock())
        self.bus.watch("theme", Mock())
        self.bus.watch_all(Mock())

        assert self.bus.watcher_count("theme") == 2
        assert self.bus.watcher_count() == 3
