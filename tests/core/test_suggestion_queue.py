"""Tests for marginalia.core.suggestions: Suggestion, SuggestionQueue, counters."""

import pytest

from marginalia.core.suggestions import (
    DUPLICATE_CHECK_WINDOW_MS,
    Priority,
    Suggestion,
    SuggestionKind,
    SuggestionQueue,
    SuggestionStats,
)


def make(
    sid,
    *,
    action="ADD_TO_BOOKMARK",
    controller="post",
    priority=Priority.MEDIUM,
    timestamp=0,
    expires_at=None,
):
    return Suggestion(
        id=sid,
        action_type=action,
        controller_name=controller,
        priority=priority,
        timestamp=timestamp,
        expires_at=expires_at,
    )


@pytest.fixture
def queue(clock):
    return SuggestionQueue(clock=clock)


class TestSuggestion:
    def test_string_priority_coerced(self):
        s = Suggestion(id="s", action_type="A", controller_name="c", priority="high", timestamp=1)
        assert s.priority is Priority.HIGH
        assert s.priority.weight == 3
        assert s.kind is SuggestionKind.ACTION

    def test_dict_round_trip(self):
        s = make("s1", priority=Priority.LOW, timestamp=5, expires_at=10)
        assert Suggestion.from_dict(s.to_dict()).to_dict() == s.to_dict()

    def test_expiry_boundary(self):
        s = make("s1", expires_at=100)
        assert s.is_expired(99) is False
        assert s.is_expired(100) is True
        assert make("s2").is_expired(10**15) is False


class TestOrdering:
    def test_higher_priority_first_regardless_of_insertion(self, queue, clock):
        now = clock()
        queue.enqueue(make("low", action="A", priority=Priority.LOW, timestamp=now))
        queue.enqueue(make("med", action="B", priority=Priority.MEDIUM, timestamp=now))
        queue.enqueue(make("high", action="C", priority=Priority.HIGH, timestamp=now))

        assert [queue.dequeue().id for _ in range(3)] == ["high", "med", "low"]

    def test_equal_priority_newer_first(self, queue, clock):
        now = clock()
        queue.enqueue(make("older", action="A", timestamp=now - 10))
        queue.enqueue(make("newer", action="B", timestamp=now))

        assert queue.dequeue().id == "newer"
        assert queue.dequeue().id == "older"

    def test_dequeue_empty_returns_none(self, queue):
        assert queue.dequeue() is None
        assert queue.peek() is None


class TestDeduplication:
    def test_example_scenario(self, queue, clock):
        t = clock()
        assert queue.enqueue(make("a1", action="ANALYZE_BEHAVIOR", controller="AIAgent", timestamp=t)) is True

        clock.advance(1_000)
        duplicate = make("a2", action="ANALYZE_BEHAVIOR", controller="AIAgent", timestamp=t + 1_000)
        assert queue.enqueue(duplicate) is False
        assert len(queue) == 1
        assert queue.stats.total_generated == 1

        clock.advance(1_000)
        high = make("s1", action="SUMMARIZE", controller="AIAgent", priority=Priority.HIGH, timestamp=t + 2_000)
        assert queue.enqueue(high) is True
        assert queue.dequeue().id == "s1"
        assert queue.dequeue().id == "a1"

    def test_same_key_after_window_is_accepted(self, queue, clock):
        t = clock()
        queue.enqueue(make("first", timestamp=t))
        clock.advance(DUPLICATE_CHECK_WINDOW_MS)

        assert queue.enqueue(make("second", timestamp=clock())) is True
        assert len(queue) == 2
        assert queue.stats.total_generated == 2

    def test_different_controller_is_not_duplicate(self, queue, clock):
        queue.enqueue(make("a", controller="post", timestamp=clock()))
        assert queue.enqueue(make("b", controller="interaction", timestamp=clock())) is True

    def test_remove_duplicates_keeps_first_in_order(self, clock):
        queue = SuggestionQueue(clock=clock)
        t = clock()
        queue.enqueue(make("keep", priority=Priority.HIGH, timestamp=t - 2 * DUPLICATE_CHECK_WINDOW_MS))
        queue.enqueue(make("drop", priority=Priority.LOW, timestamp=t))

        assert queue.remove_duplicates() == 1
        assert [s.id for s in queue.state.queue] == ["keep"]


class TestExpiry:
    def test_remove_expired_counts_exactly(self, queue, clock):
        now = clock()
        queue.enqueue(make("past", action="A", timestamp=now, expires_at=now - 1))
        queue.enqueue(make("edge", action="B", timestamp=now, expires_at=now))
        queue.enqueue(make("future", action="C", timestamp=now, expires_at=now + 1))
        queue.enqueue(make("never", action="D", timestamp=now))

        assert queue.remove_expired() == 2
        assert {s.id for s in queue.state.queue} == {"future", "never"}
        assert queue.remove_expired() == 0


class TestPresentationAndCounters:
    def test_clear_keeps_counters(self, queue, clock):
        s = make("s", timestamp=clock())
        queue.enqueue(s)
        queue.set_current_suggestion(s)
        queue.set_is_showing_suggestion(True)
        queue.clear()

        assert len(queue) == 0
        assert queue.current_suggestion is None
        assert queue.is_showing_suggestion is False
        assert queue.stats.total_generated == 1

    def test_increments(self, queue):
        queue.increment_accepted()
        queue.increment_accepted()
        queue.increment_rejected()
        queue.increment_dismissed()
        assert queue.stats == SuggestionStats(0, 2, 1, 1)

    def test_state_is_replaced_not_mutated(self, queue, clock):
        before = queue.state
        queue.enqueue(make("s", timestamp=clock()))
        assert before.queue == ()
        assert queue.state is not before

    def test_restored_from_stats(self, clock):
        queue = SuggestionQueue.from_stats(SuggestionStats(4, 1, 2, 1), clock=clock)
        assert queue.stats.total_generated == 4
        assert len(queue) == 0
        assert queue.current_suggestion is None

    def test_status_and_debug_info(self, queue, clock):
        queue.enqueue(make("s", timestamp=clock()))
        queue.increment_accepted()

        status = queue.get_queue_status()
        assert status.queue_length == 1
        assert status.next_suggestion.id == "s"
        assert status.to_dict()["next_suggestion"]["id"] == "s"

        debug = queue.get_debug_info()
        assert debug["queue"][0]["id"] == "s"
        assert debug["stats"]["acceptance_rate"] == "100.0%"


class TestStats:
    def test_acceptance_rate_without_generations(self):
        stats = SuggestionStats()
        assert stats.acceptance_rate == 0.0
        assert stats.format_acceptance_rate() == "0%"

    def test_acceptance_rate(self):
        assert SuggestionStats(total_generated=3, total_accepted=1).format_acceptance_rate() == "33.3%"
