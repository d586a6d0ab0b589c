"""Tests for marginalia.core.collector: sanitization, wire format, EventCollector."""

import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from marginalia.core.behavior import BehaviorStore
from marginalia.core.collector import (
    CIRCULAR_REFERENCE,
    REDACTED,
    SERIALIZATION_ERROR,
    CollectorConfig,
    EventCollector,
    EventLevel,
    EventRecord,
    format_event_data,
    is_sensitive_field,
    parse_wire,
    records_to_csv,
    sanitize,
)


class FailingSink(BehaviorStore):
    def collect_event(self, record: str) -> None:
        raise OSError("sink down")


@pytest.fixture
def store(clock):
    store = BehaviorStore(clock=clock)
    store.start_collecting("post-1")
    return store


@pytest.fixture
def collector(store, clock):
    return EventCollector(store, clock=clock)


# ------------------------------------------------------------------ #
# Sanitization
# ------------------------------------------------------------------ #


class TestSanitize:
    @pytest.mark.parametrize(
        "name",
        [
            "password",
            "userPassword",
            "API_KEY",
            "apiToken",
            "accessToken",
            "client_secret",
            "Authorization",
            "credentials",
        ],
    )
    def test_sensitive_field_names(self, name):
        assert is_sensitive_field(name) is True

    def test_ordinary_field_names(self):
        assert is_sensitive_field("section") is False
        assert is_sensitive_field("scroll_depth") is False

    def test_redacts_nested_keys(self):
        data = {"user": {"name": "ada", "password": "hunter2"}, "items": [{"token": "t"}]}
        assert sanitize(data) == {
            "user": {"name": "ada", "password": REDACTED},
            "items": [{"token": REDACTED}],
        }

    def test_self_reference_terminates(self):
        data = {"name": "loop"}
        data["self"] = data
        assert sanitize(data) == {"name": "loop", "self": CIRCULAR_REFERENCE}

    def test_cycle_through_list(self):
        items = []
        holder = {"items": items}
        items.append(holder)
        assert sanitize(holder) == {"items": [CIRCULAR_REFERENCE]}

    def test_shared_reference_is_also_marked(self):
        shared = {"x": 1}
        assert sanitize({"a": shared, "b": shared}) == {"a": {"x": 1}, "b": CIRCULAR_REFERENCE}

    def test_does_not_mutate_input(self):
        data = {"password": "hunter2"}
        sanitize(data)
        assert data == {"password": "hunter2"}

    def test_scalars_pass_through(self):
        assert sanitize(3) == 3
        assert sanitize(None) is None


class TestFormatEventData:
    @pytest.mark.parametrize("blank", [None, False, 0, 0.0, float("nan"), ""])
    def test_blank_values_are_empty(self, blank):
        assert format_event_data(blank) == ""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [({}, "{}"), ([], "[]"), (True, "true"), (7, "7"), ("x", '"x"')],
    )
    def test_non_blank_values_serialized(self, value, expected):
        assert format_event_data(value) == expected

    def test_json_output(self):
        assert json.loads(format_event_data({"section": 2, "secretKey": "x"})) == {
            "section": 2,
            "secretKey": REDACTED,
        }

    def test_unserializable_value_yields_marker(self):
        assert format_event_data({"value": object()}) == SERIALIZATION_ERROR


# ------------------------------------------------------------------ #
# Wire format
# ------------------------------------------------------------------ #


class TestWireFormat:
    def test_field_order(self):
        record = EventRecord(1000, EventLevel.INFO, "reader", "navigation", "scrolled", '{"a":1}')
        assert record.to_wire() == '1000|info|reader|navigation|scrolled|{"a":1}'

    def test_delimiter_in_message_survives(self):
        record = EventRecord(1000, EventLevel.WARN, "reader", "ui", "a|b\\c", "")
        assert parse_wire(record.to_wire()) == record

    def test_wrong_field_count(self):
        with pytest.raises(ValueError):
            parse_wire("1000|info|reader")


# ------------------------------------------------------------------ #
# EventCollector
# ------------------------------------------------------------------ #


class TestCollect:
    def test_forwards_formatted_record(self, collector, store, clock):
        record = collector.collect("reader", "scrolled", {"password": "hunter2", "section": 3}, category="navigation")

        assert record is not None
        assert record.timestamp == clock()
        assert store.state.events == (record.to_wire(),)
        assert REDACTED in store.state.events[0]
        assert "hunter" not in store.state.events[0]

    def test_default_level_and_category(self, collector):
        record = collector.collect("reader", "opened")
        assert record.level is EventLevel.INFO
        assert record.category == "default"
        assert record.data == ""

    def test_disabled_collector_drops(self, store, clock):
        collector = EventCollector(store, CollectorConfig(enabled=False), clock=clock)
        assert collector.collect("reader", "opened") is None
        assert store.state.events == ()

    def test_level_threshold(self, store, clock):
        collector = EventCollector(store, CollectorConfig(log_level_threshold="warn"), clock=clock)
        assert collector.collect("reader", "debug", level="debug") is None
        assert collector.collect("reader", "info", level=EventLevel.INFO) is None
        assert collector.collect("reader", "warn", level="warn") is not None
        assert collector.collect("reader", "error", level="error") is not None
        assert len(store.state.events) == 2

    def test_unknown_level_treated_as_debug(self, collector):
        record = collector.collect("reader", "odd", level="verbose")
        assert record.level is EventLevel.DEBUG

    def test_filter_can_veto(self, collector, store):
        collector.set_event_filter(lambda source, message, data: source != "noisy")
        assert collector.collect("noisy", "spam") is None
        assert collector.collect("reader", "kept") is not None
        assert len(store.state.events) == 1

    def test_failing_filter_lets_event_through(self, collector, store):
        def broken(source, message, data):
            raise RuntimeError("bad filter")

        collector.set_event_filter(broken)
        assert collector.collect("reader", "kept") is not None
        assert len(store.state.events) == 1

    def test_sink_failure_is_contained(self, clock):
        sink = FailingSink(clock=clock)
        sink.start_collecting("post-1")
        collector = EventCollector(sink, clock=clock)
        assert collector.collect("reader", "opened") is not None

    def test_collect_batch_counts_accepted(self, store, clock):
        collector = EventCollector(store, CollectorConfig(log_level_threshold="info"), clock=clock)
        accepted = collector.collect_batch(
            [
                {"source": "reader", "message": "a"},
                {"source": "reader", "message": "b", "level": "debug"},
                {"source": "reader", "message": "c", "data": {"x": 1}, "category": "ui"},
            ]
        )
        assert accepted == 2


class TestBuffering:
    def test_buffered_records_wait_for_flush(self, collector, store):
        collector.collect("reader", "a", buffered=True)
        collector.collect("reader", "b", buffered=True)

        assert collector.buffered_count == 2
        assert store.state.events == ()
        assert collector.flush() == 2
        assert len(store.state.events) == 2
        assert collector.buffered_count == 0

    def test_full_buffer_flushes(self, store, clock):
        collector = EventCollector(store, CollectorConfig(buffer_size=2), clock=clock)
        collector.collect("reader", "a", buffered=True)
        collector.collect("reader", "b", buffered=True)
        assert collector.buffered_count == 0
        assert len(store.state.events) == 2

    def test_stop_collecting_flushes_first(self, collector, store):
        collector.collect("reader", "a", buffered=True)
        collector.stop_collecting()
        assert collector.buffered_count == 0
        assert collector.get_collection_status().is_collecting is False


class TestConfigure:
    def test_merges_options(self, collector):
        config = collector.configure(buffer_size=10)
        assert config.buffer_size == 10
        assert config.enabled is True

    def test_invalid_option_rejected(self, collector):
        with pytest.raises(PydanticValidationError):
            collector.configure(buffer_size=0)

    def test_config_is_frozen(self):
        with pytest.raises(PydanticValidationError):
            CollectorConfig().enabled = False


class TestExport:
    def test_recent_records_round_trip(self, collector):
        collector.collect("reader", "scrolled", {"section": 1})
        records = collector.recent_records()
        assert [r.message for r in records] == ["scrolled"]

    def test_export_json(self, collector):
        collector.collect("reader", "scrolled")
        data = json.loads(collector.export_logs("json"))
        assert data["subject_id"] == "post-1"
        assert len(data["recent_events"]) == 1

    def test_export_csv(self, collector):
        collector.collect("reader", "scrolled, quickly", {"section": 1})
        lines = collector.export_logs("csv").splitlines()
        assert lines[0] == "Timestamp,Level,Source,Category,Message,Data"
        assert '"scrolled, quickly"' in lines[1]

    def test_export_unknown_format(self, collector):
        with pytest.raises(ValueError):
            collector.export_logs("xml")

    def test_records_to_csv_header_only(self):
        assert records_to_csv([]) == "Timestamp,Level,Source,Category,Message,Data\n"
