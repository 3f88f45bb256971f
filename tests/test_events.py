"""Tests for event recording.

Uses real Recorder instances throughout. A counting clock stands in for
perf_counter_ns where exact timestamps or overhead matter.
"""

import itertools

import pytest

from dsprofile import Event, EventKind, Recorder, correlate


def counting_clock(step: int = 10):
    counter = itertools.count(0, step)
    return lambda: next(counter)


def profiling_recorder(**kwargs) -> Recorder:
    recorder = Recorder(**kwargs)
    recorder.profiling = True
    return recorder


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------

class TestRecording:
    def test_start_and_finish_record_two_events(self):
        recorder = profiling_recorder()
        i = recorder.start(lambda: [("one", 1), ("two", 2)])
        recorder.finish(i)

        events = recorder.events
        assert len(events) == 2
        assert events[0].kind is EventKind.START
        assert events[1].kind is EventKind.FINISH
        assert events[0].id == events[1].id == i
        assert dict(events[0].dimensions) == {"one": 1, "two": 2}

    def test_dimensions_accept_mapping(self):
        recorder = profiling_recorder()
        recorder.start(lambda: {"event": "eval"})
        assert recorder.events[0].dimensions["event"] == "eval"

    def test_dimensions_are_read_only(self):
        recorder = profiling_recorder()
        recorder.start(lambda: {"event": "eval"})
        with pytest.raises(TypeError):
            recorder.events[0].dimensions["event"] = "other"

    def test_length_after_reset_is_zero(self):
        recorder = profiling_recorder()
        recorder.finish(recorder.start())
        recorder.reset()
        assert len(recorder.events) == 0
        assert recorder.overhead == 0
        assert correlate(recorder.events, recorder.overhead) == []

    def test_reset_restarts_ids(self):
        recorder = profiling_recorder()
        recorder.start()
        recorder.start()
        recorder.reset()
        assert recorder.start() == 1

    def test_event_ids_are_unique(self):
        recorder = profiling_recorder()
        ids = {recorder.start() for _ in range(1000)}
        assert len(ids) == 1000
        assert 0 not in ids

    def test_timestamps_come_from_clock(self):
        recorder = profiling_recorder(clock=counting_clock())
        recorder.finish(recorder.start())
        # entry read, event timestamp, exit read per call
        assert [e.time for e in recorder.events] == [10, 40]

    def test_overhead_accumulates_time_spent_recording(self):
        recorder = profiling_recorder(clock=counting_clock())
        recorder.finish(recorder.start())
        assert recorder.overhead == 40


# ---------------------------------------------------------------------------
# Enable gating
# ---------------------------------------------------------------------------

class TestGating:
    def test_disabled_returns_sentinel_and_records_nothing(self):
        recorder = Recorder()
        assert recorder.start() == 0
        recorder.finish(0)
        assert recorder.events == ()
        assert recorder.overhead == 0

    def test_disabled_never_evaluates_dimensions(self):
        recorder = Recorder()

        def expensive():
            raise AssertionError("dimensions evaluated while disabled")

        event_id = recorder.start(expensive)
        recorder.finish(event_id, expensive)
        assert event_id == 0

    def test_logging_only_emits_without_storing(self):
        seen: list[Event] = []
        recorder = Recorder(event_sink=seen.append)
        recorder.logging = True

        i = recorder.start(lambda: {"event": "loop"})
        recorder.finish(i)

        assert recorder.events == ()
        assert [e.kind for e in seen] == [EventKind.START, EventKind.FINISH]
        assert i == 1

    def test_profiling_and_logging_together(self):
        seen: list[Event] = []
        recorder = Recorder(event_sink=seen.append)
        recorder.profiling = True
        recorder.logging = True
        recorder.finish(recorder.start())
        assert len(recorder.events) == 2
        assert len(seen) == 2

    def test_logging_default_sink_uses_loguru(self):
        from loguru import logger

        messages: list[str] = []
        handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="INFO")
        try:
            recorder = Recorder()
            recorder.logging = True
            recorder.start(lambda: {"event": "attr"})
        finally:
            logger.remove(handler_id)
        assert len(messages) == 1
        assert "attr" in messages[0]


# ---------------------------------------------------------------------------
# span / wrap
# ---------------------------------------------------------------------------

class TestWrap:
    def test_wrap_twice_records_four_events(self):
        recorder = profiling_recorder()
        recorder.wrap(lambda: [("one", 10), ("two", 20)], lambda: None)
        recorder.wrap(lambda: [("one", 10), ("two", 20)], lambda: None)
        assert len(recorder.events) == 4

    def test_wrap_returns_body_result(self):
        recorder = profiling_recorder()
        assert recorder.wrap(None, lambda: 42) == 42

    def test_wrap_when_disabled_still_runs_body(self):
        recorder = Recorder()
        assert recorder.wrap(None, lambda: "ran") == "ran"
        assert recorder.events == ()

    def test_span_yields_start_id(self):
        recorder = profiling_recorder()
        with recorder.span(lambda: {"event": "x"}) as event_id:
            pass
        assert recorder.events[0].id == event_id
        assert recorder.events[1].id == event_id

    def test_span_emits_finish_when_body_raises(self):
        recorder = profiling_recorder()
        with pytest.raises(ValueError, match="boom"):
            with recorder.span(lambda: {"event": "outer"}):
                with recorder.span(lambda: {"event": "inner"}):
                    raise ValueError("boom")

        kinds = [e.kind for e in recorder.events]
        assert kinds == [EventKind.START, EventKind.START, EventKind.FINISH, EventKind.FINISH]
        records = correlate(recorder.events, recorder.overhead)
        assert [r.dimensions["event"] for r in records] == ["inner", "outer"]

    def test_wrap_propagates_body_exception(self):
        recorder = profiling_recorder()

        def fail():
            raise KeyError("missing")

        with pytest.raises(KeyError):
            recorder.wrap(lambda: {"event": "lookup"}, fail)
        assert len(recorder.events) == 2


# ---------------------------------------------------------------------------
# Event rendering
# ---------------------------------------------------------------------------

class TestEventRendering:
    def test_event_dimension_first_then_sorted(self):
        event = Event(3, EventKind.START, {"name": "x", "event": "eval", "age": 2}, 0)
        expected = "    3: " + "Start " + " " + "      eval" + " " + "age=2 name='x'"
        assert str(event) == expected

    def test_event_without_event_dimension(self):
        event = Event(12, EventKind.FINISH, {}, 0)
        assert str(event) == "   12: Finish " + " " * 10 + " "

    def test_event_defaults_to_no_dimensions(self):
        event = Event(4, EventKind.FINISH)
        assert len(event.dimensions) == 0
        assert event.time == 0
        assert str(event) == "    4: Finish " + " " * 10 + " "
