import pytest

from smart_builder.models.events import LogEvent, MemoryEventSink, ProgressEvent
from smart_builder.state.monitor_session import InvalidTransition, MonitorMode, MonitorSession


@pytest.fixture
def sink():
    return MemoryEventSink()


@pytest.fixture
def session(sink):
    return MonitorSession("b1", "o/r", sink, max_ticks=3)


def test_starts_locating(session):
    assert session.mode is MonitorMode.LOCATING
    assert session.is_active
    assert session.run_id is None


def test_run_id_is_write_once(session):
    session.bind_run(42, 7)
    session.bind_run(42, 7)
    assert session.run_id == 42
    with pytest.raises(RuntimeError):
        session.bind_run(43)


def test_allowed_transitions(session):
    session.transition(MonitorMode.MONITORING_REAL)
    session.transition(MonitorMode.MONITORING_BASIC)
    with pytest.raises(InvalidTransition):
        session.transition(MonitorMode.MONITORING_REAL)


def test_tick_count_is_bounded(session):
    for _ in range(10):
        session.register_tick()
    assert session.tick_count == 3
    assert session.ticks_exhausted


def test_stop_happens_once(session, sink):
    assert session.stop("timeout")
    assert not session.stop("stopped")
    assert session.stop_reason == "timeout"
    assert [e.message for e in sink.logs()] == ["Build monitoring stopped"]


def test_no_events_after_stop(session, sink):
    session.stop("stopped")
    count = len(sink.events)
    assert not session.emit(ProgressEvent(percent=50))
    assert not session.log("info", "late")
    assert len(sink.events) == count


def test_no_transition_out_of_stopped(session):
    session.stop("stopped")
    with pytest.raises(InvalidTransition):
        session.transition(MonitorMode.MONITORING_BASIC)


def test_sink_keeps_newest_events():
    sink = MemoryEventSink(max_events=3)
    for i in range(5):
        sink.publish(LogEvent(message=str(i)))
    assert [e.message for e in sink.logs()] == ["2", "3", "4"]


def test_display_percent_is_floored():
    assert ProgressEvent(percent=11.25).display_percent == 11
    assert ProgressEvent(percent=89.99).model_dump()["display_percent"] == 89
