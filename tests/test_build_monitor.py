"""
Build Monitor Tests
===================
Drives BuildMonitor.run() with a mocked GitHubClient, zero poll intervals
and a fixed clock. No network, no real sleeping.
"""
import asyncio
import random
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from smart_builder.agents.build_monitor import BuildMonitor
from smart_builder.core.config import MonitorSettings
from smart_builder.models.events import LogEvent, MemoryEventSink, ProgressEvent, TerminalEvent
from smart_builder.models.workflow_run import JobStep, WorkflowJob, WorkflowRun
from smart_builder.services.github_client import GitHubAPIError, GitHubClient
from smart_builder.services.progress_estimator import Phase, PhaseEstimator
from smart_builder.state.monitor_session import MonitorMode, MonitorSession

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
MIN = 60.0

PHASES = [
    Phase("Environment setup", 3 * MIN, 10),
    Phase("Fetching sources", 8 * MIN, 20),
    Phase("Configuring build", 5 * MIN, 30),
    Phase("Compiling kernel", 25 * MIN, 60),
    Phase("Compiling packages", 35 * MIN, 85),
    Phase("Packing firmware", 8 * MIN, 95),
]


def make_run(status="in_progress", conclusion=None, minutes_ago=4.0, duration_minutes=None):
    created = NOW - timedelta(minutes=minutes_ago)
    updated = created + timedelta(minutes=duration_minutes) if duration_minutes is not None else NOW
    return WorkflowRun(
        id=555,
        run_number=7,
        name="Smart Build",
        path=".github/workflows/smart-build.yml",
        event="repository_dispatch",
        status=status,
        conclusion=conclusion,
        created_at=created,
        updated_at=updated,
        html_url="https://github.com/o/r/actions/runs/555",
    )


def make_settings(**overrides):
    values = dict(
        poll_interval=0, background_poll_interval=0, settle_delay=0,
        locator_retry_delay=0, locator_error_delay=0, max_ticks=20,
    )
    values.update(overrides)
    return MonitorSettings(**values)


@pytest.fixture
def client():
    mock = MagicMock(spec=GitHubClient)
    mock.list_recent_runs = AsyncMock(return_value=[make_run("queued", minutes_ago=0.5)])
    mock.get_run = AsyncMock()
    mock.list_jobs = AsyncMock(return_value=[])
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def sink():
    return MemoryEventSink()


def build_monitor(client, sink, settings=None, **kwargs):
    settings = settings or make_settings()
    session = MonitorSession("web_build_1", "o/r", sink, settings.max_ticks, started_at=NOW)
    kwargs.setdefault("clock", lambda: NOW)
    kwargs.setdefault("rng", random.Random(7))
    return BuildMonitor(session, client, PhaseEstimator(PHASES), settings, **kwargs)


def messages(sink):
    return [e.message for e in sink.logs()]


# ===================================================================
# Real monitoring
# ===================================================================
def test_success_flow(client, sink):
    notifier = MagicMock()
    on_stop = MagicMock()
    client.get_run.side_effect = [
        make_run("in_progress"),
        make_run("completed", "success", duration_minutes=50),
    ]
    monitor = build_monitor(client, sink, notifier=notifier, on_stop=on_stop)

    asyncio.run(monitor.run(NOW))

    session = monitor.session
    assert session.mode is MonitorMode.STOPPED
    assert session.stop_reason == "completed"
    assert session.run_id == 555

    progress = sink.progress()
    assert progress[0].percent == pytest.approx(11.25)
    assert progress[0].display_percent == 11
    assert progress[-1].percent == 100

    terminal = sink.terminal()
    assert terminal.outcome == "succeeded"
    assert terminal.conclusion == "success"
    assert terminal.duration_seconds == 50 * MIN
    assert "Total time: 50m" in messages(sink)
    notifier.assert_called_once_with("Build succeeded", "Firmware is ready on the Releases page", "success")
    on_stop.assert_called_once()
    assert sink.events[-1].message == "Build monitoring stopped"


def test_failure_reports_run_link(client, sink):
    client.get_run.return_value = make_run("completed", "failure", duration_minutes=12)
    monitor = build_monitor(client, sink)

    asyncio.run(monitor.run(NOW))

    assert sink.terminal().outcome == "failed"
    errors = [e.message for e in sink.logs() if e.level == "error"]
    assert "Firmware build failed" in errors
    assert "Detailed logs: https://github.com/o/r/actions/runs/555" in errors


def test_queued_status_is_deduplicated(client, sink):
    client.get_run.side_effect = [
        make_run("queued"),
        make_run("queued"),
        make_run("queued"),
        make_run("completed", "cancelled", duration_minutes=1),
    ]
    monitor = build_monitor(client, sink)

    asyncio.run(monitor.run(NOW))

    assert messages(sink).count("Build run #7 is queued...") == 1
    assert [p.percent for p in sink.progress()] == [5, 100]
    assert sink.terminal().outcome == "cancelled"


def test_in_progress_emits_every_tick_and_never_regresses(client, sink):
    times = iter([NOW + timedelta(minutes=m) for m in (0, 0, 5, 5, 3, 3, 40, 40)])
    client.get_run.return_value = make_run("in_progress")
    monitor = build_monitor(client, sink, settings=make_settings(max_ticks=4), clock=lambda: next(times))

    asyncio.run(monitor.run(NOW))

    percents = [p.percent for p in sink.progress()]
    assert len(percents) == 4
    assert percents == sorted(percents)
    assert all(p <= 90 for p in percents)
    assert sink.terminal().reason == "timeout"


def test_timeout_after_max_ticks(client, sink):
    client.get_run.return_value = make_run("in_progress", minutes_ago=300)
    monitor = build_monitor(client, sink, settings=make_settings(max_ticks=3))

    asyncio.run(monitor.run(NOW))

    session = monitor.session
    assert session.tick_count == 3
    assert session.stop_reason == "timeout"
    assert client.get_run.await_count == 3
    assert all(p.percent == 90 for p in sink.progress())
    terminal = sink.terminal()
    assert terminal.reason == "timeout"
    assert terminal.url == "https://github.com/o/r/actions/runs/555"
    assert "Monitoring timed out, please check the build status manually" in messages(sink)


def test_unknown_status_degrades_gracefully(client, sink):
    client.get_run.side_effect = [
        make_run("waiting"),
        make_run("waiting"),
        make_run("completed", "success", duration_minutes=2),
    ]
    monitor = build_monitor(client, sink)

    asyncio.run(monitor.run(NOW))

    assert messages(sink).count("Status: waiting") == 1
    assert sink.terminal().outcome == "succeeded"


def test_offline_ticks_skip_network(client, sink):
    client.get_run.return_value = make_run("in_progress")
    monitor = build_monitor(client, sink, settings=make_settings(max_ticks=2), is_online=lambda: False)

    asyncio.run(monitor.run(NOW))

    client.get_run.assert_not_awaited()
    assert messages(sink).count("Network unreachable, skipping this check") == 2
    assert monitor.consecutive_failures == 0
    assert monitor.session.stop_reason == "timeout"


def test_job_details_follow_run_status(client, sink):
    client.get_run.return_value = make_run("in_progress")
    client.list_jobs.return_value = [
        WorkflowJob(id=1, name="Build firmware", status="in_progress", steps=[
            JobStep(name="a", status="completed"),
            JobStep(name="b", status="completed"),
            JobStep(name="c", status="in_progress"),
            JobStep(name="d", status="queued"),
        ]),
    ]
    monitor = build_monitor(client, sink, settings=make_settings(max_ticks=1))

    asyncio.run(monitor.run(NOW))

    logs = messages(sink)
    building = logs.index("Building... (Fetching sources) - run #7")
    assert logs.index("Running: Build firmware") > building
    assert "Steps: 2/4 (50%)" in logs


def test_job_fetch_failure_is_not_a_tick_failure(client, sink):
    client.get_run.return_value = make_run("in_progress")
    client.list_jobs.side_effect = GitHubAPIError("HTTP 500: oops", 500)
    monitor = build_monitor(client, sink, settings=make_settings(max_ticks=3))

    asyncio.run(monitor.run(NOW))

    assert monitor.consecutive_failures == 0
    assert monitor.session.stop_reason == "timeout"
    assert len(sink.progress()) == 3


# ===================================================================
# Fallbacks
# ===================================================================
def test_falls_back_to_basic_when_run_not_found(client, sink):
    client.list_recent_runs.return_value = []
    settings = make_settings(locator_max_retries=2, max_ticks=3)
    monitor = build_monitor(client, sink, settings=settings)

    asyncio.run(monitor.run(NOW))

    assert client.list_recent_runs.await_count == 3
    client.get_run.assert_not_awaited()
    assert "No matching build run was found" in messages(sink)
    assert "Basic monitoring enabled" in messages(sink)
    assert len(sink.progress()) == 3
    terminal = sink.terminal()
    assert terminal.reason == "timeout"
    assert terminal.outcome == "unknown"


def test_not_found_without_fallback_stops(client, sink):
    client.list_recent_runs.return_value = []
    monitor = build_monitor(client, sink, settings=make_settings(locator_max_retries=0))

    asyncio.run(monitor.run(NOW, fallback=False))

    assert monitor.session.mode is MonitorMode.STOPPED
    assert sink.terminal().reason == "not_found"
    assert sink.progress() == []


def test_repeated_fetch_failures_switch_to_basic(client, sink):
    client.get_run.side_effect = GitHubAPIError("Network error: timed out")
    monitor = build_monitor(client, sink, settings=make_settings(max_ticks=5))

    asyncio.run(monitor.run(NOW))

    assert client.get_run.await_count == 3
    assert "Switching to basic monitoring..." in messages(sink)
    assert monitor.session.stop_reason == "timeout"
    # Failures before the switch are not surfaced one by one
    assert sum(1 for m in messages(sink) if m.startswith("Lost contact")) == 1
    assert len(sink.progress()) == 2


def test_basic_progress_is_capped_and_monotonic(client, sink):
    monitor = build_monitor(client, sink, settings=make_settings(max_ticks=200))

    asyncio.run(monitor.run(NOW, basic_only=True))

    percents = [p.percent for p in sink.progress()]
    assert len(percents) == 200
    assert percents == sorted(percents)
    assert max(percents) == 95
    assert all(p < 100 for p in percents)
    assert sink.terminal().outcome == "unknown"
    client.list_recent_runs.assert_not_awaited()


def test_basic_reminder_every_fifth_tick(client, sink):
    monitor = build_monitor(client, sink, settings=make_settings(max_ticks=10))

    asyncio.run(monitor.run(NOW, basic_only=True))

    reminder = "See GitHub Actions for detailed progress: https://github.com/o/r/actions"
    assert messages(sink).count(reminder) == 2


# ===================================================================
# Lifecycle
# ===================================================================
def test_stop_prevents_further_events(client, sink):
    async def run_test():
        monitor = build_monitor(client, sink, settings=make_settings(settle_delay=30))
        task = monitor.start(NOW)
        await asyncio.sleep(0)

        assert monitor.stop()
        count = len(sink.events)
        await asyncio.gather(task, return_exceptions=True)

        assert task.done()
        assert len(sink.events) == count
        assert not monitor.stop()
        monitor.basic_tick()
        await monitor.tick()
        assert len(sink.events) == count
        client.list_recent_runs.assert_not_awaited()

    asyncio.run(run_test())


def test_terminal_event_emitted_once(client, sink):
    client.get_run.return_value = make_run("completed", "success", duration_minutes=3)
    monitor = build_monitor(client, sink)

    asyncio.run(monitor.run(NOW))
    asyncio.run(monitor.tick())

    assert sum(1 for e in sink.events if isinstance(e, TerminalEvent)) == 1
    assert client.get_run.await_count == 1


def test_background_changes_cadence_only(client, sink):
    monitor = build_monitor(client, sink, settings=make_settings(poll_interval=60, background_poll_interval=120))
    assert monitor.interval == 60
    monitor.set_background(True)
    assert monitor.interval == 120
    monitor.set_background(False)
    assert monitor.interval == 60


def test_owned_client_closed_on_exit(client, sink):
    client.get_run.return_value = make_run("completed", "success", duration_minutes=3)
    monitor = build_monitor(client, sink, owns_client=True)

    asyncio.run(monitor.run(NOW))

    client.close.assert_awaited_once()


def test_unexpected_error_stops_session(client, sink):
    client.get_run.side_effect = RuntimeError("boom")
    monitor = build_monitor(client, sink)

    asyncio.run(monitor.run(NOW))

    assert monitor.session.stop_reason == "error"
    assert sink.terminal().reason == "error"
    assert any(isinstance(e, LogEvent) and e.level == "error" for e in sink.events)


def test_start_twice_rejected(client, sink):
    async def run_test():
        monitor = build_monitor(client, sink, settings=make_settings(settle_delay=30))
        monitor.start(NOW)
        with pytest.raises(RuntimeError):
            monitor.start(NOW)
        monitor.stop()

    asyncio.run(run_test())


def test_progress_event_carries_time_estimates(client, sink):
    client.get_run.return_value = make_run("in_progress", minutes_ago=20)
    times = iter([NOW + timedelta(minutes=20)] * 4)
    monitor = build_monitor(client, sink, settings=make_settings(max_ticks=1), clock=lambda: next(times))

    asyncio.run(monitor.run(NOW))

    event = sink.progress()[0]
    assert isinstance(event, ProgressEvent)
    assert event.elapsed_seconds == 20 * MIN
    assert event.remaining_seconds is not None and event.remaining_seconds > 0


def test_budget_spent_on_failure_switch_stops_without_basic_ticks(client, sink):
    client.get_run.side_effect = GitHubAPIError("Network error: timed out")
    monitor = build_monitor(client, sink, settings=make_settings(max_ticks=3, failure_switch_threshold=3))

    asyncio.run(monitor.run(NOW))

    session = monitor.session
    assert session.stop_reason == "timeout"
    assert session.tick_count == 3
    assert sink.progress() == []
    assert "Basic monitoring enabled" not in messages(sink)
    assert sink.terminal().outcome == "unknown"


def test_basic_mode_with_no_budget_left_times_out_immediately(client, sink):
    monitor = build_monitor(client, sink, settings=make_settings(max_ticks=1))
    monitor.session.register_tick()

    asyncio.run(monitor.run(NOW, basic_only=True))

    assert monitor.session.stop_reason == "timeout"
    assert sink.progress() == []


def test_owned_client_closed_when_stopped_before_first_step(client, sink):
    async def run_test():
        monitor = build_monitor(client, sink, owns_client=True)
        task = monitor.start(NOW)
        monitor.stop()
        await asyncio.gather(task, return_exceptions=True)
        for _ in range(3):
            await asyncio.sleep(0)

        assert task.cancelled()
        client.list_recent_runs.assert_not_awaited()
        client.close.assert_awaited_once()

    asyncio.run(run_test())


def test_owned_client_closed_once_after_started_task(client, sink):
    async def run_test():
        client.get_run.return_value = make_run("completed", "success", duration_minutes=3)
        monitor = build_monitor(client, sink, owns_client=True)
        await monitor.start(NOW)
        for _ in range(3):
            await asyncio.sleep(0)

        client.close.assert_awaited_once()

    asyncio.run(run_test())
