"""
Tests for the persistent job queue and the built-in scheduled operations
"""
import pytest
from sqlalchemy import select

import jobs.cron as cron
from database_models import Notification, ScheduledJob, Subscription
from jobs.handlers import SWEEP_OPERATION, enqueue_sweep_continuation
from jobs.scheduler import JOB_DONE, JOB_FAILED, JOB_PENDING, JobDispatcher, JobScheduler
from services.expiration_sweeper import ExpirationSweeper
from services.lifecycle_service import TRIAL_CHARGE_OPERATION, LifecycleService


async def _jobs(db, operation=None):
    stmt = select(ScheduledJob).order_by(ScheduledJob.created_at)
    if operation is not None:
        stmt = stmt.where(ScheduledJob.operation == operation)
    return list((await db.execute(stmt)).scalars().all())


@pytest.mark.asyncio
async def test_trial_charge_job_runs_at_trial_end(test_db, clock, make_profile):
    profile = await make_profile()
    upgraded = await LifecycleService(test_db, clock).upgrade(profile.id, "premium", plan="annual", trial=True)
    dispatcher = JobDispatcher(test_db, clock)

    early = await dispatcher.run_due()
    assert early.ran == 0
    assert profile.trial_ends_at == upgraded.trial_ends_at

    clock.set(upgraded.trial_ends_at + 1000)
    due = await dispatcher.run_due()

    assert due.ran == 1
    assert profile.trial_ends_at is None
    assert profile.premium_plan == "annual"
    [job] = await _jobs(test_db, TRIAL_CHARGE_OPERATION)
    assert job.status == JOB_DONE
    assert job.attempts == 1

    again = await dispatcher.run_due()
    assert again.ran == 0


@pytest.mark.asyncio
async def test_duplicate_trial_charge_delivery_is_harmless(test_db, clock, make_profile):
    profile = await make_profile()
    upgraded = await LifecycleService(test_db, clock).upgrade(profile.id, "premium", plan="monthly", trial=True)
    [job] = await _jobs(test_db, TRIAL_CHARGE_OPERATION)
    await JobScheduler(test_db, clock).schedule_at(job.run_at, TRIAL_CHARGE_OPERATION, dict(job.payload))

    clock.set(upgraded.trial_ends_at)
    result = await JobDispatcher(test_db, clock).run_due()

    assert result.ran == 2
    assert result.failed == 0
    rows = (await test_db.execute(
        select(Subscription).where(Subscription.user_id == profile.id, Subscription.status == "active")
    )).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_unknown_operation_is_marked_failed(test_db, clock):
    await JobScheduler(test_db, clock).schedule_at(clock.now_ms(), "no_such_operation", {})

    result = await JobDispatcher(test_db, clock).run_due()

    assert result.failed == 1
    [job] = await _jobs(test_db)
    assert job.status == JOB_FAILED
    assert job.last_error == "unknown_operation"


@pytest.mark.asyncio
async def test_failing_handler_is_retried_then_failed(test_db, clock):
    calls = []

    async def flaky(db, clock, payload):
        calls.append(payload)
        raise RuntimeError("provider timeout")

    await JobScheduler(test_db, clock).schedule_at(clock.now_ms(), "flaky", {"n": 1})
    dispatcher = JobDispatcher(test_db, clock, handlers={"flaky": flaky}, max_attempts=2)

    first = await dispatcher.run_due()
    assert first.retried == 1
    [job] = await _jobs(test_db)
    assert job.status == JOB_PENDING
    assert job.attempts == 1
    assert job.last_error == "provider timeout"

    second = await dispatcher.run_due()
    assert second.failed == 1
    assert job.status == JOB_FAILED
    assert job.attempts == 2
    assert calls == [{"n": 1}, {"n": 1}]


@pytest.mark.asyncio
async def test_future_jobs_are_not_dispatched(test_db, clock):
    async def handler(db, clock, payload):
        return None

    await JobScheduler(test_db, clock).schedule_at(clock.now_ms() + 60_000, "later", {})
    dispatcher = JobDispatcher(test_db, clock, handlers={"later": handler})

    assert (await dispatcher.run_due()).ran == 0
    clock.advance(ms=60_000)
    assert (await dispatcher.run_due()).ran == 1


@pytest.mark.asyncio
async def test_sweep_continuation_is_queued_and_finishes_the_backlog(test_db, clock, make_profile):
    service = LifecycleService(test_db, clock)
    users = []
    for _ in range(3):
        profile = await make_profile()
        await service.upgrade(profile.id, "premium", plan="monthly")
        users.append(profile)
        clock.advance(hours=1)
    clock.set(users[-1].premium_expires_at + 1)

    result = await ExpirationSweeper(test_db, clock).sweep(batch_size=2)
    assert result.continued is True
    job = await enqueue_sweep_continuation(test_db, clock, result, 2)
    assert job.operation == SWEEP_OPERATION
    assert job.payload["cursor"] == result.next_cursor

    dispatched = await JobDispatcher(test_db, clock).run_due()

    assert dispatched.ran == 1
    assert all(user.role == "free" for user in users)
    # The last page was short, so no further continuation was queued
    assert [j.status for j in await _jobs(test_db, SWEEP_OPERATION)] == [JOB_DONE]


@pytest.mark.asyncio
async def test_no_continuation_when_batch_not_full(test_db, clock):
    result = await ExpirationSweeper(test_db, clock).sweep(batch_size=10)

    assert await enqueue_sweep_continuation(test_db, clock, result, 10) is None
    assert await _jobs(test_db) == []


def test_cron_cli_rejects_unknown_entry_point(capsys):
    assert cron.main(["nope"]) == 2
    assert "usage" in capsys.readouterr().err


def test_cron_schedule_names_known_entry_points():
    for expression, entry_point in cron.CRON_SCHEDULE.values():
        assert len(expression.split()) == 5
        assert entry_point in cron.ENTRY_POINTS


@pytest.mark.asyncio
async def test_sweep_continuation_keeps_the_pass_now(test_db, clock, make_profile):
    service = LifecycleService(test_db, clock)
    users = []
    for _ in range(3):
        profile = await make_profile()
        await service.upgrade(profile.id, "premium", plan="monthly")
        users.append(profile)
        clock.advance(hours=1)
    # The wall clock stays before every expiry; only the pass's "now" is past them
    pass_now = users[-1].premium_expires_at + 1

    result = await ExpirationSweeper(test_db, clock).sweep(batch_size=2, now=pass_now)
    job = await enqueue_sweep_continuation(test_db, clock, result, 2)
    assert job.payload["now"] == pass_now

    dispatched = await JobDispatcher(test_db, clock).run_due()

    assert dispatched.ran == 1
    assert all(user.role == "free" for user in users)
    notices = (await test_db.execute(
        select(Notification).where(Notification.type == "plan-expired")
    )).scalars().all()
    assert len(notices) == 3
    assert {n.created_at for n in notices} == {pass_now}


def test_cron_schedule_prints_crontab(capsys):
    assert cron.main(["schedule"]) == 0

    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == len(cron.CRON_SCHEDULE)
    for name, (expression, entry_point) in cron.CRON_SCHEDULE.items():
        assert f"{expression} python -m jobs.cron {entry_point}  # {name}" in lines
