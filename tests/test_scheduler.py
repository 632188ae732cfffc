"""Tests for the reminder scheduler."""

import asyncio
from datetime import date, timedelta

import pytest

from bizflow.config import BizflowConfig
from bizflow.core import Workspace
from bizflow.models import Appointment, Invoice
from bizflow.scheduler.jobs import Scheduler

TODAY = date(2026, 10, 19)


@pytest.mark.asyncio
async def test_tick_announces_each_reminder_once_per_day(workspace: Workspace, eventually):
    await workspace.start()
    await workspace.create(
        "appointments",
        Appointment(client_name="Ann", date=(TODAY + timedelta(days=1)).isoformat(), time="09:00"),
    )
    await workspace.create("invoices", Invoice(client_name="Bob"))
    await eventually(lambda: len(workspace.snapshots["invoices"]) == 1)
    await eventually(lambda: len(workspace.snapshots["appointments"]) == 1)

    scheduler = Scheduler(workspace, BizflowConfig())
    assert [r.client for r in scheduler.tick(TODAY)] == ["Ann", "Bob"]
    assert scheduler.tick(TODAY) == []

    # next day the appointment is due "today" and the invoice is still pending
    tomorrow = scheduler.tick(TODAY + timedelta(days=1))
    assert [(r.client, r.due) for r in tomorrow] == [("Ann", "today"), ("Bob", "pending")]
    await workspace.stop()


@pytest.mark.asyncio
async def test_start_stops_on_shutdown(workspace: Workspace):
    scheduler = Scheduler(workspace, BizflowConfig())
    shutdown = asyncio.Event()
    task = asyncio.create_task(scheduler.start(shutdown))
    await asyncio.sleep(0)
    shutdown.set()
    await asyncio.wait_for(task, timeout=1.0)
