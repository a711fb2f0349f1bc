import os
import tempfile

# Must be set before sidekick.config is imported.
os.environ["SIDEKICK_DATA_DIR"] = tempfile.mkdtemp(prefix="sidekick-test-")
os.environ["SIDEKICK_REMINDER_POLL_INTERVAL_SEC"] = "0"
os.environ["SIDEKICK_API_KEY"] = ""
os.environ["HA_URL"] = ""
os.environ["HA_TOKEN"] = ""

import pytest
from fastapi.testclient import TestClient

from sidekick.core import database
from sidekick.core.notifications import NotificationScheduler, plan_intake_reminders
from sidekick.core.store import EventStore


class FakeScheduler(NotificationScheduler):
    """Records every call; ids are n1, n2, ... per planned reminder."""

    def __init__(self, permission=True, fail=False):
        self.permission = permission
        self.fail = fail
        self.permission_checks = 0
        self.scheduled = []
        self.cancelled = []
        self._counter = 0

    async def ensure_permission(self):
        self.permission_checks += 1
        return self.permission

    async def schedule_intake_notifications(self, intake, settings):
        if self.fail:
            raise RuntimeError("scheduler offline")
        planned = plan_intake_reminders(intake, settings)
        self.scheduled.append({"intake": intake, "settings": settings, "planned": planned})
        ids = []
        for _ in planned:
            self._counter += 1
            ids.append(f"n{self._counter}")
        return ids

    async def cancel_notifications(self, ids):
        self.cancelled.append(list(ids or []))


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def saved_states():
    return []


@pytest.fixture
def store(scheduler, saved_states):
    return EventStore(scheduler, on_change=saved_states.append)


@pytest.fixture
def client():
    """Test client on a freshly cleared state row."""
    from sidekick.main import app

    database.init_db()
    database.clear_state()
    with TestClient(app) as c:
        yield c
    database.clear_state()
