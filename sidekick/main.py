"""
Sidekick API entry point.

    uvicorn sidekick.main:app
"""

import asyncio
import contextlib
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI

from sidekick import config
from sidekick.api.routes import router
from sidekick.core import database
from sidekick.core.notifications import InProcessScheduler, run_reminder_loop
from sidekick.core.store import EventStore

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("sidekick")


def build_store() -> EventStore:
    """Rehydrate the store from SQLite and persist every change back."""
    database.init_db()
    state = database.load_state()
    store = EventStore(InProcessScheduler(), state=state, on_change=database.save_state)
    if state is not None:
        logger.info("Restored state: %d intakes, %d check-ins, %d meals, %d notes",
                    len(state.intakes), len(state.checkins), len(state.meals), len(state.notes))
    return store


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.store = build_store()
    # Pending reminders are held in memory only.
    await app.state.store.restore_reminders()
    reminder_task = None
    if config.REMINDER_POLL_INTERVAL_SEC > 0:
        reminder_task = asyncio.create_task(
            run_reminder_loop(app.state.store.scheduler, config.REMINDER_POLL_INTERVAL_SEC)
        )
    yield
    if reminder_task is not None:
        reminder_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reminder_task


app = FastAPI(title="Sidekick API", version="1.0.0", lifespan=lifespan)
app.include_router(router)
