import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient

from reviewhub.config.settings import settings
from reviewhub.services.container import RealtimeContext, ServiceContainer
from reviewhub.utils.presence import InMemoryPresenceTracker
from reviewhub.utils.task_queue import BackgroundTaskQueue
from reviewhub.utils.websocket_manager import ConnectionManager

from .helpers import FakePush, insert_account, insert_student


@pytest.fixture
def db():
    return AsyncMongoMockClient()["reviewhub_test"]


@pytest.fixture
def push_channel():
    return FakePush()


@pytest_asyncio.fixture
async def realtime(push_channel):
    ctx = RealtimeContext(
        presence=InMemoryPresenceTracker(),
        manager=ConnectionManager(),
        queue=BackgroundTaskQueue(maxsize=100, workers=1),
        push_channel=push_channel,
        settings=settings,
    )
    ctx.queue.start()
    yield ctx
    await ctx.shutdown()


@pytest.fixture
def services(db, realtime):
    return ServiceContainer(db, realtime)


@pytest_asyncio.fixture
async def people(db, services):
    """admin, two advisors, two reviewers and a student bound to ``advisor``."""
    ids = {
        "admin": await insert_account(db, "Ada", "admin"),
        "advisor": await insert_account(db, "Alan", "advisor"),
        "other_advisor": await insert_account(db, "Grace", "advisor"),
        "reviewer": await insert_account(db, "Rita", "reviewer"),
        "other_reviewer": await insert_account(db, "Rob", "reviewer"),
    }
    ids["student"] = await insert_student(db, "Sam", ids["advisor"])
    return {key: await services.identities.resolve(value) for key, value in ids.items()}
