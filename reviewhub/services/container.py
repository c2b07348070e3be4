from dataclasses import dataclass, field
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase

from reviewhub.config.settings import Settings, settings as default_settings
from reviewhub.repositories.chat_request_repository import ChatRequestRepository
from reviewhub.repositories.conversation_repository import ConversationRepository
from reviewhub.repositories.device_repository import DeviceRepository
from reviewhub.repositories.identity_repository import AccountRepository, StudentRepository
from reviewhub.repositories.message_repository import MessageRepository
from reviewhub.repositories.notification_repository import NotificationRepository
from reviewhub.repositories.review_session_repository import ReviewSessionRepository
from reviewhub.services.chat_request_service import ChatRequestService
from reviewhub.services.chat_service import ChatService
from reviewhub.services.identity_service import IdentityResolver
from reviewhub.services.notification_service import NotificationService
from reviewhub.services.push_service import PushNotificationService
from reviewhub.services.realtime_gateway import SessionGateway
from reviewhub.services.review_chat_service import ReviewChatService
from reviewhub.utils.presence import PresenceTracker, build_presence_tracker
from reviewhub.utils.push import build_push_channel
from reviewhub.utils.task_queue import BackgroundTaskQueue
from reviewhub.utils.websocket_manager import ConnectionManager


@dataclass
class RealtimeContext:
    """Process-lifetime collaborators, built in the lifespan and kept on ``app.state``."""

    presence: PresenceTracker
    manager: ConnectionManager
    queue: BackgroundTaskQueue
    push_channel: Any
    settings: Settings = field(default_factory=lambda: default_settings)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RealtimeContext":
        return cls(
            presence=build_presence_tracker(settings),
            manager=ConnectionManager(),
            queue=BackgroundTaskQueue(settings.NOTIFICATION_QUEUE_SIZE, settings.NOTIFICATION_WORKERS),
            push_channel=build_push_channel(settings),
            settings=settings,
        )

    async def shutdown(self) -> None:
        await self.queue.stop()
        await self.presence.close()


class ServiceContainer:
    """Repositories and services bound to one database handle."""

    def __init__(self, db: AsyncIOMotorDatabase, realtime: RealtimeContext) -> None:
        cfg = realtime.settings
        self.accounts = AccountRepository(db)
        self.students = StudentRepository(db)
        self.conversations = ConversationRepository(db)
        self.messages = MessageRepository(db)
        self.chat_request_repo = ChatRequestRepository(db)
        self.notification_repo = NotificationRepository(db)
        self.devices = DeviceRepository(db)
        self.review_sessions = ReviewSessionRepository(db)

        self.identities = IdentityResolver(self.accounts, self.students)
        self.push = PushNotificationService(realtime.push_channel, self.devices, self.identities)
        self.notifications = NotificationService(
            self.notification_repo,
            self.identities,
            realtime.presence,
            realtime.manager,
            self.push,
            self.accounts,
            self.students,
            dedup_window_seconds=cfg.NOTIFICATION_DEDUP_WINDOW_SECONDS,
            pending_limit=cfg.PENDING_NOTIFICATION_LIMIT,
        )
        self.chat_requests = ChatRequestService(
            self.chat_request_repo, self.identities, self.notifications, realtime.queue
        )
        self.chat = ChatService(
            self.conversations,
            self.messages,
            self.chat_request_repo,
            self.identities,
            self.accounts,
            self.students,
            self.review_sessions,
            self.notifications,
            realtime.queue,
        )
        self.review_chat = ReviewChatService(self.review_sessions, self.messages)
        self.gateway = SessionGateway(
            self.identities, realtime.presence, realtime.manager, self.chat, self.review_chat, self.notifications
        )

    async def ensure_indexes(self) -> None:
        for repo in (
            self.accounts,
            self.students,
            self.conversations,
            self.messages,
            self.chat_request_repo,
            self.notification_repo,
            self.devices,
        ):
            await repo.ensure_indexes()
