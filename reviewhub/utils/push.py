import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pyfcm import FCMNotification
from pyfcm.errors import FCMError, FCMNotRegisteredError, InvalidDataError

from .logging import get_logger

logger = get_logger()


@dataclass
class PushResult:
    token: str
    success: bool
    # the token will never work again and should be dropped from the profile
    invalid: bool = False
    error: Optional[str] = None


class NoopPush:

    enabled = False

    async def send(self, tokens: List[str], title: str, body: str, data: Optional[dict] = None) -> List[PushResult]:
        return []


class FcmPush:

    enabled = True

    def __init__(self, service_account_file: str, project_id: str) -> None:
        self._client = FCMNotification(service_account_file=service_account_file, project_id=project_id)

    def _send_one(self, token: str, title: str, body: str, data: Dict[str, str]) -> PushResult:
        try:
            self._client.notify(
                fcm_token=token,
                notification_title=title,
                notification_body=body,
                data_payload=data,
            )
        except (FCMNotRegisteredError, InvalidDataError) as exc:
            return PushResult(token=token, success=False, invalid=True, error=str(exc))
        except FCMError as exc:
            return PushResult(token=token, success=False, error=str(exc))
        except Exception as exc:
            # transport failures: report this token and keep going with the rest
            logger.warning(f"Push to token {token[:12]}... failed: {exc}")
            return PushResult(token=token, success=False, error=str(exc))
        return PushResult(token=token, success=True)

    async def send(self, tokens: List[str], title: str, body: str, data: Optional[dict] = None) -> List[PushResult]:
        if not tokens:
            return []
        # FCM only accepts string values in the data payload
        payload = {k: str(v) for k, v in (data or {}).items() if v is not None}
        results = []
        for token in tokens:
            # pyfcm is sync; keep it off the event loop
            results.append(await asyncio.to_thread(self._send_one, token, title, body, payload))
        return results


def build_push_channel(settings):
    if not settings.FCM_SERVICE_ACCOUNT_FILE or not settings.FCM_PROJECT_ID:
        logger.info("FCM not configured, push notifications disabled")
        return NoopPush()
    return FcmPush(settings.FCM_SERVICE_ACCOUNT_FILE, settings.FCM_PROJECT_ID)


def build_push_payload(notification_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Title, body and data for one push message, by notification type."""
    link = data.get("link") or "/notifications"
    if notification_type == "new_message":
        conversation_id = data.get("conversation_id") or data.get("entity_id")
        return {
            "title": data.get("title") or "New message",
            "body": data.get("message") or "You have a new message",
            "data": {"type": "CHAT", "chatId": conversation_id, "url": f"/chat/{conversation_id}"},
        }
    if notification_type in ("review_scheduled", "review_reminder", "review_rescheduled"):
        return {
            "title": data.get("title") or "Review Reminder",
            "body": data.get("message") or "You have an upcoming review",
            "data": {"type": "REVIEW", "reviewId": data.get("entity_id"), "url": link},
        }
    if notification_type == "task_assigned":
        return {
            "title": data.get("title") or "New Task Assigned",
            "body": data.get("message") or "You have been assigned a new task",
            "data": {"type": "TASK", "taskId": data.get("entity_id"), "url": link},
        }
    if notification_type == "system":
        return {
            "title": data.get("title") or "System Notification",
            "body": data.get("message") or "",
            "data": {"type": "SYSTEM", "url": link},
        }
    return {
        "title": data.get("title") or "Notification",
        "body": data.get("message") or "",
        "data": {"type": notification_type.upper(), "url": link},
    }
