from typing import Any, Dict

from reviewhub.repositories.device_repository import DeviceRepository
from reviewhub.services.identity_service import IdentityResolver
from reviewhub.utils.logging import get_logger
from reviewhub.utils.push import build_push_payload

logger = get_logger()


class PushNotificationService:
    """Best-effort escalation to FCM for recipients without a live connection."""

    def __init__(self, channel, devices: DeviceRepository, identities: IdentityResolver) -> None:
        self._channel = channel
        self._devices = devices
        self._identities = identities

    @property
    def enabled(self) -> bool:
        return getattr(self._channel, "enabled", False)

    async def send_for_notification(self, notification: Dict[str, Any]) -> Dict[str, Any]:
        recipient_id = notification.get("recipient_id")
        if not self.enabled or not recipient_id:
            return {"success": False, "sent": 0, "reason": "push_disabled_globally"}
        try:
            return await self._send(recipient_id, notification)
        except Exception:
            logger.exception(f"Push notification to {recipient_id} failed")
            return {"success": False, "sent": 0, "reason": "error"}

    async def _send(self, recipient_id: str, notification: Dict[str, Any]) -> Dict[str, Any]:
        push_enabled, muted_chats = await self._identities.preferences(recipient_id)
        if not push_enabled:
            logger.info(f"Push disabled for {recipient_id}, skipping")
            return {"success": False, "sent": 0, "reason": "push_disabled"}

        if notification.get("entity_type") == "chat" and notification.get("entity_id") in muted_chats:
            logger.info(f"Chat {notification['entity_id']} is muted for {recipient_id}, skipping push")
            return {"success": False, "sent": 0, "reason": "chat_muted"}

        tokens = await self._devices.get_tokens(recipient_id, platform="fcm")
        if not tokens:
            return {"success": False, "sent": 0, "reason": "no_tokens"}

        payload = build_push_payload(notification.get("type", "default"), notification)
        results = await self._channel.send(tokens, payload["title"], payload["body"], payload["data"])

        invalid = [r.token for r in results if r.invalid]
        if invalid:
            removed = await self._devices.remove_tokens(recipient_id, invalid)
            logger.info(f"Cleaned up {removed} invalid FCM tokens for {recipient_id}")

        sent = sum(1 for r in results if r.success)
        logger.info(f"FCM push to {recipient_id}: {sent} success, {len(results) - sent} failed")
        return {"success": sent > 0, "sent": sent}
