"""Middleware for access control."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject

from utility_monitor.config import settings

logger = logging.getLogger(__name__)


class AdminAccessMiddleware(BaseMiddleware):
    """
    Drops updates from users that are not in ``ADMIN_IDS``.
    """

    def __init__(self, admin_ids: list[int] | None = None):
        self._admin_ids = set(settings.ADMIN_IDS if admin_ids is None else admin_ids)

    async def __call__(
        self,
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        user = data.get("event_from_user")
        if user is None:
            return None

        if user.id in self._admin_ids:
            return await handler(event, data)

        logger.warning(f"Ignoring update from non-admin user {user.id}")
        return None
