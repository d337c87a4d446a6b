"""
Native (OS-level) notification transport.

Delivery is best-effort: callers must not depend on it for correctness, the
persisted in-app notification is the record of what was sent.
"""

import logging

logger = logging.getLogger(__name__)


async def send_native_notification(
    owner_id: str, title: str, body: str, *, tag: str
) -> None:
    logger.info("native notification to %s [%s]: %s - %s", owner_id, tag, title, body)
