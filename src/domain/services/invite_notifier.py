import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class InviteNotifier(Protocol):
    """Delivers a freshly issued invite token to its recipient (email, chat, ...)."""

    async def send_invite(
        self, email: str, name: str, token: str, link: str | None = None
    ) -> None: ...


class LoggingInviteNotifier:
    """Default notifier: records that an invite exists without revealing the token."""

    async def send_invite(
        self, email: str, name: str, token: str, link: str | None = None
    ) -> None:
        logger.info(
            "Invite token generated for %s. Deliver the ?invite=<token> link out of band.",
            email,
        )


async def deliver_invite(
    notifier: InviteNotifier,
    email: str,
    name: str,
    token: str,
    link: str | None = None,
) -> bool:
    """Hand the invite to the notifier; delivery failures are logged, not raised."""
    try:
        await notifier.send_invite(email, name, token, link)
    except Exception:
        logger.warning("Invite delivery failed for %s", email, exc_info=True)
        return False
    return True
