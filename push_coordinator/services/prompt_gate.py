"""Policy deciding whether the notification prompt should be shown."""

from datetime import UTC, datetime, timedelta

from push_coordinator.models.enums import PermissionState
from push_coordinator.schemas.subscription import DismissalRecord

DEFAULT_COOLDOWN = timedelta(days=7)


def should_prompt(
    supported: bool,
    permission: PermissionState,
    dismissal: DismissalRecord | None,
    now: datetime | None = None,
    cooldown: timedelta = DEFAULT_COOLDOWN,
) -> bool:
    """Check if the UI should ask the user to enable notifications.

    True only when push is supported, permission is still undecided, and the
    prompt was never dismissed or the dismissal is older than ``cooldown``.
    """
    if not supported or not permission.can_prompt():
        return False
    if dismissal is None:
        return True

    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    dismissed_at = dismissal.dismissed_at
    if dismissed_at.tzinfo is None:
        dismissed_at = dismissed_at.replace(tzinfo=UTC)
    return now - dismissed_at > cooldown
