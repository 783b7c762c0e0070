"""Push notification subscription and delivery coordinator."""

from push_coordinator.models.enums import ChannelKind, ErrorKind, LifecycleState, PermissionState
from push_coordinator.schemas.subscription import LifecycleResult, Subscription
from push_coordinator.services.lifecycle import (
    SubscriptionLifecycleManager,
    build_lifecycle_manager,
)
from push_coordinator.services.prompt_gate import should_prompt

__all__ = [
    "ChannelKind",
    "ErrorKind",
    "LifecycleState",
    "PermissionState",
    "LifecycleResult",
    "Subscription",
    "SubscriptionLifecycleManager",
    "build_lifecycle_manager",
    "should_prompt",
]
