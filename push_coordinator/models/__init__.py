"""Enumerations shared by the coordinator."""

from push_coordinator.models.enums import ChannelKind, ErrorKind, LifecycleState, PermissionState

__all__ = [
    "ChannelKind",
    "ErrorKind",
    "LifecycleState",
    "PermissionState",
]
