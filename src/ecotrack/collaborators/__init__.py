"""Collaborators outside the core: notifications and image storage."""

from ecotrack.collaborators.image_storage import ImageStorage
from ecotrack.collaborators.notifier import (
    REWARD_GRANTED,
    TASK_ASSIGNED,
    Notifier,
    NullNotifier,
    WebhookNotifier,
    build_notifier,
    notify_safely,
)

__all__ = [
    "REWARD_GRANTED",
    "TASK_ASSIGNED",
    "ImageStorage",
    "Notifier",
    "NullNotifier",
    "WebhookNotifier",
    "build_notifier",
    "notify_safely",
]
