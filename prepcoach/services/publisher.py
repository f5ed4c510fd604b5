"""Session publisher for pub/sub event publishing."""

import logging
from dataclasses import replace
from pubsub import pub

from ..models.session import CaptureState, Notification, NotificationVariant

logger = logging.getLogger(__name__)

TOPIC_STATE = "capture_state"
TOPIC_LEVEL = "audio_level"
TOPIC_NOTIFICATION = "notification"


class SessionPublisher:
    """Publishes capture state, audio levels and notifications using pubsub.pub.

    Listeners receive ``state=CaptureState``, ``level=int`` and
    ``notification=Notification`` respectively.
    """

    def __init__(self,
                 state_topic: str = TOPIC_STATE,
                 level_topic: str = TOPIC_LEVEL,
                 notification_topic: str = TOPIC_NOTIFICATION):
        self.state_topic = state_topic
        self.level_topic = level_topic
        self.notification_topic = notification_topic
        logger.info(f"SessionPublisher initialized with topics: "
                    f"{state_topic}, {level_topic}, {notification_topic}")

    def publish_state(self, state: CaptureState) -> None:
        # Listeners get a snapshot, never the live object
        pub.sendMessage(self.state_topic, state=replace(state))

    def publish_level(self, level: int) -> None:
        pub.sendMessage(self.level_topic, level=level)

    def notify(self, title: str, description: str,
               variant: NotificationVariant = NotificationVariant.DEFAULT) -> None:
        notification = Notification(title=title, description=description, variant=variant)
        logger.debug(f"Notification: {title} - {description}")
        pub.sendMessage(self.notification_topic, notification=notification)

    def notify_error(self, title: str, description: str) -> None:
        self.notify(title, description, NotificationVariant.DESTRUCTIVE)
