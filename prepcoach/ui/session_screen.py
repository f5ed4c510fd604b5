"""Terminal view of a capture session with live level, transcript and coaching."""

import logging
from typing import List, Optional

from pubsub import pub
from rich.align import Align
from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from ..models.session import CaptureState, Notification, NotificationVariant
from ..services.publisher import TOPIC_LEVEL, TOPIC_NOTIFICATION, TOPIC_STATE

logger = logging.getLogger(__name__)

LEVEL_BAR_WIDTH = 40


class SessionScreen:
    """Renders session state published on the pub/sub topics."""

    def __init__(self, console: Optional[Console] = None, refresh_per_second: int = 10):
        self.console = console or Console()
        self.refresh_per_second = refresh_per_second
        self.state = CaptureState()
        self.level = 0
        self.notifications: List[Notification] = []
        self.live: Optional[Live] = None

        # pubsub holds listeners weakly, so keep bound methods alive here
        self._listeners = [
            (self.on_state, TOPIC_STATE),
            (self.on_level, TOPIC_LEVEL),
            (self.on_notification, TOPIC_NOTIFICATION),
        ]

    def on_state(self, state: CaptureState) -> None:
        self.state = state

    def on_level(self, level: int) -> None:
        self.level = level

    def on_notification(self, notification: Notification) -> None:
        self.notifications.append(notification)
        if self.live is not None:
            self.live.console.print(self.render_notification(notification))

    def create_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="level", size=3),
            Layout(name="main", ratio=1),
        )
        layout["main"].split_row(
            Layout(name="transcription", ratio=1),
            Layout(name="response", ratio=1),
        )
        return layout

    def render_level_bar(self) -> Text:
        filled = int(round(self.level / 100 * LEVEL_BAR_WIDTH))
        style = "green" if self.level > 10 else "bright_black"
        return Text.assemble(
            ("█" * filled, style),
            ("░" * (LEVEL_BAR_WIDTH - filled), "bright_black"),
            f" {self.level:3d}",
        )

    def render(self) -> Layout:
        layout = self.create_layout()

        if self.state.is_recording:
            status = Text("● LISTENING", style="bold red")
        else:
            status = Text("■ STOPPED", style="bold yellow")
        if self.state.is_processing:
            status.append("  ⟳ Processing...", style="yellow italic")
        layout["header"].update(Panel(
            Align.center(Text.assemble(("PrepCoach", "bold blue"), "  |  ", status)),
            style="bright_blue",
        ))

        layout["level"].update(Panel(self.render_level_bar(), title="Audio Level", border_style="green"))

        if self.state.transcription:
            transcription = Text(self.state.transcription, style="white")
        else:
            transcription = Text("Speak naturally. The transcript appears after a pause.",
                                 style="dim white italic")
        layout["transcription"].update(Panel(transcription, title="Live Transcription",
                                             border_style="blue"))

        response = Text(self.state.response or "Waiting for an interview question...",
                        style="white" if self.state.response else "dim white italic")
        layout["response"].update(Panel(response, title="Coaching", border_style="magenta"))
        return layout

    @staticmethod
    def render_notification(notification: Notification) -> Panel:
        destructive = notification.variant == NotificationVariant.DESTRUCTIVE
        return Panel(
            Group(Text(notification.title, style="bold"), Text(notification.description)),
            border_style="red" if destructive else "cyan",
        )

    def start(self) -> None:
        for listener, topic in self._listeners:
            pub.subscribe(listener, topic)
        self.live = Live(
            console=self.console,
            get_renderable=self.render,
            refresh_per_second=self.refresh_per_second,
            transient=False,
        )
        self.live.start()
        logger.debug("Session screen started")

    def stop(self) -> None:
        for listener, topic in self._listeners:
            if pub.isSubscribed(listener, topic):
                pub.unsubscribe(listener, topic)
        if self.live is not None:
            self.live.stop()
            self.live = None
        logger.debug("Session screen stopped")

    def __enter__(self) -> "SessionScreen":
        self.start()
        return self

    def __exit__(self, *args) -> None:
        self.stop()
