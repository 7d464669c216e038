"""User-facing notification channel."""

from typing import Protocol

from rich.console import Console

DEFAULT_DURATION = 4.0
ERROR_DURATION = 5.0


class Notifier(Protocol):
    """Anything that can show a short message to the user."""

    def notify(self, message: str, duration: float | None = None) -> None:
        """Show a message.

        Args:
            message: Text to show.
            duration: How long the message should stay visible, in seconds.
                Hosts without timed notices may ignore it.
        """


class ConsoleNotifier:
    """Prints notices to a rich console."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    def notify(self, message: str, duration: float | None = None) -> None:
        style = "red" if (duration or 0) >= ERROR_DURATION else "cyan"
        self.console.print(f"[{style}]{message}[/{style}]", highlight=False)


class RecordingNotifier:
    """Keeps every notice in memory. Useful for embedding and tests."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, float | None]] = []

    def notify(self, message: str, duration: float | None = None) -> None:
        self.messages.append((message, duration))

    @property
    def texts(self) -> list[str]:
        return [message for message, _ in self.messages]

    def clear(self) -> None:
        self.messages.clear()
