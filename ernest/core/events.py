from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from ernest.core.event_hub import AsyncEventHub
from ernest.exporters.common import ExportFinished, ExportProgress

LOGGER = logging.getLogger(__name__)

PROGRESS_TOPIC = "export:progress"
FINISHED_TOPIC = "export:finished"


class ExportEventSink(Protocol):
    """One-way channel from export workers to the requesting surface."""

    def progress(self, event: ExportProgress) -> None: ...

    def finished(self, event: ExportFinished) -> None: ...


class CallbackSink:
    def __init__(
        self,
        on_progress: Optional[Callable[[ExportProgress], None]] = None,
        on_finished: Optional[Callable[[ExportFinished], None]] = None,
    ) -> None:
        self._on_progress = on_progress
        self._on_finished = on_finished

    def progress(self, event: ExportProgress) -> None:
        if self._on_progress is not None:
            self._on_progress(event)

    def finished(self, event: ExportFinished) -> None:
        if self._on_finished is not None:
            self._on_finished(event)


class EventHubSink:
    """Publish export events onto an :class:`AsyncEventHub`."""

    def __init__(self, hub: AsyncEventHub) -> None:
        self.hub = hub

    def progress(self, event: ExportProgress) -> None:
        self.hub.publish(PROGRESS_TOPIC, event.to_dict())

    def finished(self, event: ExportFinished) -> None:
        self.hub.publish(FINISHED_TOPIC, event.to_dict())


__all__ = [
    "CallbackSink",
    "EventHubSink",
    "ExportEventSink",
    "FINISHED_TOPIC",
    "PROGRESS_TOPIC",
]
