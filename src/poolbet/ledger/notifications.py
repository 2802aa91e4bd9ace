"""Notifier - sequences ledger notifications, logs them, fans out to sinks."""

from __future__ import annotations

from itertools import count
from threading import Lock
from typing import Any, Callable

import structlog

from poolbet.models.notification import Notification, NotificationKind

log = structlog.get_logger(__name__)

Sink = Callable[[Notification], None]


class Notifier:
    """Sinks run synchronously after the ledger mutation; a failing sink is logged, never propagated.

    `keep_history` retains every notification in memory; meant for tests and short-lived tools.
    """

    def __init__(self, keep_history: bool = False) -> None:
        self._seq = count(1)
        self._lock = Lock()
        self._sinks: list[Sink] = []
        self._keep_history = keep_history
        self.history: list[Notification] = []

    def subscribe(self, sink: Sink) -> None:
        self._sinks.append(sink)

    def emit(
        self,
        kind: NotificationKind,
        timestamp: int,
        event_id: int | None = None,
        participant: str | None = None,
        **payload: Any,
    ) -> Notification:
        with self._lock:
            note = Notification(
                seq=next(self._seq),
                kind=kind,
                timestamp=timestamp,
                event_id=event_id,
                participant=participant,
                payload=payload,
            )
            if self._keep_history:
                self.history.append(note)
        log.info(kind.value, seq=note.seq, event_id=event_id, participant=participant, **payload)
        for sink in self._sinks:
            try:
                sink(note)
            except Exception:
                log.exception("notification_sink_failed", seq=note.seq, kind=kind.value)
        return note

    def of_kind(self, kind: NotificationKind) -> list[Notification]:
        return [n for n in self.history if n.kind == kind]
