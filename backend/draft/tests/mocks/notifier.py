import asyncio

from draft.logic.events import DraftEvent
from draft.session.notifier import Notifier


class RecordingNotifier(Notifier):
    """Keeps every notified event; optionally fails or stalls to exercise best-effort delivery."""

    def __init__(self, *, fail: bool = False, delay: float = 0) -> None:
        self.events: list[DraftEvent] = []
        self.closed = False
        self._fail = fail
        self._delay = delay

    async def notify(self, event: DraftEvent) -> None:
        if self._delay:
            await asyncio.sleep(self._delay)
        self.events.append(event)
        if self._fail:
            raise RuntimeError("notification backend down")

    async def aclose(self) -> None:
        self.closed = True

    def types(self) -> list[str]:
        return [e.type.value for e in self.events]
