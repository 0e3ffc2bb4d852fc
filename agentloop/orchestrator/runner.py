"""Run the turn loop on a background thread, away from the presentation loop."""

from __future__ import annotations

import asyncio
import logging
import threading

from agentloop.llm.types import Message
from agentloop.orchestrator.core import LoopState, Orchestrator, RunOutcome
from agentloop.orchestrator.notifications import Failed, NotificationChannel

logger = logging.getLogger(__name__)


class BackgroundRun:
    """
    One turn-loop run executing on a daemon thread with its own event loop.

    The consumer polls ``channel`` (``drain()`` once per frame, or ``get``
    with a timeout) and may call ``stop()`` at any time.  After a stop the
    channel is closed, so the consumer sees nothing more from this run.

    Usage::

        run = BackgroundRun(orchestrator, transcript).start()
        while run.is_alive():
            for note in run.channel.drain():
                render(note)
    """

    def __init__(self, orchestrator: Orchestrator, transcript: list[Message]) -> None:
        self.orchestrator = orchestrator
        self.transcript = transcript
        self.channel: NotificationChannel = orchestrator.channel
        self.outcome: RunOutcome | None = None
        self._thread = threading.Thread(
            target=self._main, name="agentloop-run", daemon=True
        )

    def start(self) -> BackgroundRun:
        self._thread.start()
        return self

    def stop(self) -> None:
        """Advisory stop; in-flight tools finish in the background."""
        self.orchestrator.stop()
        self.channel.close()

    def join(self, timeout: float | None = None) -> RunOutcome | None:
        self._thread.join(timeout)
        return self.outcome

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def _main(self) -> None:
        try:
            self.outcome = asyncio.run(self.orchestrator.run(self.transcript))
        except Exception as exc:
            # run() handles provider and tool failures itself; this is a bug.
            logger.exception("Turn loop crashed")
            self.channel.send(Failed(f"internal error: {exc}"))
            self.outcome = RunOutcome(
                state=LoopState.ABORTED, turns=0, reason="crashed", error=str(exc)
            )
