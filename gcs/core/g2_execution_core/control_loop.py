"""
Component 8: Mission Control Loop
Serialises every inbound notification to the sequencer.

Operator actions, roster updates and completion reports may arrive from
several threads (e.g. the MQTT network thread). They are posted onto one
asyncio.Queue and applied to the sequencer one at a time, in arrival order.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .sequencer import MissionSequencer

log = logging.getLogger(__name__)

# Sequencer methods that may be invoked through the loop.
ACTIONS = frozenset({
    "update_vehicles",
    "mark_vehicle_disconnected",
    "select_mission_type",
    "set_range",
    "set_option",
    "assign_vehicle",
    "unassign_vehicle",
    "set_mission_information",
    "set_require_confirmation",
    "readiness",
    "start",
    "pause",
    "resume",
    "confirm_next",
    "stop",
    "reset",
    "report_task_complete",
})


@dataclass
class Message:
    action: str
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    future: Optional[asyncio.Future] = None


class MissionControlLoop:
    """
    Single consumer of the sequencer's inbound queue.

    submit() is awaited from the event loop and resolves with the
    sequencer's return value or raises its exception. post() is for other
    threads and does not wait.
    """

    def __init__(self, sequencer: MissionSequencer):
        self.sequencer = sequencer
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self.processed = 0

    def _get_queue(self) -> asyncio.Queue:
        # Bound to the running loop on first use.
        if self._queue is None:
            self.loop = asyncio.get_running_loop()
            self._queue = asyncio.Queue()
        return self._queue

    async def submit(self, action: str, *args, **kwargs) -> Any:
        """
        Queues a sequencer call and waits for it to be applied.

        Raises:
            ValueError: If the action is not a sequencer operation.
        """
        if action not in ACTIONS:
            raise ValueError(f"Unknown action '{action}'")
        queue = self._get_queue()
        future = self.loop.create_future()
        await queue.put(Message(action, args, kwargs, future))
        return await future

    def post(self, action: str, *args, **kwargs) -> None:
        """
        Posts a sequencer call from any thread without waiting for it.
        Rejections are logged.

        Raises:
            ValueError: If the action is not a sequencer operation.
            RuntimeError: If the loop is not running yet.
        """
        if action not in ACTIONS:
            raise ValueError(f"Unknown action '{action}'")
        if self.loop is None or not self.loop.is_running():
            raise RuntimeError("Control loop is not running")
        self.loop.call_soon_threadsafe(self._queue.put_nowait, Message(action, args, kwargs))

    def _apply(self, message: Message):
        handler = getattr(self.sequencer, message.action)
        try:
            result = handler(*message.args, **message.kwargs)
        except Exception as e:
            log.warning(f"[ControlLoop] {message.action} rejected: {e}")
            if message.future is not None and not message.future.done():
                message.future.set_exception(e)
            return
        if message.future is not None and not message.future.done():
            message.future.set_result(result)

    async def run(self):
        """Consumes the queue until cancelled."""
        queue = self._get_queue()
        log.info("[ControlLoop] Running")
        try:
            while True:
                message = await queue.get()
                try:
                    self._apply(message)
                    self.processed += 1
                finally:
                    queue.task_done()
        except asyncio.CancelledError:
            log.info(f"[ControlLoop] Shutting down after {self.processed} messages")
            raise

    async def drain(self):
        """Waits until everything queued so far has been applied."""
        await self._get_queue().join()
