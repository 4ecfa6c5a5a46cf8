"""Cooperative cancellation for agent runs."""

import asyncio

from .errors import RunCancelledError


class CancellationToken:
    """Flag checked by a run at its checkpoints.

    Cancelling does not interrupt anything by itself; the run raises
    `RunCancelledError` the next time it calls `raise_if_cancelled`.
    """

    def __init__(self, run_id: str):
        self.run_id = run_id
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raises RunCancelledError once `cancel` has been called."""
        if self._event.is_set():
            raise RunCancelledError(self.run_id)

    async def wait(self) -> None:
        await self._event.wait()
