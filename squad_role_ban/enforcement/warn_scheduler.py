import asyncio
from typing import Awaitable, Callable, Dict, List

from loguru import logger

Notify = Callable[[str, str], Awaitable[None]]
StillViolating = Callable[[str], Awaitable[bool]]


class WarnScheduler:
    """Repeats a warning to each violating player until told to stop.

    Holds at most one task per player. Every tick asks still_violating
    before warning again, so a task whose player became compliant or
    ineligible ends itself.
    """

    def __init__(self, notify: Notify, interval_seconds: float):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.notify = notify
        self.interval_seconds = interval_seconds
        self._tasks: Dict[str, asyncio.Task] = {}

    def is_active(self, player_id: str) -> bool:
        task = self._tasks.get(player_id)
        return task is not None and not task.done()

    @property
    def active_player_ids(self) -> List[str]:
        return [player_id for player_id in self._tasks if self.is_active(player_id)]

    def start(self, player_id: str, message: str, still_violating: StillViolating) -> None:
        """Arms the repeating warning, replacing any task the player already has."""
        self.stop(player_id)
        self._tasks[player_id] = asyncio.create_task(
            self._run(player_id, message, still_violating),
            name=f"warn-{player_id}",
        )
        logger.debug(f"Armed warnings for {player_id} every {self.interval_seconds}s")

    def stop(self, player_id: str) -> None:
        task = self._tasks.pop(player_id, None)
        if task is None:
            return
        if task is not asyncio.current_task():
            task.cancel()
        logger.debug(f"Stopped warnings for {player_id}")

    def stop_all(self) -> None:
        for player_id in list(self._tasks):
            self.stop(player_id)

    async def _run(self, player_id: str, message: str, still_violating: StillViolating) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval_seconds)

                if not await still_violating(player_id):
                    logger.debug(f"Player {player_id} no longer violating, warnings end")
                    return

                try:
                    await self.notify(player_id, message)
                except Exception as e:
                    # Delivery failures do not change the schedule
                    logger.error(f"Failed to warn {player_id}: {e}")
        finally:
            if self._tasks.get(player_id) is asyncio.current_task():
                del self._tasks[player_id]
