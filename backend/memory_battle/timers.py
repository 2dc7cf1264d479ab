"""
Таймер хода и отложенные задачи комнаты (asyncio).
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[None]]


class TurnTimer:
    """
    Отсчёт хода: on_tick вызывается раз в interval секунд.
    start() всегда запускает отсчёт заново, stop() отменяет его.
    """

    def __init__(self, on_tick: Callback, interval: float = 1.0):
        self._on_tick = on_tick
        self._interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.stop()
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval)
                try:
                    await self._on_tick()
                except Exception:
                    # Отсчёт продолжается, иначе комната застрянет в playing
                    logger.exception("Timer: tick failed")
        except asyncio.CancelledError:
            pass


def schedule(delay: float, callback: Callback, owner: set[asyncio.Task] | None = None) -> asyncio.Task:
    """
    Вызвать callback через delay секунд. Задача добавляется в owner,
    чтобы владелец мог отменить её, и убирается оттуда по завершении.
    """

    async def runner() -> None:
        await asyncio.sleep(delay)
        try:
            await callback()
        except Exception:
            logger.exception("Timer: scheduled callback failed")

    task = asyncio.create_task(runner())
    if owner is not None:
        owner.add(task)
        task.add_done_callback(owner.discard)
    return task
