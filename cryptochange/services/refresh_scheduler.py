"""
Планировщик обновления цен
"""

import asyncio
import inspect
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cryptochange.config.settings import ConverterConfig
from cryptochange.errors import FetchError, PersistenceError
from cryptochange.models import PriceSnapshot, RefreshOutcome
from cryptochange.services.rate_store import RateStore
from cryptochange.utils.logger import PerformanceLogger, log_error_with_context

logger = logging.getLogger(__name__)

FAILURE_NOTICE = "Не удалось обновить курсы"


class RefreshState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    BACKOFF_WAIT = "backoff_wait"  # последний цикл неудачен, ждем следующий интервал


class RefreshScheduler:
    """
    Периодически запрашивает цены и публикует результат подписчикам.

    Две независимые задачи APScheduler:
      price_refresh: запрос цен через REFRESH_INTERVAL секунд после
                     окончания предыдущего цикла;
      elapsed_tick: раз в секунду пересчитывает "сколько прошло" с
                    последнего успешного обновления.
    Снимок цен и время успеха меняет только цикл обновления, и только
    заменой целого объекта.
    """

    def __init__(
        self,
        fetcher,
        store: RateStore,
        refresh_interval: int = None,
        tick_interval: int = None,
        clock: Callable[[], float] = time.time
    ):
        self.fetcher = fetcher
        self.store = store
        self.refresh_interval = refresh_interval or ConverterConfig.REFRESH_INTERVAL
        self.tick_interval = tick_interval or ConverterConfig.TICK_INTERVAL
        self._clock = clock

        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._state = RefreshState.IDLE
        self._initial_task: Optional[asyncio.Task] = None

        self._snapshot: PriceSnapshot = store.load_cached_prices()
        self._last_success: Optional[float] = store.load_last_success()

        self._listeners: List[Callable] = []
        self._tick_listeners: List[Callable] = []

        self._update_count = 0
        self._error_count = 0
        self._last_error: Optional[str] = None

    # ---------- состояние ----------

    @property
    def snapshot(self) -> PriceSnapshot:
        return self._snapshot

    @property
    def last_success(self) -> Optional[float]:
        return self._last_success

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    def seconds_since_last_success(self) -> Optional[int]:
        if self._last_success is None:
            return None
        return max(0, int(self._clock() - self._last_success))

    # ---------- подписки ----------

    def subscribe(self, callback: Callable[[RefreshOutcome], Any]) -> Callable[[], None]:
        """Подписка на результат каждого цикла; возвращает функцию отписки"""
        return self._add_listener(self._listeners, callback)

    def subscribe_tick(self, callback: Callable[[Optional[int]], Any]) -> Callable[[], None]:
        """Подписка на секундный тикер (секунды с последнего успеха или None)"""
        return self._add_listener(self._tick_listeners, callback)

    @staticmethod
    def _add_listener(listeners: List[Callable], callback: Callable) -> Callable[[], None]:
        listeners.append(callback)

        def unsubscribe():
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    async def _notify(self, listeners: List[Callable], payload):
        for callback in list(listeners):
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Listener {callback!r} failed: {e}", exc_info=True)

    # ---------- запуск / остановка ----------

    async def start(self):
        """Запускает обе задачи; первое обновление выполняется сразу"""
        if self._running:
            logger.warning("Refresh scheduler already running")
            return

        logger.info(
            f"Starting refresh scheduler: refresh every {self.refresh_interval}s, "
            f"tick every {self.tick_interval}s"
        )

        self.scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop())
        self.scheduler.add_job(
            self.refresh,
            trigger=IntervalTrigger(seconds=self.refresh_interval),
            id='price_refresh',
            name='Refresh crypto prices',
            replace_existing=True,
            max_instances=1,  # Не запускать параллельно
            coalesce=True
        )
        self.scheduler.add_job(
            self._tick,
            trigger=IntervalTrigger(seconds=self.tick_interval),
            id='elapsed_tick',
            name='Elapsed time since last update',
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        self._running = True

        self._initial_task = asyncio.create_task(self.refresh())
        await self._tick()

    async def stop(self):
        """Останавливает обе задачи; после возврата ни одна не сработает"""
        if not self._running:
            return

        logger.info("Stopping refresh scheduler")
        self._running = False

        if self._initial_task and not self._initial_task.done():
            self._initial_task.cancel()
            try:
                await self._initial_task
            except asyncio.CancelledError:
                pass
        self._initial_task = None

        self.scheduler.shutdown(wait=False)
        self.scheduler = None
        logger.info("Refresh scheduler stopped")

    # ---------- задачи ----------

    async def refresh(self) -> Optional[RefreshOutcome]:
        """
        Один цикл обновления.

        Успех: новый снимок, запись в кэш, LastUpdate = сейчас.
        Ошибка: LastUpdate не меняется, снимок берется из кэша (если кэш
        пуст, остается прежний), подписчики получают уведомление.
        Возвращает None, если цикл уже выполняется.
        """
        if self._state == RefreshState.FETCHING:
            logger.warning("Price refresh already in progress, skipping")
            return None

        self._state = RefreshState.FETCHING
        try:
            with PerformanceLogger(logger, "CoinGecko price fetch"):
                snapshot = await self.fetcher.fetch_prices()
        except asyncio.CancelledError:
            self._state = RefreshState.IDLE
            raise
        except FetchError as e:
            outcome = self._handle_failure(e)
        except Exception as e:
            logger.error(f"Unexpected error while fetching prices: {e}", exc_info=True)
            outcome = self._handle_failure(e)
        else:
            outcome = self._handle_success(snapshot)

        self._restart_interval()
        await self._notify(self._listeners, outcome)
        return outcome

    def _restart_interval(self):
        """Следующий цикл через refresh_interval секунд после окончания текущего"""
        if not self._running or self.scheduler is None:
            return
        try:
            self.scheduler.reschedule_job(
                'price_refresh',
                trigger=IntervalTrigger(seconds=self.refresh_interval)
            )
        except JobLookupError:
            logger.warning("price_refresh job not found, interval not restarted")

    def _handle_success(self, snapshot: PriceSnapshot) -> RefreshOutcome:
        now = self._clock()

        self._snapshot = snapshot
        self._last_success = now
        self._state = RefreshState.IDLE
        self._update_count += 1

        for save, value in ((self.store.save_cached_prices, snapshot), (self.store.save_last_success, now)):
            try:
                save(value)
            except PersistenceError as e:
                log_error_with_context(logger, "Failed to persist refresh result", e, operation=e.operation)

        logger.info(f"Prices updated: {snapshot.as_dict()}")
        return RefreshOutcome(success=True, snapshot=snapshot, finished_at=now)

    def _handle_failure(self, error: Exception) -> RefreshOutcome:
        self._error_count += 1
        self._last_error = str(error)

        cached = self.store.load_cached_prices()
        if not cached.is_empty:
            self._snapshot = cached
        self._state = RefreshState.BACKOFF_WAIT

        logger.warning(
            f"Price refresh failed, showing cached prices {self._snapshot.as_dict()}: {error}"
        )
        return RefreshOutcome(
            success=False,
            snapshot=self._snapshot,
            finished_at=self._clock(),
            error=str(error),
            notice=FAILURE_NOTICE
        )

    async def _tick(self) -> Optional[int]:
        seconds = self.seconds_since_last_success()
        await self._notify(self._tick_listeners, seconds)
        return seconds

    def get_status(self) -> Dict[str, Any]:
        """Возвращает статус планировщика"""
        jobs = []
        if self._running and self.scheduler:
            for job in self.scheduler.get_jobs():
                jobs.append({
                    'id': job.id,
                    'name': job.name,
                    'next_run': job.next_run_time.isoformat() if job.next_run_time else None
                })

        return {
            'running': self._running,
            'state': self._state.value,
            'jobs': jobs,
            'last_success': self._last_success,
            'seconds_since_last_success': self.seconds_since_last_success(),
            'update_count': self._update_count,
            'error_count': self._error_count,
            'last_error': self._last_error,
            'config': {
                'refresh_interval': self.refresh_interval,
                'tick_interval': self.tick_interval,
            }
        }
