"""
AdvertisingInfoProvider - read-through cache over a strategy chain.

Serves the last stored AdvertisingInfo immediately and refreshes it on a
background thread; on a miss, resolves synchronously and stores the result.
Optionally keeps the store warm on an interval with APScheduler.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Any, Callable, ClassVar, Sequence

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .info import INVALID_ADVERTISING_INFO, AdvertisingInfo
from .storage import AdvertisingInfoStore, InMemStore
from .strategies import AdvertisingInfoStrategy, StrategyChain

logger = logging.getLogger(__name__)

REFRESH_THREAD_NAME = "advertising-info-refresh"


# ============================================================================
# Shared Scheduler - Singleton for periodic refresh jobs
# ============================================================================


class _SharedScheduler:
    """
    Shared BackgroundScheduler instance - singleton for all periodic refreshes.
    Ensures only one scheduler runs for all providers.
    """

    _scheduler: ClassVar[BackgroundScheduler | None] = None
    _lock: ClassVar[threading.RLock] = threading.RLock()
    _started: ClassVar[bool] = False

    @classmethod
    def get_scheduler(cls) -> BackgroundScheduler:
        """Get or create the shared background scheduler instance."""
        with cls._lock:
            if cls._scheduler is None:
                cls._scheduler = BackgroundScheduler(daemon=True)
            assert cls._scheduler is not None
        return cls._scheduler

    @classmethod
    def start(cls) -> None:
        """Start the shared background scheduler."""
        with cls._lock:
            if not cls._started:
                cls.get_scheduler().start()
                cls._started = True
                logger.info("Shared BackgroundScheduler started")

    @classmethod
    def remove_job(cls, job_id: str) -> bool:
        """Remove a job if the scheduler exists and knows it."""
        with cls._lock:
            if cls._scheduler is None:
                return False
            try:
                cls._scheduler.remove_job(job_id)
            except JobLookupError:
                return False
            return True

    @classmethod
    def shutdown(cls, wait: bool = True) -> None:
        """Stop the shared background scheduler."""
        with cls._lock:
            if cls._started and cls._scheduler is not None:
                cls._scheduler.shutdown(wait=wait)
                logger.info("Shared BackgroundScheduler stopped")
            cls._started = False
            cls._scheduler = None


# ============================================================================
# AdvertisingInfoProvider
# ============================================================================


class AdvertisingInfoProvider:
    """
    Returns the device's AdvertisingInfo, trying several strategies.

    A valid record in the store is returned straight away and a background
    thread re-resolves it, writing back only if it changed. With no valid
    record the chain runs on the caller's thread and whatever it returns is
    stored, an invalid result clearing the store.

    Example:
        provider = AdvertisingInfoProvider(
            context,
            store=FileStore(data_dir / "adinfo.json"),
            strategies=[ReflectionStrategy(), ServiceStrategy()],
        )
        info = provider.get_advertising_info()

        # Keep the store warm every 30 minutes
        provider.start_periodic_refresh(interval_seconds=1800)
    """

    def __init__(
        self,
        context: Any = None,
        store: AdvertisingInfoStore | None = None,
        strategies: StrategyChain | Sequence[AdvertisingInfoStrategy] = (),
        enable_lock: bool = True,
        on_error: Callable[[Exception], None] | None = None,
    ):
        """
        Initialize provider.

        Args:
            context: Platform context handed to every strategy.
            store: Durable store, defaults to InMemStore.
            strategies: StrategyChain or strategies in priority order.
            enable_lock: Keep at most one background refresh in flight.
            on_error: Optional callback for background refresh failures.
        """
        self.context = context
        self.store = store if store is not None else InMemStore()
        self.chain = (
            strategies
            if isinstance(strategies, StrategyChain)
            else StrategyChain(strategies)
        )
        self.enable_lock = enable_lock
        self.on_error = on_error
        self._refresh_lock = threading.Lock()
        self._job_id = f"{REFRESH_THREAD_NAME}:{uuid.uuid4().hex}"

    def get_advertising_info(self) -> AdvertisingInfo:
        """
        Return the current AdvertisingInfo. Never raises.

        Blocks on store I/O and, on a miss, on every strategy. Do not call it
        from a latency-sensitive thread.
        """
        cached = self._read_store()
        if cached.is_valid():
            logger.debug("Using AdvertisingInfo from store")
            self._refresh_if_needed_async(cached)
            return cached

        logger.debug("No stored AdvertisingInfo, resolving from strategies")
        info = self.chain.resolve(self.context)
        try:
            self._store_info(info)
        except Exception as e:
            logger.error(f"Failed to store AdvertisingInfo: {e}", exc_info=True)
        return info

    def refresh(self, cached: AdvertisingInfo | None = None) -> bool:
        """
        Re-resolve and store the result if it differs from cached.

        Args:
            cached: Record to compare against, read from the store if omitted.

        Returns:
            True if the store was written.
        """
        if cached is None:
            cached = self._read_store()

        fresh = self.chain.resolve(self.context)
        if fresh == cached:
            logger.debug("AdvertisingInfo unchanged, nothing to store")
            return False

        logger.info("AdvertisingInfo changed, storing refreshed value")
        self._store_info(fresh)
        return True

    def _refresh_if_needed_async(self, cached: AdvertisingInfo) -> None:
        if not self._try_acquire():
            logger.debug("AdvertisingInfo refresh already running")
            return

        def refresh_job():
            try:
                self.refresh(cached)
            except Exception as e:
                logger.error(f"Background AdvertisingInfo refresh failed: {e}", exc_info=True)
                self._report_error(e)
            finally:
                self._release()

        thread = threading.Thread(target=refresh_job, name=REFRESH_THREAD_NAME, daemon=True)
        try:
            thread.start()
        except RuntimeError as e:
            self._release()
            logger.error(f"Could not start AdvertisingInfo refresh: {e}")

    def _store_info(self, info: AdvertisingInfo) -> None:
        if info.is_valid():
            self.store.write(info)
        else:
            # Stored value was disproven, drop both keys
            self.store.write(None)

    def _read_store(self) -> AdvertisingInfo:
        try:
            advertising_id, limit = self.store.read()
        except Exception as e:
            logger.warning(f"Failed to read stored AdvertisingInfo: {e}")
            return INVALID_ADVERTISING_INFO
        return AdvertisingInfo(advertising_id or "", bool(limit))

    def _try_acquire(self) -> bool:
        if not self.enable_lock:
            return True
        return self._refresh_lock.acquire(blocking=False)

    def _release(self) -> None:
        if self.enable_lock:
            self._refresh_lock.release()

    def _report_error(self, error: Exception) -> None:
        if self.on_error:
            try:
                self.on_error(error)
            except Exception as err:
                logger.error(f"Error handler failed: {err}")

    # ------------------------------------------------------------------------
    # Periodic refresh
    # ------------------------------------------------------------------------

    def start_periodic_refresh(
        self, interval_seconds: float, run_immediately: bool = False
    ) -> None:
        """
        Refresh the store on an interval using the shared BackgroundScheduler.

        Args:
            interval_seconds: Time between refreshes.
            run_immediately: Run one refresh on the calling thread first.
        """
        if run_immediately:
            self._periodic_job()

        scheduler = _SharedScheduler.get_scheduler()
        scheduler.add_job(
            self._periodic_job,
            trigger=IntervalTrigger(seconds=interval_seconds),
            id=self._job_id,
            replace_existing=True,
        )
        _SharedScheduler.start()
        logger.info(
            f"Periodic AdvertisingInfo refresh scheduled every {interval_seconds}s"
        )

    def stop_periodic_refresh(self) -> bool:
        """Remove this provider's periodic job. Returns False if none was scheduled."""
        removed = _SharedScheduler.remove_job(self._job_id)
        if removed:
            logger.info("Periodic AdvertisingInfo refresh stopped")
        return removed

    def _periodic_job(self) -> None:
        if not self._try_acquire():
            logger.debug("AdvertisingInfo refresh already running, skipping tick")
            return
        try:
            self.refresh()
        except Exception as e:
            logger.error(f"Periodic AdvertisingInfo refresh failed: {e}", exc_info=True)
            self._report_error(e)
        finally:
            self._release()

    @classmethod
    def shutdown(cls, wait: bool = True) -> None:
        """
        Stop the shared BackgroundScheduler.

        Args:
            wait: Whether to wait for running jobs to complete
        """
        _SharedScheduler.shutdown(wait)
