"""
Acquisition strategies and the priority chain that runs them.

A strategy is anything with a ``name`` and ``resolve(context)`` returning an
AdvertisingInfo. StrategyChain tries them in order and keeps the first valid
record.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, NamedTuple, Protocol, Sequence

from .info import INVALID_ADVERTISING_INFO, AdvertisingInfo, is_info_valid

logger = logging.getLogger(__name__)


class AdvertisingInfoStrategy(Protocol):
    """
    One way of obtaining the advertising info for a platform context.

    Failure is signalled by returning an invalid record (or None), not by
    raising.
    """

    name: str

    def resolve(self, context: Any) -> AdvertisingInfo | None: ...


class Resolution(NamedTuple):
    """Result of a chain walk and the name of the strategy that produced it."""

    info: AdvertisingInfo
    strategy: str | None


class FunctionStrategy:
    """
    Adapt a plain callable into a strategy.
    Works with both sync and async functions.

    The callable receives the platform context and may return an
    AdvertisingInfo, None, or an (advertising_id, limit_ad_tracking_enabled)
    tuple.

    Example:
        def from_env(context):
            return os.environ.get("AD_ID", ""), False

        strategy = FunctionStrategy(from_env, name="env")
    """

    def __init__(self, func: Callable[[Any], Any], name: str | None = None):
        self.func = func
        self.name = name or getattr(func, "__name__", repr(func))
        self._is_async = asyncio.iscoroutinefunction(func)

    def resolve(self, context: Any) -> AdvertisingInfo | None:
        if self._is_async:
            # Run on a private loop; callers are expected to be worker threads
            loop = asyncio.new_event_loop()
            try:
                result = loop.run_until_complete(self.func(context))
            finally:
                loop.close()
        else:
            result = self.func(context)
        return _coerce(result)

    def __repr__(self) -> str:
        return f"FunctionStrategy(name={self.name!r})"


def _coerce(result: Any) -> AdvertisingInfo | None:
    if result is None or isinstance(result, AdvertisingInfo):
        return result
    if isinstance(result, tuple) and len(result) == 2:
        advertising_id, limit = result
        if advertising_id is None or isinstance(advertising_id, str):
            return AdvertisingInfo(advertising_id or "", bool(limit))
    raise TypeError(f"Strategy returned unsupported value: {result!r}")


class StrategyChain:
    """
    Ordered list of strategies, highest priority first.

    resolve() never raises: a strategy that raises, or returns something that is
    not a record, is logged and skipped as if it had returned nothing. When
    every strategy fails the invalid sentinel is returned.

    Example:
        chain = StrategyChain([reflection_strategy, service_strategy])
        info = chain.resolve(context)

        @chain.register("fallback")
        def from_settings(context):
            return context.settings.get("ad_id"), False
    """

    def __init__(self, strategies: Sequence[AdvertisingInfoStrategy] = ()):
        self._strategies: list[AdvertisingInfoStrategy] = list(strategies)

    @property
    def strategies(self) -> tuple[AdvertisingInfoStrategy, ...]:
        return tuple(self._strategies)

    def __len__(self) -> int:
        return len(self._strategies)

    def add(self, strategy: AdvertisingInfoStrategy) -> None:
        """Append a strategy at the lowest priority."""
        self._strategies.append(strategy)

    def register(
        self, name: str | None = None
    ) -> Callable[[Callable[[Any], Any]], Callable[[Any], Any]]:
        """Decorator form of add() for plain functions."""

        def decorator(func: Callable[[Any], Any]) -> Callable[[Any], Any]:
            self.add(FunctionStrategy(func, name=name))
            return func

        return decorator

    def resolve(self, context: Any) -> AdvertisingInfo:
        return self.resolve_with_source(context).info

    def resolve_with_source(self, context: Any) -> Resolution:
        for strategy in self._strategies:
            name = getattr(strategy, "name", type(strategy).__name__)
            try:
                info = _coerce(strategy.resolve(context))
            except Exception as e:
                logger.warning(
                    f"AdvertisingInfo strategy {name} failed: {e}", exc_info=True
                )
                continue

            if is_info_valid(info):
                logger.debug(f"Using AdvertisingInfo from {name}")
                return Resolution(info, name)  # type: ignore[arg-type]

        logger.debug("AdvertisingInfo not present")
        return Resolution(INVALID_ADVERTISING_INFO, None)
