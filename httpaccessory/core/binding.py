"""Attribute bindings: get/set actions wired to one attribute.

A binding runs in one of two modes, fixed at construction:

* synchronous (``refresh_interval_s == 0``): every get performs one read
  inline. Concurrent gets share the exchange already in flight.
* polling (``refresh_interval_s > 0``): a per-binding task fires every
  interval and pushes each result into the attribute. A get waits for the
  next tick to start; a get issued while a tick's exchange is in flight
  waits for the tick after it. A tick that comes due while the previous
  exchange is still outstanding is dropped.

Values pushed into the attribute are applied with the write-suppression latch
held, so the attribute's set handler does not send them back out.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from httpaccessory.core.dispatcher import Dispatcher
from httpaccessory.core.errors import AccessoryError
from httpaccessory.core.model import Action, WriteResult

LOGGER = logging.getLogger(__name__)

GetHandler = Callable[[], Awaitable[Any]]
SetHandler = Callable[[Any], Awaitable[WriteResult]]
SleepFn = Callable[[float], Awaitable[None]]


class BindableAttribute(Protocol):
    display_name: str

    def on_get(self, handler: GetHandler) -> None: ...

    def on_set(self, handler: SetHandler) -> None: ...

    async def set_value(self, value: Any) -> None: ...


class AttributeBinding:
    def __init__(
        self,
        attribute: BindableAttribute,
        dispatcher: Dispatcher,
        *,
        get_action: Action | None = None,
        set_action: Action | None = None,
        refresh_interval_s: float = 0.0,
        service_name: str = "",
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if refresh_interval_s < 0:
            raise ValueError("refresh_interval_s must not be negative")
        self.attribute = attribute
        self.dispatcher = dispatcher
        self.get_action = get_action
        self.set_action = set_action
        self.refresh_interval_s = float(refresh_interval_s)
        self.service_name = service_name
        self.write_suppressed = False
        self._sleep = sleep
        self._poll_task: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[str | None] | None = None
        self._waiters: list[asyncio.Future[str | None]] = []

    @property
    def name(self) -> str:
        if self.service_name:
            return f"{self.service_name}.{self.attribute.display_name}"
        return self.attribute.display_name

    @property
    def polling(self) -> bool:
        return self.refresh_interval_s > 0

    @property
    def poll_active(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def attach(self) -> None:
        self.attribute.on_get(self.read)
        self.attribute.on_set(self.write)

    @contextmanager
    def suppress_writes(self) -> Iterator[None]:
        previous = self.write_suppressed
        self.write_suppressed = True
        try:
            yield
        finally:
            self.write_suppressed = previous

    async def read(self) -> str | None:
        if self.polling:
            return await self._next_tick()

        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(self._exchange())
        return await asyncio.shield(self._inflight)

    async def write(self, value: Any) -> WriteResult:
        if self.write_suppressed:
            LOGGER.debug("Suppressed write of %r to %s while applying a read", value, self.name)
            return WriteResult(ok=True, value=value)

        LOGGER.debug("setDispatch %s value=%r", self.name, value)
        return await self.dispatcher.resolve_write(
            self.set_action,
            value,
            attribute=self.attribute.display_name,
            service=self.service_name,
        )

    def arm_poller(self) -> None:
        if not self.polling:
            raise ValueError(f"{self.name} has no refresh interval")
        self.cancel_poller()
        self._poll_task = asyncio.create_task(self._poll_loop(), name=f"poll:{self.name}")

    def cancel_poller(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None

    async def shutdown(self) -> None:
        pending = [task for task in (self._poll_task, self._inflight) if task is not None and not task.done()]
        self.cancel_poller()
        if self._inflight is not None:
            self._inflight.cancel()
        for waiter in self._waiters:
            waiter.cancel()
        self._waiters = []
        await asyncio.gather(*pending, return_exceptions=True)

    async def _next_tick(self) -> str | None:
        if not self.poll_active:
            self.arm_poller()
        waiter: asyncio.Future[str | None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        return await waiter

    async def _poll_loop(self) -> None:
        while True:
            await self._sleep(self.refresh_interval_s)
            if self._inflight is not None and not self._inflight.done():
                LOGGER.debug("Dropping poll tick for %s: previous exchange still outstanding", self.name)
                continue
            self._inflight = asyncio.create_task(self._tick())

    async def _tick(self) -> str | None:
        # Getters that arrive after this point wait for the following tick.
        waiters, self._waiters = self._waiters, []
        value = None
        try:
            value = await self._exchange()
        except Exception:
            LOGGER.exception("Poll tick for %s failed", self.name)
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_result(value)
        return value

    async def _exchange(self) -> str | None:
        result = await self.dispatcher.resolve_read(self.get_action)
        if result.value is None:
            return None
        if not await self._apply(result.value):
            return None
        return result.value

    async def _apply(self, value: str) -> bool:
        with self.suppress_writes():
            try:
                await self.attribute.set_value(value)
            except AccessoryError as exc:
                LOGGER.warning("Could not apply %r to %s: %s", value, self.name, exc)
                return False
        return True
