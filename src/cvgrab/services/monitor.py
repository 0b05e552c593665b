from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from cvgrab.errors import MailboxConnectionError
from cvgrab.sources.email_imap import MailboxSession, filter_same_day

from .ingest import IngestionService

TRIGGER_STARTUP = "startup"
TRIGGER_TIMER = "timer"
TRIGGER_PUSH = "push"


class MailboxMonitor:
    """Runs ingestion passes on a fixed timer and on IMAP IDLE pushes, one pass at a time.

    Blocking mailbox, storage and OCR work runs in a worker thread through
    ``asyncio.to_thread``; the lock guarantees that a push arriving during a
    timer pass (or the other way round) never starts a second, overlapping pass.

    Usage::

        monitor = MailboxMonitor(session, service, logger=logger)
        await monitor.run()
    """

    def __init__(
        self,
        session: MailboxSession,
        service: IngestionService,
        *,
        poll_interval: float = 10.0,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.session = session
        self.service = service
        self.poll_interval = poll_interval
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._pass_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._push_supported = False

    def stop(self) -> None:
        """Ask the loop to stop after the current pass or wait."""
        self.logger.info("Shutdown requested")
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def poll_once(self) -> dict[str, int]:
        """Blocking pass: enumerate, keep today's messages, ingest them."""
        descriptors = self.session.enumerate()
        todays = filter_same_day(descriptors, now=self._clock(), logger=self.logger)
        self.logger.info("%s of %s message(s) are from today", len(todays), len(descriptors))
        return self.service.process_batch(todays, self.session.fetch_raw)

    async def run_pass(self, trigger: str) -> dict[str, int] | None:
        if self._pass_lock.locked():
            self.logger.debug("Pass already running, %s trigger coalesced", trigger)
            return None

        async with self._pass_lock:
            self.logger.info("Ingestion pass started (%s)", trigger)
            try:
                if not self.session.connected:
                    await self._connect()
                stats = await asyncio.to_thread(self.poll_once)
            except MailboxConnectionError as exc:
                self.logger.error("Mailbox unavailable, retrying on next tick: %s", exc)
                if self.session.connected:
                    await self._recover()
                return None
            except Exception as exc:  # noqa: BLE001
                self.logger.error("Ingestion pass failed: %s: %s", exc.__class__.__name__, exc)
                await self._recover()
                return None

            self.logger.info("Ingestion pass finished (%s): %s", trigger, stats)
            return stats

    async def _connect(self, reconnect: bool = False) -> None:
        await asyncio.to_thread(self.session.reconnect if reconnect else self.session.connect)
        self._push_supported = await asyncio.to_thread(self.session.supports_push)

    async def _recover(self) -> None:
        try:
            await self._connect(reconnect=True)
            self.logger.info("Reconnected to IMAP server")
        except Exception as exc:  # noqa: BLE001
            self.logger.error("Reconnection failed, retrying on next tick: %s", exc)

    async def _interruptible_sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _wait_for_trigger(self, deadline: float) -> str:
        """Block until the next timer tick or a server push, whichever comes first."""
        loop = asyncio.get_running_loop()
        while not self.stopping:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return TRIGGER_TIMER
            if not (self._push_supported and self.session.connected):
                await self._interruptible_sleep(remaining)
                continue
            try:
                pushed = await asyncio.to_thread(self.session.wait_for_new_mail, remaining)
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("IDLE wait failed: %s", exc)
                await self._recover()
                continue
            if pushed:
                self.logger.info("New mail announced by server")
                return TRIGGER_PUSH
        return TRIGGER_TIMER

    async def start(self) -> None:
        """Connect and select the mailbox; MailboxConnectionError is fatal here."""
        await self._connect()
        self.logger.info("IMAP IDLE push %s", "enabled" if self._push_supported else "not supported")

    async def run(self) -> None:
        await self.start()
        loop = asyncio.get_running_loop()
        try:
            await self.run_pass(TRIGGER_STARTUP)
            next_tick = loop.time() + self.poll_interval
            while not self.stopping:
                trigger = await self._wait_for_trigger(next_tick)
                if self.stopping:
                    break
                await self.run_pass(trigger)
                if trigger == TRIGGER_TIMER:
                    next_tick += self.poll_interval
                    if next_tick <= loop.time():
                        next_tick = loop.time() + self.poll_interval
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        self._stop_event.set()
        async with self._pass_lock:
            await asyncio.to_thread(self.session.close)
        self.logger.info("Mailbox monitoring stopped")
