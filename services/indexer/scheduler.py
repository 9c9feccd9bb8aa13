from __future__ import annotations

import logging
import threading
from typing import Callable

from prometheus_client import Counter

from services.common.errors import IngestionDefect, IngestionError, InitializationError, TransientSinkError
from services.indexer.scanner import IngestionCycle

LOGGER = logging.getLogger('golem_indexer.scheduler')

CYCLES_TOTAL = Counter(
    'golem_indexer_cycles_total',
    'Ingestion cycles by outcome',
    ['outcome']
)


class Scheduler:
    """Runs ingestion cycles on a fixed interval once the sink is ready.

    Transient cycle failures are logged and the next tick proceeds. Any other
    fault, raised by a tick or by one of its per-event tasks, is escalated as
    IngestionDefect on the scheduler thread unless ``exit_on_defect`` is off.
    """

    def __init__(
        self,
        *,
        scanner,
        sink,
        database: str,
        poll_interval_seconds: float = 300,
        init_retry_seconds: float = 300,
        exit_on_defect: bool = True,
        wait: Callable[[float], bool] | None = None
    ) -> None:
        self.scanner = scanner
        self.sink = sink
        self.database = database
        self.poll_interval_seconds = poll_interval_seconds
        self.init_retry_seconds = init_retry_seconds
        self.exit_on_defect = exit_on_defect

        self._stop = threading.Event()
        self._wake = threading.Event()
        # Returns True when the scheduler should stop.
        self._wait = wait or self._sleep
        self._defect: BaseException | None = None
        self._defect_lock = threading.Lock()

    def initialize(self) -> None:
        try:
            self.sink.ensure_database(self.database)
        except TransientSinkError as exc:
            raise InitializationError(f'could not ensure database {self.database}: {exc.detail}') from exc

    def start(self) -> None:
        LOGGER.info(
            'scheduler starting database=%s poll_interval_seconds=%s init_retry_seconds=%s',
            self.database,
            self.poll_interval_seconds,
            self.init_retry_seconds
        )

        while True:
            try:
                self.initialize()
                break
            except InitializationError as exc:
                LOGGER.error('initialization failed; retrying in %ss error=%s', self.init_retry_seconds, exc)
                if self._wait(self.init_retry_seconds):
                    LOGGER.info('scheduler stopped before initialization completed')
                    return

        while True:
            self.tick()
            stopped = self._wait(self.poll_interval_seconds)
            self._raise_pending_defect()
            if stopped:
                break

        LOGGER.info('scheduler stopped')

    def tick(self) -> IngestionCycle | None:
        self._raise_pending_defect()

        try:
            cycle = self.scanner.run_ingestion_cycle()
        except IngestionError as exc:
            CYCLES_TOTAL.labels(outcome='failed').inc()
            LOGGER.warning('ingestion cycle aborted; next tick retries from the persisted checkpoint error=%s', exc)
            return None
        except Exception as exc:
            CYCLES_TOTAL.labels(outcome='defect').inc()
            LOGGER.exception('ingestion cycle crashed')
            self._escalate(exc)
            return None

        CYCLES_TOTAL.labels(outcome='dispatched').inc()
        cycle.add_fault_callback(self.report_defect)
        return cycle

    def report_defect(self, exc: BaseException) -> None:
        with self._defect_lock:
            if self._defect is None:
                self._defect = exc
        if self.exit_on_defect:
            self._wake.set()

    def _raise_pending_defect(self) -> None:
        with self._defect_lock:
            exc, self._defect = self._defect, None
        if exc is not None:
            self._escalate(exc)

    def _escalate(self, exc: BaseException) -> None:
        if not self.exit_on_defect:
            LOGGER.error('continuing after ingestion defect error=%r', exc)
            return
        raise IngestionDefect(f'ingestion defect: {exc!r}') from exc

    def _sleep(self, seconds: float) -> bool:
        self._wake.wait(seconds)
        self._wake.clear()
        return self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()
        self._wake.set()
