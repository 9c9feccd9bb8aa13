from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from dataclasses import dataclass
from typing import Callable

from prometheus_client import Counter, Gauge

from services.common.chain import BATCH_TRANSFER_SIGNATURE, TransferEvent
from services.common.errors import TransientSinkError, TransientSourceError
from services.common.metrics import TRANSFERS_FAILED_TOTAL
from services.indexer.checkpoint import CheckpointResolver
from services.indexer.records import GNT_DECIMALS, TRANSFERS, normalize_transfer

LOGGER = logging.getLogger('golem_indexer.scanner')

TRANSFERS_WRITTEN_TOTAL = Counter(
    'golem_indexer_transfers_written_total',
    'BatchTransfer records written to the time-series store'
)
CHECKPOINT_BLOCK = Gauge(
    'golem_indexer_checkpoint_block',
    'Start block resolved by the most recent ingestion cycle'
)


@dataclass(frozen=True)
class CycleSummary:
    from_block: int
    to_block: int
    dispatched: int
    written: int
    failed: int
    defects: int
    pending: int = 0


class IngestionCycle:
    """Handle over the per-event tasks dispatched by one cycle."""

    def __init__(self, from_block: int, to_block: int, futures: list[Future]) -> None:
        self.from_block = from_block
        self.to_block = to_block
        self.futures = futures

    @property
    def dispatched(self) -> int:
        return len(self.futures)

    def add_fault_callback(self, callback: Callable[[BaseException], None]) -> None:
        def _on_done(future: Future) -> None:
            if future.cancelled():
                return
            exc = future.exception()
            if exc is not None:
                callback(exc)

        for future in self.futures:
            future.add_done_callback(_on_done)

    def wait(self, timeout: float | None = None) -> CycleSummary:
        done, not_done = wait_futures(self.futures, timeout=timeout)

        written = failed = defects = 0
        for future in done:
            if future.cancelled():
                continue
            if future.exception() is not None:
                defects += 1
            elif future.result():
                written += 1
            else:
                failed += 1

        return CycleSummary(
            from_block=self.from_block,
            to_block=self.to_block,
            dispatched=self.dispatched,
            written=written,
            failed=failed,
            defects=defects,
            pending=len(not_done)
        )


class RangeScanner:
    def __init__(
        self,
        *,
        source,
        sink,
        checkpoint: CheckpointResolver,
        contract_address: str,
        window_size: int,
        event_signature: str = BATCH_TRANSFER_SIGNATURE,
        measurement: str = TRANSFERS.name,
        decimals: int = GNT_DECIMALS,
        max_workers: int = 8
    ) -> None:
        if window_size < 1:
            raise ValueError('window_size must be positive')

        self.source = source
        self.sink = sink
        self.checkpoint = checkpoint
        self.contract_address = contract_address
        self.window_size = window_size
        self.event_signature = event_signature
        self.measurement = measurement
        self.decimals = decimals
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='transfer-ingest')

    def run_ingestion_cycle(self) -> IngestionCycle:
        """Scan one window past the checkpoint and dispatch every event found.

        Returns as soon as the events are handed to the worker pool. Call
        ``wait()`` on the result to join them.
        """
        start_block = self.checkpoint.resolve_start_block()
        end_block = start_block + self.window_size
        CHECKPOINT_BLOCK.set(start_block)

        LOGGER.info('get past events from_block=%s to_block=%s', start_block, end_block)
        try:
            events = self.source.get_past_events(
                self.contract_address,
                self.event_signature,
                start_block,
                end_block
            )
        except TransientSourceError as exc:
            LOGGER.warning(
                'event scan failed from_block=%s to_block=%s error=%s',
                start_block,
                end_block,
                exc.detail
            )
            raise

        futures = [self._executor.submit(self._run_task, event) for event in events]
        LOGGER.info(
            'dispatched transfers count=%s from_block=%s to_block=%s',
            len(futures),
            start_block,
            end_block
        )
        return IngestionCycle(start_block, end_block, futures)

    def _run_task(self, event: TransferEvent) -> bool:
        try:
            return self._ingest_event(event)
        except Exception:
            LOGGER.exception(
                'unexpected failure ingesting transfer block=%s tx_index=%s log_index=%s tx_hash=%s',
                event.block_number,
                event.transaction_index,
                event.log_index,
                event.transaction_hash
            )
            raise

    def _ingest_event(self, event: TransferEvent) -> bool:
        try:
            block = self.source.get_block(event.block_number)
        except TransientSourceError as exc:
            self._log_skipped('block lookup', event, exc.detail)
            TRANSFERS_FAILED_TOTAL.labels(stage='block').inc()
            return False

        record = normalize_transfer(event, block, self.decimals)

        try:
            self.sink.write_record(self.measurement, record.fields(), record.tags(), record.timestamp)
        except TransientSinkError as exc:
            self._log_skipped('write', event, exc.detail)
            TRANSFERS_FAILED_TOTAL.labels(stage='write').inc()
            return False

        TRANSFERS_WRITTEN_TOTAL.inc()
        LOGGER.debug(
            'transfer written block=%s tx_index=%s log_index=%s',
            event.block_number,
            event.transaction_index,
            event.log_index
        )
        return True

    def _log_skipped(self, stage: str, event: TransferEvent, detail: str) -> None:
        LOGGER.warning(
            'transfer skipped stage=%s block=%s tx_index=%s log_index=%s tx_hash=%s error=%s',
            stage,
            event.block_number,
            event.transaction_index,
            event.log_index,
            event.transaction_hash,
            detail
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False)
