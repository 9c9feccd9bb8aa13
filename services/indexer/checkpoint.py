from __future__ import annotations

import logging

from services.indexer.records import TRANSFERS

LOGGER = logging.getLogger('golem_indexer.checkpoint')


class CheckpointResolver:
    """Derives the next scan start from what the sink already holds.

    There is no local cursor. Sink errors propagate so a transient outage
    never sends the scanner back to genesis.
    """

    def __init__(self, sink, genesis_block: int, measurement: str = TRANSFERS.name) -> None:
        self.sink = sink
        self.genesis_block = genesis_block
        self.measurement = measurement

    def resolve_start_block(self) -> int:
        LOGGER.info('selecting max block number measurement=%s', self.measurement)
        max_block = self.sink.query_max(self.measurement, 'block_number')
        if max_block is None:
            LOGGER.info('no persisted records; starting from genesis block=%s', self.genesis_block)
            return self.genesis_block
        return max_block
