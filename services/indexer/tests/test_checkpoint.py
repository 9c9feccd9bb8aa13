import unittest
from datetime import datetime, timezone

from services.common.errors import TransientSinkError
from services.indexer.checkpoint import CheckpointResolver
from services.indexer.tests.fakes import FakeSink

GENESIS = 5385618


class CheckpointResolverTests(unittest.TestCase):
    def test_empty_sink_falls_back_to_genesis(self) -> None:
        resolver = CheckpointResolver(FakeSink(), genesis_block=GENESIS)

        self.assertEqual(resolver.resolve_start_block(), GENESIS)

    def test_resumes_from_max_persisted_block(self) -> None:
        sink = FakeSink()
        ts = datetime(2018, 3, 25, tzinfo=timezone.utc)
        sink.write_record('transfers', {'block_number': 5400000}, {'transaction_index': 0}, ts)
        sink.write_record('transfers', {'block_number': 5400123}, {'transaction_index': 1}, ts)

        resolver = CheckpointResolver(sink, genesis_block=GENESIS)

        self.assertEqual(resolver.resolve_start_block(), 5400123)

    def test_sink_failure_is_not_defaulted_to_genesis(self) -> None:
        sink = FakeSink()
        sink.query_error = TransientSinkError('timeout', measurement='transfers')
        resolver = CheckpointResolver(sink, genesis_block=GENESIS)

        with self.assertRaises(TransientSinkError):
            resolver.resolve_start_block()
