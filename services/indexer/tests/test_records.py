import unittest
from datetime import datetime, timezone
from decimal import Decimal

from services.common.chain import BlockMetadata
from services.indexer.records import TRANSFERS, normalize_transfer
from services.indexer.tests.fakes import make_event


class NormalizeTransferTests(unittest.TestCase):
    def test_scales_amount_by_token_decimals(self) -> None:
        event = make_event(5385620, value=2_000000000000000000)
        record = normalize_transfer(event, BlockMetadata(number=5385620, timestamp=1522000000), decimals=18)

        self.assertEqual(record.amount, Decimal('2'))
        self.assertEqual(record.amount, 2.0)
        self.assertEqual(record.fields()['value'], '2000000000000000000')

    def test_keeps_sub_unit_precision(self) -> None:
        event = make_event(10, value=1)
        record = normalize_transfer(event, BlockMetadata(number=10, timestamp=0))

        self.assertEqual(record.amount, Decimal('1E-18'))

    def test_time_axis_comes_from_block(self) -> None:
        event = make_event(10, transaction_index=4, log_index=7)
        record = normalize_transfer(event, BlockMetadata(number=10, timestamp=1522000000))

        self.assertEqual(record.timestamp, datetime(2018, 3, 25, 17, 46, 40, tzinfo=timezone.utc))
        self.assertEqual(record.fields()['block_timestamp'], 1522000000)
        self.assertEqual(record.tags(), {'transaction_index': 4, 'transaction_log_index': 7})

    def test_fields_match_measurement_schema(self) -> None:
        record = normalize_transfer(make_event(10), BlockMetadata(number=10, timestamp=0))

        self.assertEqual(set(record.fields()), set(TRANSFERS.fields))
        self.assertEqual(set(record.tags()), set(TRANSFERS.tags))
        self.assertEqual(record.fields()['from'], '0x1111111111111111111111111111111111111111')
        self.assertEqual(record.fields()['to'], '0x2222222222222222222222222222222222222222')
        self.assertEqual(record.fields()['block_number'], 10)

    def test_rejects_block_that_does_not_enclose_event(self) -> None:
        with self.assertRaises(ValueError):
            normalize_transfer(make_event(10), BlockMetadata(number=11, timestamp=0))
