from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, localcontext
from typing import Any

from services.common.chain import BlockMetadata, TransferEvent
from services.common.timeseries import MeasurementSchema

GNT_DECIMALS = 18

TRANSFERS = MeasurementSchema(
    name='transfers',
    tags={
        'transaction_index': 'UInt32',
        'transaction_log_index': 'UInt32'
    },
    fields={
        'from': 'String',
        'to': 'String',
        'value': 'String',
        'amount': 'Decimal(76, 18)',
        'closure_time': 'UInt64',
        'block_number': 'UInt64',
        'block_timestamp': 'UInt64'
    }
)


def _to_decimal(raw_amount: int, decimals: int) -> Decimal:
    if decimals < 0:
        decimals = 0
    # Decimal contexts are per thread; uint256 needs 78 digits on every worker.
    with localcontext() as ctx:
        ctx.prec = 78
        return Decimal(raw_amount) / (Decimal(10) ** decimals)


def _to_timestamp(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


@dataclass(frozen=True)
class TransferRecord:
    sender: str
    recipient: str
    value: int
    amount: Decimal
    closure_time: int
    block_number: int
    block_timestamp: int
    timestamp: datetime
    transaction_index: int
    transaction_log_index: int

    def fields(self) -> dict[str, Any]:
        return {
            'from': self.sender,
            'to': self.recipient,
            'value': str(self.value),
            'amount': self.amount,
            'closure_time': self.closure_time,
            'block_number': self.block_number,
            'block_timestamp': self.block_timestamp
        }

    def tags(self) -> dict[str, Any]:
        return {
            'transaction_index': self.transaction_index,
            'transaction_log_index': self.transaction_log_index
        }


def normalize_transfer(event: TransferEvent, block: BlockMetadata, decimals: int = GNT_DECIMALS) -> TransferRecord:
    if block.number != event.block_number:
        raise ValueError(f'block {block.number} does not enclose event from block {event.block_number}')

    return TransferRecord(
        sender=event.sender,
        recipient=event.recipient,
        value=event.value,
        amount=_to_decimal(event.value, decimals),
        closure_time=event.closure_time,
        block_number=event.block_number,
        block_timestamp=block.timestamp,
        timestamp=_to_timestamp(block.timestamp),
        transaction_index=event.transaction_index,
        transaction_log_index=event.log_index
    )
