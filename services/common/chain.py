from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import Web3Exception

from services.common.errors import TransientSourceError
from services.common.metrics import TRANSFERS_FAILED_TOTAL

LOGGER = logging.getLogger('golem_indexer.chain')

BATCH_TRANSFER_SIGNATURE = 'BatchTransfer(address,address,uint256,uint64)'

_SOURCE_ERRORS = (Web3Exception, RequestException, ValueError, OSError)
_DECODE_ERRORS = (DecodingError, IndexError, KeyError, ValueError)


@dataclass(frozen=True)
class TransferEvent:
    sender: str
    recipient: str
    value: int
    closure_time: int
    block_number: int
    transaction_index: int
    log_index: int
    transaction_hash: str = ''


@dataclass(frozen=True)
class BlockMetadata:
    number: int
    timestamp: int


def _hex_prefixed(value: Any) -> str:
    raw = value.hex() if hasattr(value, 'hex') else str(value)
    if raw.startswith('0x'):
        return raw
    return f'0x{raw}'


def _topic_to_address(topic: Any) -> str:
    hex_topic = topic.hex() if hasattr(topic, 'hex') else str(topic)
    return Web3.to_checksum_address(f"0x{hex_topic[-40:]}")


def event_topic(signature: str) -> str:
    return _hex_prefixed(Web3.keccak(text=signature))


def decode_batch_transfer(log: Any) -> TransferEvent:
    value, closure_time = decode(['uint256', 'uint64'], bytes(log['data']))
    return TransferEvent(
        sender=_topic_to_address(log['topics'][1]),
        recipient=_topic_to_address(log['topics'][2]),
        value=int(value),
        closure_time=int(closure_time),
        block_number=int(log['blockNumber']),
        transaction_index=int(log['transactionIndex']),
        log_index=int(log['logIndex']),
        transaction_hash=_hex_prefixed(log.get('transactionHash', ''))
    )


_DECODERS = {
    event_topic(BATCH_TRANSFER_SIGNATURE): decode_batch_transfer
}


class ChainEventSource:
    """Reads BatchTransfer logs and block headers from an EVM node.

    Every node failure is re-raised as TransientSourceError with the block
    range (or block number) that was being requested.
    """

    def __init__(self, rpc_url: str, request_timeout: int = 10, web3: Web3 | None = None) -> None:
        self.rpc_url = rpc_url
        self.web3 = web3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={'timeout': request_timeout}))

    def get_current_block_number(self) -> int:
        try:
            return int(self.web3.eth.block_number)
        except _SOURCE_ERRORS as exc:
            raise TransientSourceError(f'block number request failed: {exc}') from exc

    def get_past_events(
        self,
        contract_address: str,
        event_signature: str,
        from_block: int,
        to_block: int
    ) -> list[TransferEvent]:
        topic = event_topic(event_signature)
        decoder = _DECODERS.get(topic)
        if decoder is None:
            raise ValueError(f'unsupported event signature: {event_signature}')

        try:
            tip = int(self.web3.eth.block_number)
            if from_block > tip:
                LOGGER.info('range starts beyond chain tip from_block=%s tip=%s', from_block, tip)
                return []
            to_block = min(to_block, tip)

            logs = self.web3.eth.get_logs(
                {
                    'fromBlock': from_block,
                    'toBlock': to_block,
                    'address': Web3.to_checksum_address(contract_address),
                    'topics': [topic]
                }
            )
        except _SOURCE_ERRORS as exc:
            raise TransientSourceError(
                f'event request failed: {exc}',
                from_block=from_block,
                to_block=to_block
            ) from exc

        events: list[TransferEvent] = []
        for log in logs:
            try:
                events.append(decoder(log))
            except _DECODE_ERRORS as exc:
                LOGGER.warning(
                    'undecodable log skipped block=%s tx_index=%s log_index=%s error=%r',
                    log.get('blockNumber'),
                    log.get('transactionIndex'),
                    log.get('logIndex'),
                    exc
                )
                TRANSFERS_FAILED_TOTAL.labels(stage='decode').inc()
        return events

    def get_block(self, block_number: int) -> BlockMetadata:
        try:
            block = self.web3.eth.get_block(block_number)
        except _SOURCE_ERRORS as exc:
            raise TransientSourceError(
                f'block request failed: {exc}',
                block_number=block_number
            ) from exc
        return BlockMetadata(number=block_number, timestamp=int(block['timestamp']))
