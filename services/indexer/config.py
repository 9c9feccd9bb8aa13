from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

GOLEM_CONTRACT_ADDRESS = '0xA7dfb33234098c66FdE44907e918DAD70a3f211c'
GOLEM_TOKEN_START_BLOCK = 5385618


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {'1', 'true', 'yes', 'y', 'on'}


def _env_int(name: str, default: int, minimum: int | None = None) -> int:
    raw = os.getenv(name, '').strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        value = default
    if minimum is not None:
        value = max(minimum, value)
    return value


@dataclass(frozen=True)
class Settings:
    service_name: str
    rpc_url: str
    rpc_timeout_seconds: int
    contract_address: str
    genesis_block: int
    window_size: int
    poll_interval_seconds: int
    init_retry_seconds: int
    max_concurrent_events: int
    exit_on_defect: bool
    clickhouse_host: str
    clickhouse_port: int
    clickhouse_username: str
    clickhouse_password: str
    clickhouse_database: str
    health_host: str
    health_port: int
    health_timeout_seconds: int
    metrics_port: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    rpc_url = os.getenv('INDEXER_RPC_URL', '').strip() or os.getenv('PARITY_URL', '').strip()

    return Settings(
        service_name=os.getenv('SERVICE_NAME', 'golem-indexer'),
        rpc_url=rpc_url or 'http://localhost:8545',
        rpc_timeout_seconds=_env_int('INDEXER_RPC_TIMEOUT_SECONDS', 10, minimum=1),
        contract_address=os.getenv('INDEXER_CONTRACT_ADDRESS', GOLEM_CONTRACT_ADDRESS).strip(),
        genesis_block=_env_int('INDEXER_GENESIS_BLOCK', GOLEM_TOKEN_START_BLOCK, minimum=0),
        window_size=_env_int('INDEXER_WINDOW_SIZE', 20000, minimum=1),
        poll_interval_seconds=_env_int('INDEXER_POLL_INTERVAL_SECONDS', 300, minimum=1),
        init_retry_seconds=_env_int('INDEXER_INIT_RETRY_SECONDS', 300, minimum=1),
        max_concurrent_events=_env_int('INDEXER_MAX_CONCURRENT_EVENTS', 8, minimum=1),
        exit_on_defect=_env_bool('INDEXER_EXIT_ON_DEFECT', True),
        clickhouse_host=os.getenv('CLICKHOUSE_HOST', 'localhost'),
        clickhouse_port=_env_int('CLICKHOUSE_PORT', 8123),
        clickhouse_username=os.getenv('CLICKHOUSE_USERNAME', 'default'),
        clickhouse_password=os.getenv('CLICKHOUSE_PASSWORD', ''),
        clickhouse_database=os.getenv('CLICKHOUSE_DATABASE', 'golem_network_data'),
        health_host=os.getenv('HEALTH_HOST', '0.0.0.0'),
        health_port=_env_int('HEALTH_PORT', 3000),
        health_timeout_seconds=_env_int('HEALTH_TIMEOUT_SECONDS', 5, minimum=1),
        metrics_port=_env_int('METRICS_PORT', 0, minimum=0)
    )
