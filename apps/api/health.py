from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass

LOGGER = logging.getLogger('golem_indexer.health')


@dataclass(frozen=True)
class HealthStatus:
    healthy: bool
    reason: str | None = None


class HealthReporter:
    """Liveness check over the node and the time-series store.

    Both checks run concurrently and share one deadline, so a hung
    dependency cannot hold the HTTP request open past ``timeout_seconds``.
    """

    def __init__(self, source, sink, timeout_seconds: float = 5) -> None:
        self.source = source
        self.sink = sink
        self.timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix='health-check')

    def check_health(self) -> HealthStatus:
        checks = {
            'clickhouse': self.sink.ping,
            'node': self.source.get_current_block_number
        }
        futures = {name: self._executor.submit(check) for name, check in checks.items()}
        deadline = time.monotonic() + self.timeout_seconds

        failures: list[str] = []
        for name, future in futures.items():
            remaining = max(0.0, deadline - time.monotonic())
            try:
                future.result(timeout=remaining)
            except FutureTimeoutError:
                failures.append(f'{name} check timed out after {self.timeout_seconds}s')
            except Exception as exc:  # noqa: BLE001
                failures.append(f'{name} check failed: {exc}')

        if failures:
            reason = '; '.join(failures)
            LOGGER.warning('healthcheck failed reason=%s', reason)
            return HealthStatus(healthy=False, reason=reason)
        return HealthStatus(healthy=True)

    def close(self) -> None:
        self._executor.shutdown(wait=False)
