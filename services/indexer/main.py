from __future__ import annotations

import logging
import os
import threading

import uvicorn
from prometheus_client import start_http_server

from apps.api.health import HealthReporter
from apps.api.main import create_app
from services.common.chain import ChainEventSource
from services.common.errors import IngestionDefect
from services.common.timeseries import ClickHouseSink
from services.indexer.checkpoint import CheckpointResolver
from services.indexer.config import Settings, get_settings
from services.indexer.records import TRANSFERS
from services.indexer.scanner import RangeScanner
from services.indexer.scheduler import Scheduler

LOGGER = logging.getLogger('golem_indexer.main')


class IndexerService:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.source = ChainEventSource(settings.rpc_url, request_timeout=settings.rpc_timeout_seconds)
        self.sink = ClickHouseSink(
            host=settings.clickhouse_host,
            port=settings.clickhouse_port,
            username=settings.clickhouse_username,
            password=settings.clickhouse_password,
            database=settings.clickhouse_database,
            schemas=[TRANSFERS]
        )
        self.scanner = RangeScanner(
            source=self.source,
            sink=self.sink,
            checkpoint=CheckpointResolver(self.sink, settings.genesis_block),
            contract_address=settings.contract_address,
            window_size=settings.window_size,
            max_workers=settings.max_concurrent_events
        )
        self.scheduler = Scheduler(
            scanner=self.scanner,
            sink=self.sink,
            database=settings.clickhouse_database,
            poll_interval_seconds=settings.poll_interval_seconds,
            init_retry_seconds=settings.init_retry_seconds,
            exit_on_defect=settings.exit_on_defect
        )
        self.reporter = HealthReporter(self.source, self.sink, timeout_seconds=settings.health_timeout_seconds)
        self._http: uvicorn.Server | None = None

    def _serve_health(self) -> None:
        app = create_app(self.reporter, title=self.settings.service_name)
        config = uvicorn.Config(
            app,
            host=self.settings.health_host,
            port=self.settings.health_port,
            log_level='warning',
            access_log=False
        )
        self._http = uvicorn.Server(config)
        threading.Thread(target=self._http.run, name='healthcheck-http', daemon=True).start()
        LOGGER.info('healthcheck listening on %s:%s', self.settings.health_host, self.settings.health_port)

    def run(self) -> None:
        LOGGER.info(
            'starting service=%s contract=%s genesis_block=%s window_size=%s rpc_url=%s clickhouse=%s:%s',
            self.settings.service_name,
            self.settings.contract_address,
            self.settings.genesis_block,
            self.settings.window_size,
            self.settings.rpc_url,
            self.settings.clickhouse_host,
            self.settings.clickhouse_port
        )

        if self.settings.metrics_port > 0:
            start_http_server(self.settings.metrics_port)
            LOGGER.info('metrics listening on :%s', self.settings.metrics_port)

        self._serve_health()
        try:
            self.scheduler.start()
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        self.scheduler.stop()
        if self._http is not None:
            self._http.should_exit = True
        self.scanner.close()
        self.reporter.close()
        self.sink.close()


def main() -> None:
    logging.basicConfig(
        level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    settings = get_settings()
    try:
        IndexerService(settings).run()
    except IngestionDefect:
        LOGGER.critical('ingestion defect; exiting so the process restarts from the persisted checkpoint', exc_info=True)
        raise SystemExit(1)
    except KeyboardInterrupt:
        LOGGER.info('interrupted; shutting down')


if __name__ == '__main__':
    main()
