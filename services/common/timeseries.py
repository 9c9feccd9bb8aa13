from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

import clickhouse_connect
from clickhouse_connect.driver.exceptions import ClickHouseError

from services.common.errors import TransientSinkError

LOGGER = logging.getLogger('golem_indexer.timeseries')

_SINK_ERRORS = (ClickHouseError, OSError)


@dataclass(frozen=True)
class MeasurementSchema:
    """A ClickHouse table laid out as a time-series measurement.

    Rows sharing (timestamp, *tags) collapse into one on merge, so a
    rewritten point replaces the earlier copy instead of duplicating it.
    """

    name: str
    tags: dict[str, str] = field(default_factory=dict)
    fields: dict[str, str] = field(default_factory=dict)

    def create_table_sql(self, database: str) -> str:
        columns = ["`timestamp` DateTime('UTC')"]
        columns.extend(f'`{name}` {kind}' for name, kind in self.tags.items())
        columns.extend(f'`{name}` {kind}' for name, kind in self.fields.items())
        order_by = ', '.join(f'`{name}`' for name in ['timestamp', *self.tags])
        return (
            f'CREATE TABLE IF NOT EXISTS `{database}`.`{self.name}` (\n  '
            + ',\n  '.join(columns)
            + f'\n) ENGINE = ReplacingMergeTree ORDER BY ({order_by})'
        )


class ClickHouseSink:
    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str,
        password: str,
        database: str,
        schemas: list[MeasurementSchema] | None = None,
        client_factory: Callable[[], Any] | None = None
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.database = database
        self.schemas = list(schemas or [])
        self._client_factory = client_factory or self._connect_clickhouse
        self._client: Any = None
        self._lock = threading.Lock()

    def _connect_clickhouse(self):
        # Worker threads insert concurrently; a shared session would reject that.
        return clickhouse_connect.get_client(
            host=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            autogenerate_session_id=False
        )

    def _get_client(self):
        with self._lock:
            if self._client is None:
                self._client = self._client_factory()
            return self._client

    def _reset(self) -> None:
        # Other workers may still hold the old client; let it be collected.
        with self._lock:
            self._client = None

    def ensure_database(self, name: str | None = None) -> None:
        database = name or self.database
        try:
            client = self._get_client()
            client.command(f'CREATE DATABASE IF NOT EXISTS `{database}`')
            for schema in self.schemas:
                client.command(schema.create_table_sql(database))
        except _SINK_ERRORS as exc:
            self._reset()
            raise TransientSinkError(f'ensure database {database} failed: {exc}') from exc
        LOGGER.info('clickhouse database ready database=%s measurements=%s', database, len(self.schemas))

    def write_record(
        self,
        measurement: str,
        fields: dict[str, Any],
        tags: dict[str, Any],
        timestamp: datetime
    ) -> None:
        column_names = ['timestamp', *tags.keys(), *fields.keys()]
        row = [timestamp, *tags.values(), *fields.values()]
        try:
            self._get_client().insert(
                f'{self.database}.{measurement}',
                [row],
                column_names=column_names
            )
        except _SINK_ERRORS as exc:
            self._reset()
            raise TransientSinkError(f'write failed: {exc}', measurement=measurement) from exc

    def query_max(self, measurement: str, field_name: str) -> int | None:
        sql = f'SELECT maxOrNull(`{field_name}`) FROM `{self.database}`.`{measurement}`'
        try:
            result = self._get_client().query(sql)
        except _SINK_ERRORS as exc:
            self._reset()
            raise TransientSinkError(f'max({field_name}) query failed: {exc}', measurement=measurement) from exc

        rows = result.result_rows
        if not rows or not rows[0] or rows[0][0] is None:
            return None
        return int(rows[0][0])

    def ping(self) -> None:
        try:
            self._get_client().query('SELECT 1')
        except _SINK_ERRORS as exc:
            self._reset()
            raise TransientSinkError(f'clickhouse unreachable: {exc}') from exc

    def close(self) -> None:
        with self._lock:
            client, self._client = self._client, None
        if client is None:
            return
        try:
            client.close()
        except _SINK_ERRORS:
            LOGGER.warning('closing clickhouse client failed', exc_info=True)
