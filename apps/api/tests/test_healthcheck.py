import threading
import unittest

from fastapi.testclient import TestClient

from apps.api.health import HealthReporter
from apps.api.main import create_app
from services.common.errors import TransientSinkError, TransientSourceError
from services.indexer.tests.fakes import FakeSink, FakeSource


class HealthReporterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.source = FakeSource(tip=5400000)
        self.sink = FakeSink()
        self.reporter = HealthReporter(self.source, self.sink, timeout_seconds=0.5)

    def tearDown(self) -> None:
        self.reporter.close()

    def test_healthy_when_both_checks_succeed(self) -> None:
        status = self.reporter.check_health()

        self.assertTrue(status.healthy)
        self.assertIsNone(status.reason)

    def test_node_failure_is_unhealthy(self) -> None:
        self.source.ping_error = TransientSourceError('connection refused')

        status = self.reporter.check_health()

        self.assertFalse(status.healthy)
        self.assertIn('node check failed: connection refused', status.reason)

    def test_sink_failure_is_unhealthy(self) -> None:
        self.sink.ping_error = TransientSinkError('clickhouse unreachable')

        status = self.reporter.check_health()

        self.assertFalse(status.healthy)
        self.assertIn('clickhouse check failed', status.reason)

    def test_hung_check_times_out(self) -> None:
        release = threading.Event()
        self.addCleanup(release.set)

        def hang() -> int:
            release.wait(5)
            return 0

        self.source.get_current_block_number = hang

        status = self.reporter.check_health()

        self.assertFalse(status.healthy)
        self.assertIn('node check timed out', status.reason)


class HealthcheckEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.source = FakeSource()
        self.sink = FakeSink()
        self.reporter = HealthReporter(self.source, self.sink, timeout_seconds=0.5)
        self.client = TestClient(create_app(self.reporter))

    def tearDown(self) -> None:
        self.reporter.close()

    def test_returns_ok_when_healthy(self) -> None:
        response = self.client.get('/healthcheck')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, 'ok')

    def test_returns_500_when_node_is_down(self) -> None:
        self.source.ping_error = TransientSourceError('connection refused')

        response = self.client.get('/healthcheck')

        self.assertEqual(response.status_code, 500)
        self.assertIn('node', response.text)

    def test_unknown_path_is_404(self) -> None:
        response = self.client.get('/metrics')

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.text, 'Not found')

    def test_healthcheck_answers_any_method_used_by_monitors(self) -> None:
        post = self.client.post('/healthcheck')
        head = self.client.head('/healthcheck')

        self.assertEqual((post.status_code, post.text), (200, 'ok'))
        self.assertEqual(head.status_code, 200)
