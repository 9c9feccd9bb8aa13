import unittest
from unittest.mock import patch

from services.indexer.config import GOLEM_CONTRACT_ADDRESS, GOLEM_TOKEN_START_BLOCK, get_settings


class SettingsTests(unittest.TestCase):
    def tearDown(self) -> None:
        get_settings.cache_clear()

    def test_defaults(self) -> None:
        with patch.dict('os.environ', {}, clear=True):
            get_settings.cache_clear()
            settings = get_settings()

        self.assertEqual(settings.contract_address, GOLEM_CONTRACT_ADDRESS)
        self.assertEqual(settings.genesis_block, GOLEM_TOKEN_START_BLOCK)
        self.assertEqual(settings.window_size, 20000)
        self.assertEqual(settings.poll_interval_seconds, 300)
        self.assertEqual(settings.init_retry_seconds, 300)
        self.assertEqual(settings.rpc_url, 'http://localhost:8545')
        self.assertEqual(settings.clickhouse_database, 'golem_network_data')
        self.assertTrue(settings.exit_on_defect)

    def test_parity_url_is_accepted_as_rpc_fallback(self) -> None:
        with patch.dict('os.environ', {'PARITY_URL': 'http://parity:8545'}, clear=True):
            get_settings.cache_clear()
            self.assertEqual(get_settings().rpc_url, 'http://parity:8545')

        with patch.dict(
            'os.environ',
            {'PARITY_URL': 'http://parity:8545', 'INDEXER_RPC_URL': 'http://geth:8545'},
            clear=True
        ):
            get_settings.cache_clear()
            self.assertEqual(get_settings().rpc_url, 'http://geth:8545')

    def test_invalid_and_out_of_range_integers(self) -> None:
        with patch.dict(
            'os.environ',
            {
                'INDEXER_WINDOW_SIZE': 'lots',
                'INDEXER_POLL_INTERVAL_SECONDS': '0',
                'INDEXER_EXIT_ON_DEFECT': 'no'
            },
            clear=True
        ):
            get_settings.cache_clear()
            settings = get_settings()

        self.assertEqual(settings.window_size, 20000)
        self.assertEqual(settings.poll_interval_seconds, 1)
        self.assertFalse(settings.exit_on_defect)
