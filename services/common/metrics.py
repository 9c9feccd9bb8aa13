from __future__ import annotations

from prometheus_client import Counter

TRANSFERS_FAILED_TOTAL = Counter(
    'golem_indexer_transfers_failed_total',
    'BatchTransfer events skipped after a failure',
    ['stage']
)
