from __future__ import annotations


class IngestionError(Exception):
    """Recoverable failure talking to the node or the store."""


class TransientSourceError(IngestionError):
    def __init__(
        self,
        detail: str,
        *,
        from_block: int | None = None,
        to_block: int | None = None,
        block_number: int | None = None
    ) -> None:
        super().__init__(detail)
        self.detail = detail
        self.from_block = from_block
        self.to_block = to_block
        self.block_number = block_number


class TransientSinkError(IngestionError):
    def __init__(self, detail: str, *, measurement: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.measurement = measurement


class InitializationError(Exception):
    pass


class IngestionDefect(Exception):
    """A fault outside the transient taxonomy; the process should restart."""
