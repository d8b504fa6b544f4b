"""Query front end over an oracle runtime API, reporting failures as JSON-RPC errors."""

from __future__ import annotations

from typing import Any, Hashable, Protocol

RUNTIME_ERROR = 1


class OracleRuntimeApi(Protocol):
    """What a client must offer: the best block hash and oracle queries at a block."""

    @property
    def best_hash(self) -> Hashable: ...

    def get_value(self, at: Hashable, provider_id: Any, key: Any) -> Any | None: ...

    def get_all_values(self, at: Hashable, provider_id: Any) -> list[tuple[Any, Any | None]]: ...


class OracleRpcError(Exception):
    """A JSON-RPC server error raised when the runtime call fails."""

    def __init__(self, message: str, data: str | None = None, code: int = RUNTIME_ERROR) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        """The error as a JSON-RPC error object."""
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


class OracleRpc:
    """Serves `oracle_getValue` and `oracle_getAllValues` from a client."""

    def __init__(self, client: OracleRuntimeApi) -> None:
        self.client = client

    def _block(self, at: Hashable | None) -> Hashable:
        return self.client.best_hash if at is None else at

    def get_value(self, provider_id: Any, key: Any, at: Hashable | None = None) -> Any | None:
        """The value for `key` from `provider_id` at block `at` (best block by default)."""
        block = self._block(at)
        try:
            return self.client.get_value(block, provider_id, key)
        except Exception as exc:
            raise OracleRpcError("Unable to get value.", repr(exc)) from exc

    def get_all_values(
        self, provider_id: Any, at: Hashable | None = None
    ) -> list[tuple[Any, Any | None]]:
        """Every (key, value) pair from `provider_id` at block `at` (best block by default)."""
        block = self._block(at)
        try:
            return [tuple(pair) for pair in self.client.get_all_values(block, provider_id)]
        except Exception as exc:
            raise OracleRpcError("Unable to get all values.", repr(exc)) from exc