"""
Ledger network gateway.

The ledger client (Hedera SDK or any compatible transport) is an external
collaborator.  This module only defines the call/response contract used by
the patient identity and access-control services:

* ``client.execute(contract_id, function_name, params, gas)`` submits a
  transaction and returns a mapping with at least ``transactionId``;
* ``client.query(contract_id, function_name, params, gas)`` runs a read-only
  call and returns its result.

Errors raised by the client are not retried; they propagate to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

from ..config import settings
from ..errors import ServiceUnavailable

logger = logging.getLogger(__name__)


class LedgerClient(Protocol):
    def execute(self, contract_id: str, function_name: str, params: Sequence[Any], gas: int) -> Any:
        ...

    def query(self, contract_id: str, function_name: str, params: Sequence[Any], gas: int) -> Any:
        ...


@dataclass(frozen=True)
class ContractCallResult:
    transaction_id: Optional[str]
    result: Any = None
    status: Optional[str] = None


class LedgerGateway:
    """Thin wrapper that refuses to work without a client handle."""

    def __init__(self, client: Optional[LedgerClient], default_gas: int = settings.LEDGER_DEFAULT_GAS):
        self._client = client
        self.default_gas = default_gas

    @property
    def available(self) -> bool:
        return self._client is not None

    def _require_client(self) -> LedgerClient:
        if self._client is None:
            raise ServiceUnavailable("ledger client is not initialised")
        return self._client

    def execute_contract_function(
        self,
        contract_id: str,
        function_name: str,
        params: Optional[Sequence[Any]] = None,
        gas: Optional[int] = None,
    ) -> ContractCallResult:
        """Submit a state-changing contract call."""
        client = self._require_client()
        if gas is None:
            gas = self.default_gas
        response = client.execute(contract_id, function_name, list(params or ()), gas)
        if isinstance(response, dict):
            tx_id = response.get("transactionId")
            result = response.get("result")
            status = response.get("status")
        else:
            tx_id = getattr(response, "transaction_id", None)
            result = getattr(response, "result", None)
            status = getattr(response, "status", None)
        logger.debug("Executed %s on %s (tx %s)", function_name, contract_id, tx_id)
        return ContractCallResult(
            transaction_id=str(tx_id) if tx_id is not None else None,
            result=result,
            status=str(status) if status is not None else None,
        )

    def call_contract_function(
        self,
        contract_id: str,
        function_name: str,
        params: Optional[Sequence[Any]] = None,
    ) -> ContractCallResult:
        """Run a read-only contract query."""
        client = self._require_client()
        result = client.query(contract_id, function_name, list(params or ()), self.default_gas)
        return ContractCallResult(transaction_id=None, result=result)

    def close(self) -> None:
        client, self._client = self._client, None
        close = getattr(client, "close", None)
        if callable(close):
            close()
