"""
Submission of the burn-and-release transaction.

The Firepit contract burns the caller's UNI and transfers the listed jar
tokens to the caller: ``release(address[] tokens)``. Signing happens outside
this module; a TransactionSubmitter hands the call to something holding the
key (a local node or a wallet bridge speaking JSON-RPC).
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from eth_abi import encode
from eth_utils import keccak

from .errors import NetworkError, ReleaseBlockedError
from .http_client import RetryingHTTPClient
from .models import JarSnapshot


RELEASE_SIGNATURE = "release(address[])"
RELEASE_SELECTOR = keccak(text=RELEASE_SIGNATURE)[:4]

STATUS_IDLE = "idle"
STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_REVERTED = "reverted"


class TransactionError(NetworkError):
    """Exception raised when a transaction cannot be submitted or tracked."""

    pass


def encode_release_call(tokens: List[str]) -> str:
    """
    Encode call data for ``release(address[])``.

    Args:
        tokens: Token addresses to release

    Returns:
        0x-prefixed hex call data
    """
    arguments = encode(["address[]"], [[token.lower() for token in tokens]])
    return "0x" + (RELEASE_SELECTOR + arguments).hex()


class TransactionSubmitter(ABC):
    """Submits state-changing transactions and reports their confirmation."""

    @abstractmethod
    def send_transaction(self, to: str, data: str) -> str:
        """Submit a transaction and return its hash."""
        pass

    @abstractmethod
    def get_status(self, tx_hash: str) -> str:
        """Return STATUS_PENDING, STATUS_CONFIRMED or STATUS_REVERTED."""
        pass


class RpcTransactionSubmitter(RetryingHTTPClient, TransactionSubmitter):
    """
    Submitter for a JSON-RPC endpoint that signs on behalf of ``sender``.

    Uses ``eth_sendTransaction`` and ``eth_getTransactionReceipt``.
    """

    error_class = TransactionError
    rate_limit_error_class = TransactionError

    def __init__(self, rpc_url: str, sender: str, **retry_options: Any):
        super().__init__(**retry_options)
        self.rpc_url = rpc_url
        self.sender = sender

    def _request(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "method": method, "params": params, "id": 1}
        response = self._execute_with_retry(
            lambda: self.session.post(self.rpc_url, json=payload, timeout=self.timeout)
        )
        data = self._parse_json(response)

        if not isinstance(data, dict):
            raise TransactionError("Unexpected JSON-RPC response shape")

        if "error" in data:
            error = data["error"]
            if not isinstance(error, dict):
                raise TransactionError(f"RPC error: {error}")
            raise TransactionError(
                f"RPC error: {error.get('message', str(error))}",
                status_code=error.get("code"),
            )

        return data.get("result")

    def send_transaction(self, to: str, data: str) -> str:
        tx_hash = self._request(
            "eth_sendTransaction",
            [{"from": self.sender, "to": to, "data": data}],
        )
        if not isinstance(tx_hash, str):
            raise TransactionError(f"Unexpected transaction hash: {tx_hash!r}")
        return tx_hash

    def get_status(self, tx_hash: str) -> str:
        receipt = self._request("eth_getTransactionReceipt", [tx_hash])
        if not receipt:
            return STATUS_PENDING
        if not isinstance(receipt, dict):
            raise TransactionError(f"Unexpected receipt: {receipt!r}")
        return STATUS_CONFIRMED if receipt.get("status") == "0x1" else STATUS_REVERTED


class ReleaseAction:
    """
    The single user action: burn and release, gated on profitability.

    Resubmission is refused while a previous transaction is still pending.
    """

    def __init__(self, submitter: TransactionSubmitter, firepit_address: str):
        self.submitter = submitter
        self.firepit_address = firepit_address
        self.tx_hash: Optional[str] = None
        self.status = STATUS_IDLE

    def poll(self) -> str:
        """Refresh and return the status of the last submitted transaction."""
        if self.tx_hash is not None and self.status == STATUS_PENDING:
            self.status = self.submitter.get_status(self.tx_hash)
        return self.status

    def can_submit(self, snapshot: Optional[JarSnapshot]) -> bool:
        if snapshot is None or snapshot.burn_price <= 0:
            return False
        if not snapshot.is_profitable or not snapshot.tokens:
            return False
        return self.status != STATUS_PENDING

    def submit(self, snapshot: Optional[JarSnapshot]) -> str:
        """
        Submit ``release`` for every token in the snapshot.

        Raises:
            ReleaseBlockedError: If the jar is unavailable, the burn price is
                unknown, the burn is not profitable, or a previous
                transaction is still pending
            TransactionError: If submission fails
        """
        if snapshot is None:
            raise ReleaseBlockedError("Jar holdings are not available yet")
        if snapshot.burn_price <= 0:
            raise ReleaseBlockedError("Burn token price is unknown; cost cannot be checked")
        if not snapshot.is_profitable:
            raise ReleaseBlockedError(
                f"Burn is not profitable (net profit ${snapshot.net_profit:,.2f})"
            )
        if not snapshot.tokens:
            raise ReleaseBlockedError("Jar holds no tokens to release")
        if self.poll() == STATUS_PENDING:
            raise ReleaseBlockedError(f"Transaction {self.tx_hash} is still pending")

        data = encode_release_call(snapshot.token_addresses)
        self.tx_hash = self.submitter.send_transaction(self.firepit_address, data)
        self.status = STATUS_PENDING
        return self.tx_hash
