"""
JSON-RPC ledger client with automatic rate limit handling and retry logic.

This module provides a centralized client for all read-only ledger
interactions: contract view calls, event log queries, receipts and blocks.
A single client instance is injected into every reader and shared across
concurrent fetches.
"""

import random
import time
from concurrent.futures import Executor, Future
from typing import Any, Callable, Dict, List, Optional, Union

import requests


# Retry configuration
DEFAULT_INITIAL_DELAY = 1.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_MAX_RETRIES = 5
DEFAULT_MAX_DELAY = 32.0  # seconds
DEFAULT_JITTER = 0.1  # ±10%
DEFAULT_TIMEOUT = 30.0  # seconds

BlockIdentifier = Union[int, str]


class LedgerRPCError(Exception):
    """Exception raised for ledger JSON-RPC errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LedgerRateLimitError(LedgerRPCError):
    """Exception raised when rate limit is exceeded and retries are exhausted."""

    pass


def to_block_param(block: BlockIdentifier) -> str:
    """Convert a block number or tag ("latest", "earliest") to a JSON-RPC param."""
    if isinstance(block, int):
        return hex(block)
    return block


class LedgerClient:
    """
    Read-only JSON-RPC client with automatic 429 retry handling.

    All ledger interactions go through this class, which handles:
    - HTTP 429 rate limit and 5xx retries with exponential backoff
    - Request/response serialization
    - Translation of JSON-RPC error objects into LedgerRPCError
    """

    def __init__(
        self,
        rpc_url: str,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_delay: float = DEFAULT_MAX_DELAY,
        jitter: float = DEFAULT_JITTER,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the ledger client.

        Args:
            rpc_url: JSON-RPC endpoint URL (may embed an API key)
            initial_delay: Initial delay in seconds for retry backoff
            backoff_multiplier: Multiplier for exponential backoff
            max_retries: Maximum number of retry attempts
            max_delay: Maximum delay cap in seconds
            jitter: Jitter factor (±percentage) to randomize delays
            timeout: Per-request timeout in seconds
        """
        self.rpc_url = rpc_url
        self.initial_delay = initial_delay
        self.backoff_multiplier = backoff_multiplier
        self.max_retries = max_retries
        self.max_delay = max_delay
        self.jitter = jitter
        self.timeout = timeout
        self.session = requests.Session()

    def _sanitize_error_message(self, message: str) -> str:
        """Remove the RPC URL from error messages to prevent credential leakage."""
        return message.replace(self.rpc_url, "[RPC_URL]")

    def _apply_jitter(self, delay: float) -> float:
        """Apply random jitter to a delay value."""
        jitter_range = delay * self.jitter
        return delay + random.uniform(-jitter_range, jitter_range)

    def _execute_with_retry(
        self,
        request_func: Callable[[], requests.Response],
    ) -> requests.Response:
        """
        Execute a request function with retry logic for rate limits and server errors.

        Args:
            request_func: A callable that returns a requests.Response

        Returns:
            The successful response

        Raises:
            LedgerRPCError: For errors after retries exhausted
            LedgerRateLimitError: When rate limit retries are exhausted
        """
        delay = self.initial_delay

        for attempt in range(self.max_retries + 1):
            try:
                response = request_func()

                if response.status_code == 429:
                    if attempt < self.max_retries:
                        time.sleep(self._apply_jitter(min(delay, self.max_delay)))
                        delay *= self.backoff_multiplier
                        continue
                    raise LedgerRateLimitError(
                        "Rate limit exceeded and max retries reached",
                        status_code=429,
                    )

                if response.status_code in (401, 403):
                    raise LedgerRPCError(
                        "RPC endpoint rejected credentials",
                        status_code=response.status_code,
                    )

                if response.status_code >= 500:
                    if attempt < self.max_retries:
                        time.sleep(self._apply_jitter(min(delay, self.max_delay)))
                        delay *= self.backoff_multiplier
                        continue
                    raise LedgerRPCError(
                        f"Server error: {response.status_code}",
                        status_code=response.status_code,
                    )

                response.raise_for_status()
                return response

            except requests.RequestException as e:
                if attempt < self.max_retries:
                    time.sleep(self._apply_jitter(min(delay, self.max_delay)))
                    delay *= self.backoff_multiplier
                    continue
                sanitized_msg = self._sanitize_error_message(str(e))
                raise LedgerRPCError(f"Request failed: {sanitized_msg}") from e

        raise LedgerRPCError("Max retries exceeded")

    def _request(self, method: str, params: List[Any], request_id: int = 1) -> Any:
        """
        Make a JSON-RPC request with automatic 429 retry and exponential backoff.

        Args:
            method: JSON-RPC method name
            params: Method parameters
            request_id: JSON-RPC request ID

        Returns:
            The 'result' field from the JSON-RPC response (may be None)

        Raises:
            LedgerRPCError: For JSON-RPC error objects and transport failures
            LedgerRateLimitError: When rate limit retries are exhausted
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": request_id,
        }

        response = self._execute_with_retry(
            lambda: self.session.post(self.rpc_url, json=payload, timeout=self.timeout)
        )
        try:
            data = response.json()
        except ValueError as e:
            raise LedgerRPCError(f"Malformed response to {method}") from e
        if not isinstance(data, dict):
            raise LedgerRPCError(f"Malformed response to {method}")

        if "error" in data:
            error = data["error"]
            if not isinstance(error, dict):
                raise LedgerRPCError(f"RPC error in {method}: {error}")
            raise LedgerRPCError(
                f"RPC error in {method}: {error.get('message', str(error))}",
                status_code=error.get("code"),
            )

        return data.get("result")

    def call(self, to: str, data: bytes, block: BlockIdentifier = "latest") -> bytes:
        """
        Execute a read-only contract call.

        Args:
            to: Contract address
            data: ABI-encoded call data (selector + arguments)
            block: Block number or tag to execute against

        Returns:
            Raw ABI-encoded return data
        """
        result = self._request(
            "eth_call",
            [{"to": to, "data": "0x" + data.hex()}, to_block_param(block)],
        )
        if not isinstance(result, str):
            raise LedgerRPCError(f"Empty eth_call result from {to}")
        return bytes.fromhex(result[2:] if result.startswith("0x") else result)

    def get_logs(
        self,
        address: str,
        topics: List[Optional[str]],
        from_block: BlockIdentifier = 0,
        to_block: BlockIdentifier = "latest",
    ) -> List[Dict[str, Any]]:
        """
        Query event logs emitted by a contract.

        Args:
            address: Emitting contract address
            topics: Topic filter (topic0 is the event signature hash)
            from_block: First block to include
            to_block: Last block to include

        Returns:
            List of raw log objects as returned by the node

        Raises:
            LedgerRPCError: If the result is not a list of log objects
        """
        result = self._request(
            "eth_getLogs",
            [
                {
                    "address": address,
                    "topics": topics,
                    "fromBlock": to_block_param(from_block),
                    "toBlock": to_block_param(to_block),
                }
            ],
        )
        if result is None:
            return []
        if not isinstance(result, list) or not all(isinstance(log, dict) for log in result):
            raise LedgerRPCError("Malformed eth_getLogs result: expected a list of log objects")
        return result

    def get_transaction_receipt(self, tx_hash: str) -> Dict[str, Any]:
        """
        Get the execution receipt of a mined transaction.

        Raises:
            LedgerRPCError: If the node has no receipt for the hash
        """
        receipt = self._request("eth_getTransactionReceipt", [tx_hash])
        if not isinstance(receipt, dict):
            raise LedgerRPCError(f"Receipt not found for transaction {tx_hash}")
        return receipt

    def get_block(self, number: int) -> Dict[str, Any]:
        """
        Get a block header (without full transaction objects).

        Raises:
            LedgerRPCError: If the node has no such block
        """
        block = self._request("eth_getBlockByNumber", [hex(number), False])
        if not isinstance(block, dict):
            raise LedgerRPCError(f"Block {number} not found")
        return block


def submit_read(executor: Optional[Executor], fn: Callable[..., Any], *args: Any) -> Future:
    """
    Schedule a leaf ledger read on the executor, or run it inline without one.

    Inline execution still returns a Future so callers join the same way
    in both modes. Reads scheduled here must not wait on other futures.
    """
    if executor is not None:
        return executor.submit(fn, *args)

    future: Future = Future()
    try:
        future.set_result(fn(*args))
    except Exception as e:
        future.set_exception(e)
    return future
