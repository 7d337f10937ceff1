"""
Transfer event source.

Queries the asset registry's transfer logs in ledger order and resolves,
per event, the execution receipt (gas metrics) and the containing block
(timestamp).
"""

import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from typing import Any, List, Optional

from .contracts import TRANSFER_EVENT_TOPIC, decode_transfer_log
from .ledger_client import BlockIdentifier, LedgerClient, submit_read
from .models import TransferEvent, TransferLog

logger = logging.getLogger(__name__)


@dataclass
class TransferFilter:
    """
    Selection of transfer events to reconstruct.

    asset_id narrows the result to a single asset's route. The event does
    not index the asset id, so this is applied after decoding.
    """

    from_block: BlockIdentifier = 0
    to_block: BlockIdentifier = "latest"
    asset_id: Optional[int] = None


def _hex_int(value: Any) -> int:
    if not isinstance(value, str):
        raise ValueError(f"Expected a hex quantity, got {value!r}")
    return int(value, 16)


class EventSource:
    """Read-only access to transfer events and their execution metadata."""

    def __init__(
        self,
        client: LedgerClient,
        registry_address: str,
        executor: Optional[Executor] = None,
    ):
        self.client = client
        self.registry_address = registry_address
        self.executor = executor

    def query(self, transfer_filter: Optional[TransferFilter] = None) -> List[TransferLog]:
        """
        Fetch decoded transfer logs in ledger order.

        Ledger order is ascending by block number, then transaction index,
        then log index. Logs are sorted explicitly so the order does not
        depend on the node.

        Args:
            transfer_filter: Block range and optional asset to select

        Returns:
            List of TransferLog objects, earliest first

        Raises:
            LedgerRPCError: If the log query fails
            ValueError: If a log carries a malformed position field
        """
        transfer_filter = transfer_filter or TransferFilter()
        raw_logs = self.client.get_logs(
            self.registry_address,
            [TRANSFER_EVENT_TOPIC],
            from_block=transfer_filter.from_block,
            to_block=transfer_filter.to_block,
        )

        logs: List[TransferLog] = []
        for raw in raw_logs:
            if raw.get("removed"):
                continue
            if raw.get("blockNumber") is None:
                # Pending logs have no position in the ledger yet
                logger.debug("Skipping pending transfer log %s", raw.get("transactionHash"))
                continue
            asset_id, sender, recipient, quantity = decode_transfer_log(raw)
            if transfer_filter.asset_id is not None and asset_id != transfer_filter.asset_id:
                continue
            logs.append(
                TransferLog(
                    asset_id=asset_id,
                    sender=sender,
                    recipient=recipient,
                    quantity=quantity,
                    tx_hash=raw["transactionHash"],
                    block_number=_hex_int(raw["blockNumber"]),
                    tx_index=_hex_int(raw["transactionIndex"]),
                    log_index=_hex_int(raw["logIndex"]),
                )
            )

        logs.sort(key=lambda log: log.ledger_position)
        logger.debug("Fetched %d transfer events", len(logs))
        return logs

    def begin_resolve(self, log: TransferLog) -> "PendingExecution":
        """
        Start the receipt and block reads for a transfer log without waiting.

        The caller can issue other reads and join later with `.result()`.
        """
        return PendingExecution(
            log,
            submit_read(self.executor, self.client.get_transaction_receipt, log.tx_hash),
            submit_read(self.executor, self.client.get_block, log.block_number),
        )


class PendingExecution:
    """In-flight receipt and block reads for one transfer log."""

    def __init__(self, log: TransferLog, receipt_future: Future, block_future: Future):
        self.log = log
        self.receipt_future = receipt_future
        self.block_future = block_future

    def result(self) -> TransferEvent:
        """Wait for both reads and build the TransferEvent."""
        receipt = self.receipt_future.result()
        block = self.block_future.result()

        # Pre-London nodes report no effectiveGasPrice on the receipt
        gas_price = receipt.get("effectiveGasPrice") or receipt.get("gasPrice") or "0x0"
        return TransferEvent(
            log=self.log,
            gas_used=_hex_int(receipt["gasUsed"]),
            gas_price=_hex_int(gas_price),
            timestamp=_hex_int(block["timestamp"]),
        )
