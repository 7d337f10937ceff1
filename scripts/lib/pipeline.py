"""
Transfer enrichment pipeline.

Turns raw transfer logs into fully denormalized DetailedTransaction
records. Each event is enriched in its own task on a bounded pool; a
failure while enriching one event drops that event only. Results are put
back in ledger order once every task has finished and then reversed, so
the most recent transfer comes first.
"""

import logging
from collections import OrderedDict
from dataclasses import replace
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional

from eth_abi.exceptions import DecodingError

from .assets import AssetReader
from .events import EventSource, TransferFilter
from .geo import parse_location
from .ledger_client import LedgerClient, LedgerRPCError
from .models import DetailedTransaction, NO_DESCRIPTION, TransferLog, UNKNOWN_LOCATION, to_kg
from .participants import ParticipantIndex, normalize_address

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8  # Concurrent event enrichments
DEFAULT_MAX_FETCHES = 16  # Concurrent ledger reads


class TransferHistoryError(Exception):
    """Raised when the participant snapshot or the event query cannot be read."""

    pass


class EnrichmentPipeline:
    """
    Stateless transform from (participant index, transfer logs) to
    DetailedTransaction records.

    The readers are injected; the pipeline keeps no state between runs.
    """

    def __init__(
        self,
        asset_reader: AssetReader,
        event_source: EventSource,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        """
        Initialize the pipeline.

        Args:
            asset_reader: Resolves asset ids
            event_source: Resolves receipts and blocks for transfer logs
            max_workers: Upper bound on events enriched at the same time
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.asset_reader = asset_reader
        self.event_source = event_source
        self.max_workers = max_workers

    def enrich_one(self, index: ParticipantIndex, log: TransferLog) -> DetailedTransaction:
        """
        Build the DetailedTransaction for a single transfer.

        Receipt and block reads are started before the asset read so the
        two resolve concurrently.

        Raises:
            Any exception from the underlying reads
        """
        pending = self.event_source.begin_resolve(log)
        asset, attributes, composition = self.asset_reader.read(log.asset_id)
        event = pending.result()

        sender = index.lookup(log.sender)
        recipient = index.lookup(log.recipient)

        return DetailedTransaction(
            id=log.tx_hash,
            asset_id=log.asset_id,
            block_number=log.block_number,
            gas_used=event.gas_used,
            gas_price=event.gas_price,
            timestamp=event.timestamp,
            product=asset.name,
            description=asset.description or NO_DESCRIPTION,
            quantity=log.quantity,
            quantity_kg=to_kg(log.quantity),
            sender=sender,
            recipient=recipient,
            from_coordinates=parse_location(sender.location or UNKNOWN_LOCATION),
            to_coordinates=parse_location(recipient.location or UNKNOWN_LOCATION),
            attributes=attributes,
            composition=composition,
        )

    def _enrich_isolated(
        self, index: ParticipantIndex, log: TransferLog
    ) -> Optional[DetailedTransaction]:
        """Enrich one event, returning None instead of raising."""
        try:
            return self.enrich_one(index, log)
        except Exception:
            logger.warning(
                "Dropping transfer of asset %d in transaction %s",
                log.asset_id,
                log.tx_hash,
                exc_info=True,
            )
            return None

    def enrich(self, index: ParticipantIndex, logs: List[TransferLog]) -> List[DetailedTransaction]:
        """
        Enrich every transfer log, most recent first.

        Args:
            index: Participant snapshot, read-only for the whole run
            logs: Transfer logs from EventSource.query

        Returns:
            Enriched transactions in reverse ledger order. Events whose
            enrichment failed are absent, so the list may be shorter
            than `logs`.
        """
        if not logs:
            return []

        ordered = sorted(logs, key=lambda log: log.ledger_position)
        results: List[Optional[DetailedTransaction]] = [None] * len(ordered)

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(ordered))) as executor:
            future_to_position = {
                executor.submit(self._enrich_isolated, index, log): position
                for position, log in enumerate(ordered)
            }
            for future in as_completed(future_to_position):
                results[future_to_position[future]] = future.result()

        enriched = [tx for tx in results if tx is not None]
        dropped = len(ordered) - len(enriched)
        if dropped:
            logger.warning("Dropped %d of %d transfer events", dropped, len(ordered))
        logger.info("Enriched %d of %d transfer events", len(enriched), len(ordered))

        enriched.reverse()
        return enriched


def load_transfer_history(
    client: LedgerClient,
    participants_address: str,
    assets_address: str,
    transfer_filter: Optional[TransferFilter] = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
    max_fetches: int = DEFAULT_MAX_FETCHES,
    with_sources: bool = False,
) -> List[DetailedTransaction]:
    """
    Run the full reconstruction against the ledger.

    Builds the participant index once, queries the transfer events and
    enriches them. Leaf ledger reads share one bounded pool.

    Args:
        client: Shared ledger client
        participants_address: Participant registry address
        assets_address: Asset registry address (also emits transfer events)
        transfer_filter: Block range and optional asset to select
        max_workers: Upper bound on events enriched at the same time
        max_fetches: Upper bound on ledger reads in flight
        with_sources: With an asset filter, also include the transfers of
            every raw material the asset was built from, transitively

    Returns:
        Enriched transactions, most recent first

    Raises:
        TransferHistoryError: If the participant registry or the event
            query cannot be read
    """
    if max_fetches < 1:
        raise ValueError("max_fetches must be at least 1")
    transfer_filter = transfer_filter or TransferFilter()
    if with_sources and transfer_filter.asset_id is None:
        raise ValueError("with_sources requires an asset filter")

    with ThreadPoolExecutor(max_workers=max_fetches) as fetch_pool:
        asset_reader = AssetReader(client, assets_address, executor=fetch_pool)
        event_source = EventSource(client, assets_address, executor=fetch_pool)
        pipeline = EnrichmentPipeline(asset_reader, event_source, max_workers=max_workers)

        try:
            index = ParticipantIndex.fetch(client, participants_address)
            if with_sources:
                logs = trace_asset(asset_reader, event_source, transfer_filter)
            else:
                logs = event_source.query(transfer_filter)
        except (LedgerRPCError, DecodingError, KeyError, ValueError) as e:
            raise TransferHistoryError(f"Failed to read transfer history: {e}") from e

        return pipeline.enrich(index, logs)


def filter_by_participant(
    transactions: List[DetailedTransaction], address: str
) -> List[DetailedTransaction]:
    """Keep transactions sent or received by `address` (any letter case)."""
    wanted = normalize_address(address)
    return [
        tx
        for tx in transactions
        if normalize_address(tx.sender.address) == wanted
        or normalize_address(tx.recipient.address) == wanted
    ]


def group_by_asset(
    transactions: List[DetailedTransaction],
) -> Dict[int, List[DetailedTransaction]]:
    """
    Group transactions by asset id.

    Groups appear in order of each asset's first transaction and keep the
    input order within a group.
    """
    groups: Dict[int, List[DetailedTransaction]] = OrderedDict()
    for tx in transactions:
        groups.setdefault(tx.asset_id, []).append(tx)
    return groups


def trace_asset(
    asset_reader: AssetReader,
    event_source: EventSource,
    transfer_filter: TransferFilter,
) -> List[TransferLog]:
    """
    Transfer logs along the provenance route of the filtered asset.

    The route is the asset's own transfers plus those of every raw
    material reachable through its composition edges.

    Args:
        asset_reader: Follows composition edges
        event_source: Queries transfer logs
        transfer_filter: Block range and the asset to trace

    Returns:
        Transfer logs of the whole route, in ledger order
    """
    lineage = set(asset_reader.trace_sources(transfer_filter.asset_id))
    logger.debug("Tracing asset %d through %d assets", transfer_filter.asset_id, len(lineage))
    logs = event_source.query(replace(transfer_filter, asset_id=None))
    return [log for log in logs if log.asset_id in lineage]
