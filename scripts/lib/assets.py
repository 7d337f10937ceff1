"""
Asset registry reader.

Resolves an asset id into its core record, current attribute values and
composition edges. The three reads are independent and are issued
concurrently when an executor is supplied.
"""

from concurrent.futures import Executor
from typing import Any, List, Optional, Tuple

from .contracts import (
    GET_ASSET,
    GET_ATTRIBUTE,
    GET_ATTRIBUTE_NAMES,
    GET_COMPOSITION,
    decode_asset,
    decode_attribute,
    decode_attribute_names,
    decode_composition,
    encode_call,
)
from .ledger_client import LedgerClient, submit_read
from .models import Asset, AttributeRecord, CompositionEdge


class AssetNotFoundError(Exception):
    """Raised when the registry returns an empty record for an asset id."""

    def __init__(self, asset_id: int):
        super().__init__(f"Asset {asset_id} not found in registry")
        self.asset_id = asset_id


class AssetReader:
    """
    Reads asset records from the asset registry.

    Resolution is atomic: if any sub-read fails, `read` raises and no
    partial asset data is returned.
    """

    def __init__(
        self,
        client: LedgerClient,
        registry_address: str,
        executor: Optional[Executor] = None,
    ):
        """
        Initialize the reader.

        Args:
            client: Shared ledger client
            registry_address: Asset registry contract address
            executor: Pool for leaf reads. Its tasks never wait on other
                tasks, so it may be shared by any number of readers.
        """
        self.client = client
        self.registry_address = registry_address
        self.executor = executor

    def _call(self, signature: str, arg_types: List[str], args: List[Any]) -> bytes:
        return self.client.call(self.registry_address, encode_call(signature, arg_types, args))

    def get_asset(self, asset_id: int) -> Asset:
        record_id, name, creator, description, quantity, timestamp = decode_asset(
            self._call(GET_ASSET, ["uint256"], [asset_id])
        )
        if record_id == 0 or record_id != asset_id:
            raise AssetNotFoundError(asset_id)
        return Asset(
            id=record_id,
            name=name,
            description=description,
            creator=creator,
            quantity=quantity,
            timestamp=timestamp,
        )

    def get_attribute_names(self, asset_id: int) -> List[str]:
        return decode_attribute_names(self._call(GET_ATTRIBUTE_NAMES, ["uint256"], [asset_id]))

    def get_attribute(self, asset_id: int, name: str) -> AttributeRecord:
        _, value, timestamp = decode_attribute(
            self._call(GET_ATTRIBUTE, ["uint256", "string"], [asset_id, name])
        )
        return AttributeRecord(name=name, value=value, timestamp=timestamp)

    def get_composition(self, asset_id: int) -> List[CompositionEdge]:
        rows = decode_composition(self._call(GET_COMPOSITION, ["uint256"], [asset_id]))
        return [
            CompositionEdge(
                child_id=child_id,
                parent_id=parent_id,
                quantity_used=quantity_used,
                timestamp=timestamp,
            )
            for child_id, parent_id, quantity_used, timestamp in rows
        ]

    def read(self, asset_id: int) -> Tuple[Asset, List[AttributeRecord], List[CompositionEdge]]:
        """
        Resolve an asset with its attributes and composition.

        Args:
            asset_id: Asset identifier

        Returns:
            Tuple of (asset, attributes in registry order, composition edges)

        Raises:
            AssetNotFoundError: If the registry has no such asset
            LedgerRPCError: If any sub-read fails
        """
        asset_future = submit_read(self.executor, self.get_asset, asset_id)
        names_future = submit_read(self.executor, self.get_attribute_names, asset_id)
        composition_future = submit_read(self.executor, self.get_composition, asset_id)

        attribute_futures = [
            submit_read(self.executor, self.get_attribute, asset_id, name)
            for name in names_future.result()
        ]

        asset = asset_future.result()
        attributes = [future.result() for future in attribute_futures]
        composition = composition_future.result()

        asset.is_processed = bool(composition)
        asset.parent_id = composition[0].parent_id if composition else None
        return asset, attributes, composition

    def trace_sources(self, asset_id: int) -> List[int]:
        """
        Collect an asset and every raw material it was built from.

        Composition edges are followed breadth-first, level by level, with
        each level's reads issued together. Each asset is visited once, so
        cyclic composition data terminates.

        Args:
            asset_id: Asset whose provenance route is wanted

        Returns:
            Asset ids starting with `asset_id`, then its parents, then
            their parents

        Raises:
            LedgerRPCError: If a composition read fails
        """
        lineage = [asset_id]
        seen = {asset_id}
        frontier = [asset_id]

        while frontier:
            futures = [
                submit_read(self.executor, self.get_composition, current) for current in frontier
            ]
            frontier = []
            for future in futures:
                for edge in future.result():
                    if edge.parent_id not in seen:
                        seen.add(edge.parent_id)
                        lineage.append(edge.parent_id)
                        frontier.append(edge.parent_id)

        return lineage
