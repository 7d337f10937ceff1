"""
Data models for olive oil provenance tracking.

This module defines the ledger-side records (assets, attributes,
composition edges, participants, transfer events) and the denormalized
DetailedTransaction handed to the presentation layer.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# 1000 ledger units = 1 kg
UNITS_PER_KG = 1000

UNKNOWN_NAME = "Unknown"
UNKNOWN_LOCATION = "0,0"
NO_DESCRIPTION = "No description"

Coordinates = Tuple[float, float]

# CSV column order for output
CSV_COLUMNS = [
    "id",
    "asset_id",
    "block_number",
    "timestamp",
    "product",
    "quantity_kg",
    "from_address",
    "from_name",
    "from_role",
    "from_location",
    "to_address",
    "to_name",
    "to_role",
    "to_location",
    "attributes",
    "composition",
    "gas_used",
    "gas_price",
]


class Role(str, Enum):
    """Closed set of participant roles, plus a placeholder for unknown actors."""

    PRODUCER = "producer"
    FACTORY = "factory"
    RETAILER = "retailer"
    ADMIN = "admin"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: str) -> "Role":
        """
        Parse a registry role string (case-insensitive).

        Accepts the spellings stored on-chain as well as the English names.

        Raises:
            ValueError: If the string names no known role
        """
        role = ROLE_ALIASES.get((value or "").strip().lower())
        if role is None:
            raise ValueError(f"Unknown participant role: {value!r}")
        return role


ROLE_ALIASES = {
    "producer": Role.PRODUCER,
    "productor": Role.PRODUCER,
    "factory": Role.FACTORY,
    "fabrica": Role.FACTORY,
    "fábrica": Role.FACTORY,
    "retailer": Role.RETAILER,
    "minorista": Role.RETAILER,
    "admin": Role.ADMIN,
}


@dataclass
class Participant:
    """An identified actor in the supply chain."""

    address: str
    name: str
    role: Role
    location: str  # "lat,lng" as stored in the registry
    active: bool

    @classmethod
    def unknown(cls, address: str) -> "Participant":
        """Placeholder for an address missing from the registry snapshot."""
        return cls(
            address=address,
            name=UNKNOWN_NAME,
            role=Role.UNKNOWN,
            location=UNKNOWN_LOCATION,
            active=False,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": self.name,
            "role": self.role.value,
            "location": self.location,
            "active": self.active,
        }


@dataclass
class Asset:
    """
    A traceable batch of product.

    Quantities are in the smallest ledger unit (1000 units = 1 kg).
    """

    id: int
    name: str
    description: str
    creator: str
    quantity: int
    timestamp: int
    is_processed: bool = False  # Built from other assets
    parent_id: Optional[int] = None


@dataclass
class AttributeRecord:
    """Named, timestamped metadata value attached to an asset."""

    name: str
    value: str
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": self.value, "timestamp": self.timestamp}


@dataclass
class CompositionEdge:
    """Records that `child_id` was built using `quantity_used` of `parent_id`."""

    child_id: int
    parent_id: int
    quantity_used: int
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "childId": self.child_id,
            "parentId": self.parent_id,
            "quantityUsed": self.quantity_used,
            "timestamp": self.timestamp,
        }


@dataclass
class TransferLog:
    """
    A decoded transfer event as emitted by the ledger.

    Carries the ledger position (block, transaction index, log index)
    used to order events.
    """

    asset_id: int
    sender: str
    recipient: str
    quantity: int
    tx_hash: str
    block_number: int
    tx_index: int
    log_index: int

    @property
    def ledger_position(self) -> Tuple[int, int, int]:
        return (self.block_number, self.tx_index, self.log_index)


@dataclass
class TransferEvent:
    """A transfer log plus the execution metadata from its receipt and block."""

    log: TransferLog
    gas_used: int
    gas_price: int
    timestamp: int


@dataclass
class DetailedTransaction:
    """
    Fully resolved, display-ready record for one transfer.

    No identifiers are left for the consumer to chase: asset metadata,
    attributes, composition, both participants and their coordinates are
    all embedded.
    """

    id: str  # Transaction hash
    asset_id: int
    block_number: int
    gas_used: int
    gas_price: int
    timestamp: int
    product: str
    description: str
    quantity: int  # Raw ledger units
    quantity_kg: Decimal
    sender: Participant
    recipient: Participant
    from_coordinates: Coordinates
    to_coordinates: Coordinates
    attributes: List[AttributeRecord] = field(default_factory=list)
    composition: List[CompositionEdge] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase record consumed by the presentation layer."""
        return {
            "id": self.id,
            "assetId": self.asset_id,
            "blockNumber": self.block_number,
            "gasUsed": str(self.gas_used),
            "gasPrice": str(self.gas_price),
            "timestamp": self.timestamp,
            "product": self.product,
            "description": self.description,
            "quantityKg": float(self.quantity_kg),
            "attributes": [attr.to_dict() for attr in self.attributes],
            "composition": [edge.to_dict() for edge in self.composition],
            "from": self.sender.to_dict(),
            "to": self.recipient.to_dict(),
            "fromCoordinates": list(self.from_coordinates),
            "toCoordinates": list(self.to_coordinates),
        }

    def to_csv_row(self) -> List[str]:
        """Convert transaction to a CSV row (list of strings)."""
        return [
            self.id,
            str(self.asset_id),
            str(self.block_number),
            str(self.timestamp),
            self.product,
            format_kg(self.quantity_kg),
            self.sender.address,
            self.sender.name,
            self.sender.role.value,
            self.sender.location,
            self.recipient.address,
            self.recipient.name,
            self.recipient.role.value,
            self.recipient.location,
            "; ".join(f"{attr.name}={attr.value}" for attr in self.attributes),
            "; ".join(f"{edge.parent_id}:{edge.quantity_used}" for edge in self.composition),
            str(self.gas_used),
            str(self.gas_price),
        ]


def to_kg(quantity: int) -> Decimal:
    """Convert a raw ledger quantity to kilograms, exactly."""
    return Decimal(quantity) / Decimal(UNITS_PER_KG)


def format_kg(quantity_kg: Decimal) -> str:
    """
    Format kilograms with full precision, trimming trailing zeros.

    Examples:
        format_kg(Decimal("5")) -> "5"
        format_kg(Decimal("1.250")) -> "1.25"
    """
    formatted = format(quantity_kg, "f")
    if "." in formatted:
        formatted = formatted.rstrip("0").rstrip(".")
    return formatted
