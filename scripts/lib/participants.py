"""
Address-keyed lookup over the participant registry.

The registry is read once per run as a full snapshot. Addresses are
compared case-insensitively: keys are stored lower-cased and lookups are
lower-cased before probing.
"""

import logging
from typing import Dict, Iterable, Iterator, List

from .contracts import GET_PARTICIPANTS, decode_participants, encode_call
from .ledger_client import LedgerClient
from .models import Participant, Role, UNKNOWN_LOCATION, UNKNOWN_NAME

logger = logging.getLogger(__name__)


def normalize_address(address: str) -> str:
    return address.strip().lower()


class ParticipantIndex:
    """
    Read-only mapping from lower-cased address to Participant.

    A miss is not an error: `lookup` returns the "Unknown" placeholder
    carrying the requested address.
    """

    def __init__(self, participants: Iterable[Participant]):
        self._by_address: Dict[str, Participant] = {}
        for participant in participants:
            self._by_address[normalize_address(participant.address)] = participant

    def __len__(self) -> int:
        return len(self._by_address)

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and normalize_address(address) in self._by_address

    def __iter__(self) -> Iterator[Participant]:
        return iter(self._by_address.values())

    def lookup(self, address: str) -> Participant:
        """
        Resolve an address to its participant.

        Args:
            address: Address in any letter case

        Returns:
            The registered participant, or a placeholder with name and role
            "Unknown", location "0,0" and active=False
        """
        participant = self._by_address.get(normalize_address(address))
        if participant is None:
            return Participant.unknown(address)
        return participant

    @classmethod
    def from_rows(cls, rows: Iterable[tuple]) -> "ParticipantIndex":
        """
        Build the index from decoded registry rows.

        Role strings are validated here; an unrecognised role is logged and
        mapped to Role.UNKNOWN rather than failing the whole snapshot. An
        empty name or location falls back to the Unknown placeholder values.
        """
        participants: List[Participant] = []
        for address, name, location, role_text, active in rows:
            try:
                role = Role.parse(role_text)
            except ValueError:
                logger.warning("Participant %s has unrecognised role %r", address, role_text)
                role = Role.UNKNOWN
            participants.append(
                Participant(
                    address=address,
                    name=name or UNKNOWN_NAME,
                    role=role,
                    location=location or UNKNOWN_LOCATION,
                    active=active,
                )
            )
        return cls(participants)

    @classmethod
    def fetch(cls, client: LedgerClient, registry_address: str) -> "ParticipantIndex":
        """
        Read the full participant snapshot from the registry and index it.

        Raises:
            LedgerRPCError: If the registry cannot be read
        """
        data = client.call(registry_address, encode_call(GET_PARTICIPANTS))
        index = cls.from_rows(decode_participants(data))
        logger.info("Loaded %d participants from registry %s", len(index), registry_address)
        return index
