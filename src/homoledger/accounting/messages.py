from dataclasses import dataclass, field, fields, is_dataclass
from decimal import Decimal
from enum import Enum
from typing import List, NewType, Optional, Union, get_args, get_origin, get_type_hints
import json

from homoledger import config
from homoledger.common.utils import serialize_int, deserialize_int, from_minor_units
from homoledger.accounting.errors import DecryptionMismatchError

# Arbitrary-precision integers (ciphertexts, moduli) that travel as decimal strings.
BigInt = NewType("BigInt", int)


def _is_bigint(field_type) -> bool:
    if field_type is BigInt:
        return True
    if get_origin(field_type) is Union:
        return BigInt in get_args(field_type)
    return False


def _enum_type(field_type):
    if isinstance(field_type, type) and issubclass(field_type, Enum):
        return field_type
    return None


class ProtocolMessage:
    """
    Base class for ledger records, providing JSON serialization and deserialization.
    It automatically handles the conversion of `BigInt` fields, enums and decimals.
    """

    def to_dict(self) -> dict:
        """Serializes the dataclass instance to a dictionary for JSON conversion."""
        hints = get_type_hints(type(self))
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if _is_bigint(hints[f.name]):
                data[f.name] = serialize_int(value)
            elif isinstance(value, Enum):
                data[f.name] = value.value
            elif isinstance(value, Decimal):
                data[f.name] = str(value)
            else:
                data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict):
        """Deserializes a dictionary into a dataclass instance."""
        if not is_dataclass(cls):
            raise TypeError("from_dict can only be called on a dataclass")

        kwargs = {}
        type_hints = get_type_hints(cls)

        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            field_type = type_hints[f.name]

            if _is_bigint(field_type):
                kwargs[f.name] = deserialize_int(value)
            elif _enum_type(field_type) is not None:
                kwargs[f.name] = _enum_type(field_type)(value)
            else:
                kwargs[f.name] = value

        return cls(**kwargs)

    def to_json(self) -> str:
        """Serializes the record to a JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str):
        """Deserializes a JSON string into a record."""
        return cls.from_dict(json.loads(json_str))


class Role(str, Enum):
    SENDER = "sender"
    RECIPIENT = "recipient"
    THIRD_PARTY = "third_party"


class Direction(str, Enum):
    SENT = "sent"
    RECEIVED = "received"


# --- Transactions ---


@dataclass(frozen=True)
class DualEncryptedAmount(ProtocolMessage):
    """
    One transaction amount encrypted twice: once under the sender's public key
    and once under the recipient's. The plaintext is never part of the record.
    """

    transaction_id: str
    sender_id: str
    recipient_id: str
    sender_ciphertext: BigInt
    recipient_ciphertext: BigInt
    timestamp: int = 0

    def role_of(self, party_id: str) -> Role:
        if party_id == self.sender_id:
            return Role.SENDER
        if party_id == self.recipient_id:
            return Role.RECIPIENT
        return Role.THIRD_PARTY

    def ciphertext_for(self, role: Role) -> int:
        """Returns the ciphertext decryptable by the party holding `role`."""
        if role is Role.SENDER:
            return self.sender_ciphertext
        if role is Role.RECIPIENT:
            return self.recipient_ciphertext
        raise ValueError("A third party has no ciphertext in this transaction")

    def party_for(self, direction: Direction) -> str:
        return self.sender_id if direction is Direction.SENT else self.recipient_id


@dataclass
class VerificationResult(ProtocolMessage):
    """Outcome of a party checking its own ciphertext against the amount it claims."""

    transaction_id: str
    claimant_id: str
    role: Role
    can_decrypt: bool
    verified: bool
    decrypted_amount: Optional[int] = None  # Minor units recovered from the ciphertext.
    expected_amount: Optional[int] = None  # Claimed minor units, reduced mod the claimant's n.
    message: str = ""

    def raise_for_mismatch(self) -> "VerificationResult":
        if not self.verified:
            raise DecryptionMismatchError(
                f"Transaction {self.transaction_id}: {self.claimant_id} "
                f"({self.role.value}) could not verify the amount: {self.message}"
            )
        return self


@dataclass
class DeclaredTotals(ProtocolMessage):
    """Year-end totals a party declares for its sent and received amounts."""

    party_id: str
    sent: Union[Decimal, str, int, float] = 0
    received: Union[Decimal, str, int, float] = 0


# --- Reconciliation Output ---


@dataclass
class PartyReconciliation(ProtocolMessage):
    """Per-party comparison of declared totals against homomorphically recovered ones."""

    party_id: str
    name: str
    modulus: BigInt
    declared_sent: int  # Minor units, before reduction mod n.
    declared_received: int
    recovered_sent: Optional[int]  # None means no sent activity.
    recovered_received: Optional[int]
    sent_count: int
    received_count: int
    sent_verified: bool
    received_verified: bool

    @property
    def verified(self) -> bool:
        return self.sent_verified and self.received_verified

    @property
    def net_position(self) -> int:
        return self.declared_received - self.declared_sent

    @property
    def sent_discrepancy(self) -> int:
        return (self.declared_sent % self.modulus) - (self.recovered_sent or 0)

    @property
    def received_discrepancy(self) -> int:
        return (self.declared_received % self.modulus) - (self.recovered_received or 0)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            verified=self.verified,
            net_position=self.net_position,
            sent_discrepancy=self.sent_discrepancy,
            received_discrepancy=self.received_discrepancy,
        )
        return data


@dataclass
class ReconciliationReport:
    """Year-end verification result for a whole network of parties."""

    parties: List[PartyReconciliation]
    transaction_count: int
    unique_transaction_count: int
    duplicate_transactions: List[str] = field(default_factory=list)
    tolerance: int = config.TOLERANCE_MINOR_UNITS

    @property
    def total_declared_sent(self) -> int:
        return sum(p.declared_sent for p in self.parties)

    @property
    def total_declared_received(self) -> int:
        return sum(p.declared_received for p in self.parties)

    @property
    def network_balance(self) -> int:
        return self.total_declared_received - self.total_declared_sent

    @property
    def network_balanced(self) -> bool:
        # Every unit sent by one party must be received by exactly one other.
        return abs(self.network_balance) <= self.tolerance

    @property
    def all_parties_verified(self) -> bool:
        return all(p.verified for p in self.parties)

    @property
    def system_verified(self) -> bool:
        return (
            self.all_parties_verified
            and self.network_balanced
            and not self.duplicate_transactions
        )

    def party(self, party_id: str) -> PartyReconciliation:
        for p in self.parties:
            if p.party_id == party_id:
                return p
        raise KeyError(party_id)

    def bulletin_board(self) -> List[dict]:
        """Public per-party entries: declared totals and status, no ciphertexts or keys."""
        return [
            {
                "party_id": p.party_id,
                "name": p.name,
                "public_key_n": serialize_int(p.modulus),
                "declared_sent": str(from_minor_units(p.declared_sent)),
                "declared_received": str(from_minor_units(p.declared_received)),
                "net_position": str(from_minor_units(p.net_position)),
                "verified": p.verified,
                "transaction_count": p.sent_count + p.received_count,
            }
            for p in self.parties
        ]

    def to_dict(self) -> dict:
        return {
            "parties": [p.to_dict() for p in self.parties],
            "transaction_count": self.transaction_count,
            "unique_transaction_count": self.unique_transaction_count,
            "duplicate_transactions": list(self.duplicate_transactions),
            "total_declared_sent": self.total_declared_sent,
            "total_declared_received": self.total_declared_received,
            "network_balance": self.network_balance,
            "network_balanced": self.network_balanced,
            "all_parties_verified": self.all_parties_verified,
            "system_verified": self.system_verified,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())
