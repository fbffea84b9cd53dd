"""
Year-end reconciliation.

For every party the engine folds the party's own ciphertexts (sender side
for sent amounts, recipient side for received ones) into one ciphertext per
direction, decrypts it with the party's key and compares the result to the
totals the party declared. It then checks that declared sent and received
totals balance across the network and that no transaction id repeats.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union
import logging

from homoledger import config
from homoledger.common.numbers import circular_distance
from homoledger.common.paillier import PublicKey
from homoledger.common.utils import to_minor_units
from homoledger.accounting.errors import UnknownPartyError
from homoledger.accounting.registry import PartyRegistry
from homoledger.accounting.messages import (
    DeclaredTotals,
    Direction,
    DualEncryptedAmount,
    PartyReconciliation,
    ReconciliationReport,
    Role,
)

logger = logging.getLogger(__name__)


@dataclass
class HomomorphicAccumulator:
    """
    Running ciphertext for one (party, direction) pair.

    `ciphertext is None` is the no-activity sentinel: with zero terms there
    is nothing to combine, and it is distinct from an encrypted zero.
    """

    party_id: str
    direction: Direction
    ciphertext: Optional[int] = None
    count: int = 0
    transaction_ids: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.ciphertext is None

    def add(self, ciphertext: int, transaction_id: str, public_key: PublicKey):
        if self.ciphertext is None:
            self.ciphertext = int(public_key.validate_ciphertext(ciphertext))
        else:
            self.ciphertext = public_key.homo_add(self.ciphertext, ciphertext)
        self.count += 1
        self.transaction_ids.append(transaction_id)

    def merge(self, other: "HomomorphicAccumulator", public_key: PublicKey) -> "HomomorphicAccumulator":
        """Combines two partial accumulators for the same party and direction."""
        if (other.party_id, other.direction) != (self.party_id, self.direction):
            raise ValueError("Cannot merge accumulators of different parties or directions")
        if other.is_empty:
            ciphertext = self.ciphertext
        elif self.is_empty:
            ciphertext = other.ciphertext
        else:
            ciphertext = public_key.homo_add(self.ciphertext, other.ciphertext)
        return HomomorphicAccumulator(
            party_id=self.party_id,
            direction=self.direction,
            ciphertext=ciphertext,
            count=self.count + other.count,
            transaction_ids=self.transaction_ids + other.transaction_ids,
        )


DeclaredInput = Union[Mapping[str, DeclaredTotals], Iterable[DeclaredTotals]]


class ReconciliationEngine:
    """Recomputes per-party totals homomorphically and checks them against declarations."""

    def __init__(self, registry: PartyRegistry, tolerance: int = None):
        self.registry = registry
        self.tolerance = config.TOLERANCE_MINOR_UNITS if tolerance is None else tolerance

    def accumulate(
        self,
        transactions: Iterable[DualEncryptedAmount],
        party_id: str,
        direction: Direction,
    ) -> HomomorphicAccumulator:
        """
        Folds the party's ciphertexts for one direction under its own public key.

        Returns an empty accumulator when the party has no matching transaction.
        """
        direction = Direction(direction)
        public_key = self.registry.public_key_of(party_id)
        role = Role.SENDER if direction is Direction.SENT else Role.RECIPIENT

        acc = HomomorphicAccumulator(party_id=party_id, direction=direction)
        for tx in transactions:
            if tx.party_for(direction) == party_id:
                acc.add(tx.ciphertext_for(role), tx.transaction_id, public_key)
        return acc

    def recover_total(self, acc: HomomorphicAccumulator) -> Optional[int]:
        """Decrypts an accumulator with its party's key; None for no activity."""
        if acc.is_empty:
            return None
        return self.registry.private_key_of(acc.party_id).decrypt(acc.ciphertext)

    def _matches(self, declared: int, recovered: Optional[int], modulus: int) -> bool:
        if recovered is None:
            return declared <= self.tolerance
        return circular_distance(declared % modulus, recovered, modulus) <= self.tolerance

    def _normalize_declarations(self, declared_totals: DeclaredInput) -> Dict[str, DeclaredTotals]:
        if isinstance(declared_totals, Mapping):
            items = list(declared_totals.values())
        else:
            items = list(declared_totals or [])
        declarations: Dict[str, DeclaredTotals] = {}
        for d in items:
            if d.party_id not in self.registry:
                raise UnknownPartyError(f"Declaration for unknown party {d.party_id!r}")
            declarations[d.party_id] = d
        return declarations

    def _check_transactions(self, transactions: List[DualEncryptedAmount]) -> Tuple[List[str], int]:
        for tx in transactions:
            for party_id in (tx.sender_id, tx.recipient_id):
                if party_id not in self.registry:
                    raise UnknownPartyError(
                        f"Transaction {tx.transaction_id} names unknown party {party_id!r}"
                    )
        seen = Counter()
        duplicates = []
        for tx in transactions:
            if seen[tx.transaction_id]:
                duplicates.append(tx.transaction_id)
                logger.warning("Duplicate transaction id %s", tx.transaction_id)
            seen[tx.transaction_id] += 1
        return duplicates, len(seen)

    def reconcile_party(
        self, transactions: List[DualEncryptedAmount], declared: DeclaredTotals
    ) -> PartyReconciliation:
        party = self.registry.party(declared.party_id)
        modulus = party.public_key.n

        sent_acc = self.accumulate(transactions, party.id, Direction.SENT)
        received_acc = self.accumulate(transactions, party.id, Direction.RECEIVED)
        recovered_sent = self.recover_total(sent_acc)
        recovered_received = self.recover_total(received_acc)

        declared_sent = to_minor_units(declared.sent)
        declared_received = to_minor_units(declared.received)

        result = PartyReconciliation(
            party_id=party.id,
            name=party.name,
            modulus=modulus,
            declared_sent=declared_sent,
            declared_received=declared_received,
            recovered_sent=recovered_sent,
            recovered_received=recovered_received,
            sent_count=sent_acc.count,
            received_count=received_acc.count,
            sent_verified=self._matches(declared_sent, recovered_sent, modulus),
            received_verified=self._matches(declared_received, recovered_received, modulus),
        )
        if not result.verified:
            logger.warning(
                "Party %s failed verification (sent ok: %s, received ok: %s)",
                party.id, result.sent_verified, result.received_verified,
            )
        return result

    def reconcile(
        self, transactions: Iterable[DualEncryptedAmount], declared_totals: DeclaredInput
    ) -> ReconciliationReport:
        """
        Reconciles every registered party and the network as a whole.

        Parties without a declaration are treated as declaring zero in both
        directions. Mismatches and duplicates are reported, never raised.

        Raises:
            UnknownPartyError: a declaration or transaction names an unregistered party.
        """
        transactions = list(transactions)
        declarations = self._normalize_declarations(declared_totals)
        duplicates, unique_count = self._check_transactions(transactions)

        parties = []
        for party_id in self.registry.party_ids():
            declared = declarations.get(party_id, DeclaredTotals(party_id=party_id))
            parties.append(self.reconcile_party(transactions, declared))

        report = ReconciliationReport(
            parties=parties,
            transaction_count=len(transactions),
            unique_transaction_count=unique_count,
            duplicate_transactions=duplicates,
            tolerance=self.tolerance,
        )
        logger.info(
            "Reconciled %d parties: %d verified, network balance %d, %d duplicates",
            len(parties),
            sum(1 for p in parties if p.verified),
            report.network_balance,
            len(duplicates),
        )
        return report
