from typing import Iterable

from homoledger.common.utils import Amount, from_minor_units
from homoledger.accounting.dual import DualEncryptionProtocol
from homoledger.accounting.errors import LedgerError
from homoledger.accounting.messages import (
    DeclaredTotals,
    Direction,
    DualEncryptedAmount,
    Role,
    VerificationResult,
)
from homoledger.accounting.reconciliation import ReconciliationEngine
from homoledger.accounting.registry import PartyRegistry


class Party:
    """
    Acts on behalf of a single party: the one context allowed to use that
    party's private key.

    A party decrypts its own side of the transactions it took part in,
    checks them against its books and, at year end, derives the totals it
    declares from its own homomorphic sums.
    """

    def __init__(self, party_id: str, registry: PartyRegistry):
        # Fails fast with UnknownPartyError for unregistered ids.
        registry.party(party_id)
        self.id = party_id
        self.registry = registry
        self.protocol = DualEncryptionProtocol(registry)
        self.engine = ReconciliationEngine(registry)

    @property
    def name(self) -> str:
        return self.registry.party(self.id).name

    def send(self, amount: Amount, recipient_id: str, **kwargs) -> DualEncryptedAmount:
        """Records a payment from this party to `recipient_id`."""
        return self.protocol.dual_encrypt(amount, self.id, recipient_id, **kwargs)

    def decrypt_own(self, encrypted: DualEncryptedAmount) -> int:
        """Returns the minor-unit amount (mod this party's n) of this party's side."""
        role = encrypted.role_of(self.id)
        if role is Role.THIRD_PARTY:
            raise LedgerError(
                f"Party {self.id!r} is not involved in transaction {encrypted.transaction_id}"
            )
        private_key = self.registry.private_key_of(self.id)
        return private_key.decrypt(encrypted.ciphertext_for(role))

    def verify(self, encrypted: DualEncryptedAmount, claimed_amount: Amount) -> VerificationResult:
        return self.protocol.verify(encrypted, self.id, claimed_amount)

    def declare(self, transactions: Iterable[DualEncryptedAmount]) -> DeclaredTotals:
        """Builds this party's year-end declaration from its own homomorphic sums."""
        transactions = list(transactions)
        totals = {}
        for direction in Direction:
            acc = self.engine.accumulate(transactions, self.id, direction)
            totals[direction] = self.engine.recover_total(acc) or 0
        return DeclaredTotals(
            party_id=self.id,
            sent=from_minor_units(totals[Direction.SENT]),
            received=from_minor_units(totals[Direction.RECEIVED]),
        )
