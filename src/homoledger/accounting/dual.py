"""
Dual encryption of transaction amounts.

Each amount is encrypted once under the sender's Paillier key and once under
the recipient's, so either counterparty can later recover and vouch for it
while third parties see only ciphertexts. Amounts are encrypted as integer
minor units reduced modulo each party's own n: with small moduli a large
amount wraps, and what a party recovers is `cents mod n`, not the true value.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Sequence
import logging
import time

from homoledger import config
from homoledger.common.errors import MalformedCiphertextError
from homoledger.common.hash import sha512_256_tagged_hex
from homoledger.common.utils import Amount, to_minor_units
from homoledger.accounting.registry import PartyRegistry
from homoledger.accounting.messages import (
    DualEncryptedAmount,
    Role,
    VerificationResult,
)

logger = logging.getLogger(__name__)


def _now_millis() -> int:
    return int(time.time() * 1000)


def derive_transaction_id(
    sender_id: str,
    recipient_id: str,
    sender_ciphertext: int,
    recipient_ciphertext: int,
    timestamp: int,
) -> str:
    """Content-derived transaction id: tagged SHA-512/256 over the public record."""
    return sha512_256_tagged_hex(
        config.TRANSACTION_ID_TAG,
        sender_id,
        recipient_id,
        sender_ciphertext,
        recipient_ciphertext,
        timestamp,
    )


class DualEncryptionProtocol:
    """Produces and verifies dual-encrypted amounts against a PartyRegistry."""

    def __init__(self, registry: PartyRegistry):
        self.registry = registry

    def dual_encrypt(
        self,
        amount: Amount,
        sender_id: str,
        recipient_id: str,
        transaction_id: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> DualEncryptedAmount:
        """
        Encrypts `amount` under both the sender's and the recipient's public key.

        Args:
            amount: A currency value in major units, e.g. Decimal("100.00").
            sender_id: Registered id of the paying party.
            recipient_id: Registered id of the receiving party.
            transaction_id: Caller-assigned id; derived from the record if omitted.
            timestamp: Epoch milliseconds; defaults to now.

        Raises:
            UnknownPartyError: either id is not registered.
            ValueError: the amount is invalid or sender equals recipient.
        """
        sender_pub = self.registry.public_key_of(sender_id)
        recipient_pub = self.registry.public_key_of(recipient_id)
        if sender_id == recipient_id:
            raise ValueError("Sender and recipient must be different parties")

        cents = to_minor_units(amount)
        if cents >= min(sender_pub.n, recipient_pub.n):
            logger.warning(
                "Amount for %s -> %s exceeds a party modulus and will wrap",
                sender_id, recipient_id,
            )

        # Independent randomness for each side.
        sender_ct = sender_pub.encrypt(cents % sender_pub.n)
        recipient_ct = recipient_pub.encrypt(cents % recipient_pub.n)

        if timestamp is None:
            timestamp = _now_millis()
        if transaction_id is None:
            transaction_id = derive_transaction_id(
                sender_id, recipient_id, sender_ct, recipient_ct, timestamp
            )

        logger.debug("Dual encrypted transaction %s: %s -> %s", transaction_id, sender_id, recipient_id)
        return DualEncryptedAmount(
            transaction_id=transaction_id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            sender_ciphertext=sender_ct,
            recipient_ciphertext=recipient_ct,
            timestamp=timestamp,
        )

    def dual_encrypt_batch(
        self, entries: Iterable[Sequence], max_workers: Optional[int] = None
    ) -> List[DualEncryptedAmount]:
        """
        Dual encrypts many transactions in a thread pool, preserving input order.

        Each entry is `(amount, sender_id, recipient_id)` or
        `(amount, sender_id, recipient_id, transaction_id)`. The first
        registry error aborts the batch.
        """
        entries = [tuple(e) for e in entries]
        for e in entries:
            if len(e) not in (3, 4):
                raise ValueError(f"Batch entry must have 3 or 4 items, got {len(e)}")

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [pool.submit(self.dual_encrypt, *e) for e in entries]
            results = [f.result() for f in futures]

        logger.info("Dual encrypted a batch of %d transactions", len(results))
        return results

    def verify(
        self, encrypted: DualEncryptedAmount, claimant_id: str, claimed_amount: Amount
    ) -> VerificationResult:
        """
        Checks the claimant's own ciphertext against the amount it claims.

        A claimant that is neither sender nor recipient gets
        `can_decrypt=False` without any key being touched. Mismatches are
        returned as `verified=False`, never raised.

        Raises:
            UnknownPartyError: the claimant is a counterparty but not registered.
            ValueError: the claimed amount is not a valid amount.
        """
        role = encrypted.role_of(claimant_id)
        if role is Role.THIRD_PARTY:
            return VerificationResult(
                transaction_id=encrypted.transaction_id,
                claimant_id=claimant_id,
                role=role,
                can_decrypt=False,
                verified=False,
                message="Claimant is not involved in this transaction",
            )

        private_key = self.registry.private_key_of(claimant_id)
        expected = to_minor_units(claimed_amount) % private_key.n

        try:
            decrypted = private_key.decrypt(encrypted.ciphertext_for(role))
        except MalformedCiphertextError as e:
            logger.warning(
                "Transaction %s: %s ciphertext is malformed for %s",
                encrypted.transaction_id, role.value, claimant_id,
            )
            return VerificationResult(
                transaction_id=encrypted.transaction_id,
                claimant_id=claimant_id,
                role=role,
                can_decrypt=True,
                verified=False,
                expected_amount=expected,
                message=f"Ciphertext is malformed: {e}",
            )

        verified = decrypted == expected
        if not verified:
            logger.warning(
                "Transaction %s: amount mismatch for %s (%s)",
                encrypted.transaction_id, claimant_id, role.value,
            )
        return VerificationResult(
            transaction_id=encrypted.transaction_id,
            claimant_id=claimant_id,
            role=role,
            can_decrypt=True,
            verified=verified,
            decrypted_amount=decrypted,
            expected_amount=expected,
            message="Amount verification successful" if verified else "Amount mismatch detected",
        )
