import logging
from decimal import Decimal

from homoledger import config
from homoledger.common.paillier import generate_key_pair_from_primes
from homoledger.accounting.dual import DualEncryptionProtocol
from homoledger.accounting.reconciliation import ReconciliationEngine
from homoledger.accounting.registry import PartyRegistry
from homoledger.party import Party


def main():
    """
    Simulates a fiscal period for three companies using the API.
    This acts as an integration test for the entire system.
    """
    logging.basicConfig(level=config.LOG_LEVEL)

    # --- Phase 1: Homomorphic arithmetic ---
    print("--- Phase 1: Paillier arithmetic ---")
    pub, priv = generate_key_pair_from_primes(1009, 1013)
    print(f"Key pair generated. n = {pub.n}")

    c1 = pub.encrypt(1500)
    c2 = pub.encrypt(2500)
    total = priv.decrypt(pub.homo_add(c1, c2))
    assert total == 4000
    print(f"Dec(Enc(1500) * Enc(2500)) = {total}")

    assert pub.encrypt(1500) != pub.encrypt(1500)
    print("Two encryptions of 1500 differ.")
    print("-----------------------\n")

    # --- Phase 2: Registry ---
    print("--- Phase 2: Registry ---")
    registry = PartyRegistry()
    registry.populate(
        ["TC001", "GM002", "SC003"],
        names=["TechCorp Solutions", "Global Manufacturing Inc", "Supply Chain Logistics"],
    )
    registry.freeze()
    for party in registry:
        print(f"{party.name} ({party.id}): n = {party.public_key.n}")
    print("-------------------------\n")

    # --- Phase 3: Dual-encrypted transactions ---
    print("--- Phase 3: Transactions ---")
    protocol = DualEncryptionProtocol(registry)
    ledger = protocol.dual_encrypt_batch(
        [
            (Decimal("100.00"), "TC001", "GM002", "tx-1"),
            (Decimal("100.00"), "GM002", "TC001", "tx-2"),
            (Decimal("250.75"), "SC003", "TC001", "tx-3"),
            (Decimal("42.10"), "GM002", "SC003", "tx-4"),
        ]
    )
    print(f"{len(ledger)} transactions dual encrypted.")

    tc, gm = Party("TC001", registry), Party("GM002", registry)
    assert tc.verify(ledger[0], Decimal("100.00")).verified
    assert gm.verify(ledger[0], Decimal("100.00")).verified
    outsider = protocol.verify(ledger[0], "SC003", Decimal("100.00"))
    assert not outsider.can_decrypt
    print("Both counterparties verified tx-1; SC003 cannot decrypt it.")
    print("-------------------------\n")

    # --- Phase 4: Year-end reconciliation ---
    print("--- Phase 4: Reconciliation ---")
    declarations = [Party(pid, registry).declare(ledger) for pid in registry.party_ids()]
    report = ReconciliationEngine(registry).reconcile(ledger, declarations)

    for entry in report.bulletin_board():
        status = "VERIFIED" if entry["verified"] else "FAILED"
        print(
            f"{entry['name']}: sent {entry['declared_sent']}, "
            f"received {entry['declared_received']}, net {entry['net_position']} [{status}]"
        )
    assert report.network_balanced
    assert report.system_verified
    print(f"Network balanced: {report.network_balanced}")
    print("----------------------\n")

    print("Full ledger simulation completed successfully!")
    return report


if __name__ == "__main__":
    main()
