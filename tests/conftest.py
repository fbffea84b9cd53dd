import pytest

from homoledger.common.paillier import generate_key_pair_from_primes
from homoledger.accounting.dual import DualEncryptionProtocol
from homoledger.accounting.reconciliation import ReconciliationEngine
from homoledger.accounting.registry import PartyRegistry


@pytest.fixture
def key_pair():
    """(PublicKey, PrivateKey) for p=1009, q=1013, n=1,022,117."""
    return generate_key_pair_from_primes(1009, 1013)


@pytest.fixture
def registry():
    """Frozen registry with parties A, B, C on the first three preset prime pairs."""
    reg = PartyRegistry()
    reg.populate(["A", "B", "C"], names=["Alpha Ltd", "Beta Inc", "Gamma Co"])
    return reg.freeze()


@pytest.fixture
def protocol(registry):
    return DualEncryptionProtocol(registry)


@pytest.fixture
def engine(registry):
    return ReconciliationEngine(registry)
