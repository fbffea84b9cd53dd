"""
Tests for PartyRegistry: registration, lookup and freezing.
"""

import pytest

from homoledger.common.paillier import InvalidModulusError, PrivateKey, PublicKey, preset_key_pair
from homoledger.accounting.errors import (
    DuplicateIdError,
    DuplicateKeyError,
    LedgerError,
    RegistryError,
    RegistryFrozenError,
    UnknownPartyError,
)
from homoledger.accounting.registry import PartyRegistry


class TestRegister:

    def test_register_and_lookup(self):
        reg = PartyRegistry()
        pub, priv = preset_key_pair(0)
        party = reg.register("A", pub, priv, name="Alpha Ltd")
        assert party.id == "A"
        assert party.name == "Alpha Ltd"
        assert reg.public_key_of("A") == pub
        assert reg.private_key_of("A") is priv
        assert "A" in reg
        assert len(reg) == 1

    def test_name_defaults_to_id(self):
        reg = PartyRegistry()
        pub, priv = preset_key_pair(0)
        assert reg.register("A", pub, priv).name == "A"

    def test_duplicate_id(self):
        reg = PartyRegistry()
        pub, priv = preset_key_pair(0)
        reg.register("A", pub, priv)
        other_pub, other_priv = preset_key_pair(1)
        with pytest.raises(DuplicateIdError):
            reg.register("A", other_pub, other_priv)

    @pytest.mark.parametrize("bad_id", ["", None, 7])
    def test_invalid_id(self, bad_id):
        reg = PartyRegistry()
        pub, priv = preset_key_pair(0)
        with pytest.raises(ValueError):
            reg.register(bad_id, pub, priv)

    def test_mismatched_key_pair(self):
        reg = PartyRegistry()
        pub, _ = preset_key_pair(0)
        _, priv = preset_key_pair(1)
        with pytest.raises(ValueError):
            reg.register("A", pub, priv)

    def test_wrong_key_types(self):
        reg = PartyRegistry()
        pub, priv = preset_key_pair(0)
        with pytest.raises(TypeError):
            reg.register("A", priv, pub)

    def test_error_hierarchy(self):
        assert issubclass(DuplicateIdError, RegistryError)
        assert issubclass(DuplicateKeyError, RegistryError)
        assert issubclass(UnknownPartyError, RegistryError)
        assert issubclass(RegistryFrozenError, RegistryError)
        assert issubclass(RegistryError, LedgerError)


class TestGeneratedRegistration:

    def test_from_primes(self):
        reg = PartyRegistry()
        party = reg.register_generated("A", p=1009, q=1013)
        assert party.public_key.n == 1_022_117
        assert isinstance(reg.private_key_of("A"), PrivateKey)

    def test_from_bits(self):
        reg = PartyRegistry()
        party = reg.register_generated("A", bits=64)
        assert party.public_key.n.bit_length() >= 63

    def test_only_one_prime(self):
        reg = PartyRegistry()
        with pytest.raises(ValueError):
            reg.register_generated("A", p=1009)

    def test_bad_primes_abort(self):
        reg = PartyRegistry()
        with pytest.raises(InvalidModulusError):
            reg.register_generated("A", p=1009, q=1009)
        assert "A" not in reg

    def test_populate_uses_presets_in_order(self):
        reg = PartyRegistry()
        parties = reg.populate(["A", "B"], names=["Alpha", "Beta"])
        assert [p.public_key.n for p in parties] == [1009 * 1013, 1019 * 1021]
        assert [p.name for p in parties] == ["Alpha", "Beta"]
        assert reg.party_ids() == ["A", "B"]

    def test_populate_names_length_mismatch(self):
        reg = PartyRegistry()
        with pytest.raises(ValueError):
            reg.populate(["A", "B"], names=["Alpha"])

    def test_populate_beyond_presets(self):
        reg = PartyRegistry()
        with pytest.raises(InvalidModulusError):
            reg.populate([f"P{i}" for i in range(9)])


class TestLookupAndFreeze:

    def test_unknown_party(self, registry):
        with pytest.raises(UnknownPartyError):
            registry.public_key_of("Z")
        with pytest.raises(UnknownPartyError):
            registry.private_key_of("Z")
        with pytest.raises(UnknownPartyError):
            registry.party("Z")

    def test_iteration_exposes_public_records_only(self, registry):
        records = list(registry)
        assert [r.id for r in records] == ["A", "B", "C"]
        for r in records:
            assert isinstance(r.public_key, PublicKey)
            assert not hasattr(r, "private_key")

    def test_frozen_registry_rejects_registration(self, registry):
        assert registry.frozen
        pub, priv = preset_key_pair(3)
        with pytest.raises(RegistryFrozenError):
            registry.register("D", pub, priv)
        with pytest.raises(RegistryFrozenError):
            registry.register_generated("D", p=1039, q=1049)

    def test_frozen_registry_still_readable(self, registry):
        assert registry.public_key_of("B").n == 1019 * 1021


class TestDistinctKeys:
    """Every registered party must hold its own modulus."""

    def test_register_rejects_shared_modulus(self):
        reg = PartyRegistry()
        pub, priv = preset_key_pair(0)
        reg.register("A", pub, priv)
        same_pub, same_priv = preset_key_pair(0)
        with pytest.raises(DuplicateKeyError):
            reg.register("B", same_pub, same_priv)
        assert "B" not in reg

    def test_repeated_populate_skips_presets_in_use(self):
        reg = PartyRegistry()
        reg.populate(["A"])
        reg.populate(["B"])
        a, b = reg.public_key_of("A"), reg.public_key_of("B")
        assert a.n == 1009 * 1013
        assert b.n == 1019 * 1021
        assert a.n != b.n

    def test_populate_after_manual_preset(self):
        reg = PartyRegistry()
        pub, priv = preset_key_pair(1)
        reg.register("X", pub, priv)
        parties = reg.populate(["A", "B"])
        assert [p.public_key.n for p in parties] == [1009 * 1013, 1031 * 1033]

    def test_name_is_kept_even_when_empty(self):
        reg = PartyRegistry()
        pub, priv = preset_key_pair(0)
        assert reg.register("A", pub, priv, name="").name == ""


class TestPopulateIsAllOrNothing:

    def test_duplicate_in_list(self):
        reg = PartyRegistry()
        with pytest.raises(DuplicateIdError):
            reg.populate(["A", "B", "A"])
        assert len(reg) == 0

    def test_id_already_registered(self):
        reg = PartyRegistry()
        reg.populate(["B"])
        with pytest.raises(DuplicateIdError):
            reg.populate(["A", "B"])
        assert reg.party_ids() == ["B"]

    def test_invalid_id_in_list(self):
        reg = PartyRegistry()
        with pytest.raises(ValueError):
            reg.populate(["A", ""])
        assert len(reg) == 0

    def test_presets_exhausted(self):
        reg = PartyRegistry()
        reg.populate(["A", "B"])
        with pytest.raises(InvalidModulusError):
            reg.populate([f"P{i}" for i in range(7)])
        assert reg.party_ids() == ["A", "B"]
