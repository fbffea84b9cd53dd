"""
Tests for the Paillier core: key generation, encryption, decryption and
homomorphic addition.

Invariants checked:
1. Round trip: Dec(Enc(m)) == m for m in [0, n)
2. Homomorphism: Dec(Enc(a) * Enc(b)) == (a + b) mod n
3. Encryption is randomized
4. Invalid key material and malformed ciphertexts fail fast
"""

import pytest

from homoledger.common.paillier import (
    InvalidModulusError,
    MalformedCiphertextError,
    MessageMalFormedError,
    NonInvertibleError,
    PaillierError,
    PrivateKey,
    PublicKey,
    WrongRandomnessError,
    generate_key_pair,
    generate_key_pair_from_primes,
    preset_key_pair,
    self_test,
)


# =============================================================================
# Key generation
# =============================================================================


class TestKeyGeneration:
    """generate_key_pair_from_primes / generate_key_pair / preset_key_pair."""

    def test_from_primes_public_values(self):
        """n = p*q and g = n + 1."""
        pub, priv = generate_key_pair_from_primes(1009, 1013)
        assert pub.n == 1_022_117
        assert pub.g == 1_022_118
        assert pub.n_square == 1_022_117 ** 2
        assert priv.n == pub.n
        assert priv.public_key == pub

    def test_equal_primes_rejected(self):
        with pytest.raises(InvalidModulusError):
            generate_key_pair_from_primes(1009, 1009)

    def test_non_prime_rejected(self):
        with pytest.raises(InvalidModulusError):
            generate_key_pair_from_primes(1000, 1013)
        with pytest.raises(InvalidModulusError):
            generate_key_pair_from_primes(1, 1013)

    def test_non_integer_rejected(self):
        with pytest.raises(InvalidModulusError):
            generate_key_pair_from_primes("1009", 1013)

    def test_non_invertible_mu_detected(self):
        """p=3, q=7: lambda=6 shares a factor with n=21, so mu does not exist."""
        with pytest.raises(NonInvertibleError):
            generate_key_pair_from_primes(3, 7)

    def test_errors_share_a_base(self):
        assert issubclass(InvalidModulusError, PaillierError)
        assert issubclass(NonInvertibleError, PaillierError)
        assert issubclass(MalformedCiphertextError, PaillierError)

    def test_sampled_key_pair(self):
        pub, priv = generate_key_pair(64)
        assert pub.n.bit_length() in (63, 64)
        assert priv.decrypt(pub.encrypt(123456)) == 123456

    def test_sampled_key_pair_too_small(self):
        with pytest.raises(InvalidModulusError):
            generate_key_pair(8)

    def test_preset_key_pairs(self):
        pub0, _ = preset_key_pair(0)
        pub7, _ = preset_key_pair(7)
        assert pub0.n == 1009 * 1013
        assert pub7.n == 1093 * 1097

    def test_preset_index_out_of_range(self):
        with pytest.raises(InvalidModulusError):
            preset_key_pair(8)
        with pytest.raises(InvalidModulusError):
            preset_key_pair(-1)

    def test_self_test(self):
        pub0, priv0 = preset_key_pair(0)
        pub1, _ = preset_key_pair(1)
        assert self_test(pub0, priv0)
        assert not self_test(pub1, priv0)

    def test_private_key_repr_hides_secrets(self, key_pair):
        _, priv = key_pair
        text = repr(priv)
        assert "hidden" in text
        assert not hasattr(priv, "to_dict")


# =============================================================================
# Encryption / decryption
# =============================================================================


class TestCipher:
    """encrypt / decrypt / homo_add."""

    @pytest.mark.parametrize("m", [0, 1, 1500, 999_999, 1_022_116])
    def test_round_trip(self, key_pair, m):
        pub, priv = key_pair
        assert priv.decrypt(pub.encrypt(m)) == m

    def test_concrete_scenario(self, key_pair):
        """Enc(1500) * Enc(2500) decrypts to 4000."""
        pub, priv = key_pair
        c = pub.homo_add(pub.encrypt(1500), pub.encrypt(2500))
        assert priv.decrypt(c) == 4000

    def test_same_plaintext_different_ciphertexts(self, key_pair):
        pub, _ = key_pair
        assert pub.encrypt(1500) != pub.encrypt(1500)

    def test_semantic_security_many_calls(self):
        pub, priv = generate_key_pair(256)
        ciphertexts = [pub.encrypt(42) for _ in range(20)]
        assert len(set(ciphertexts)) == 20
        assert {priv.decrypt(c) for c in ciphertexts} == {42}

    @pytest.mark.parametrize(
        "a,b",
        [(0, 0), (1, 2), (500_000, 600_000), (1_022_116, 5), (1_022_116, 1_022_116)],
    )
    def test_homomorphic_addition_wraps_mod_n(self, key_pair, a, b):
        pub, priv = key_pair
        c = pub.homo_add(pub.encrypt(a), pub.encrypt(b))
        assert priv.decrypt(c) == (a + b) % pub.n

    def test_homo_sum(self, key_pair):
        pub, priv = key_pair
        values = [10, 20, 30, 40]
        assert priv.decrypt(pub.homo_sum(pub.encrypt(v) for v in values)) == 100

    def test_homo_sum_empty(self, key_pair):
        pub, _ = key_pair
        with pytest.raises(ValueError):
            pub.homo_sum([])

    def test_encrypt_with_randomness_is_deterministic(self, key_pair):
        pub, priv = key_pair
        c1 = pub.encrypt_with_randomness(77, 12345)
        c2 = pub.encrypt_with_randomness(77, 12345)
        assert c1 == c2
        assert priv.decrypt(c1) == 77

    def test_encrypt_and_return_randomness(self, key_pair):
        pub, _ = key_pair
        c, r = pub.encrypt_and_return_randomness(77)
        assert pub.encrypt_with_randomness(77, r) == c

    def test_bad_randomness(self, key_pair):
        pub, _ = key_pair
        with pytest.raises(WrongRandomnessError):
            pub.encrypt_with_randomness(1, 0)
        with pytest.raises(WrongRandomnessError):
            pub.encrypt_with_randomness(1, 1009)

    @pytest.mark.parametrize("m", [-1, 1_022_117, True, 1.5, "10"])
    def test_message_out_of_range(self, key_pair, m):
        pub, _ = key_pair
        with pytest.raises(MessageMalFormedError):
            pub.encrypt(m)

    @pytest.mark.parametrize("c", [-1, 0, 1_022_117 ** 2, 1009, "12345", None])
    def test_malformed_ciphertext(self, key_pair, c):
        _, priv = key_pair
        with pytest.raises(MalformedCiphertextError):
            priv.decrypt(c)

    def test_homo_add_rejects_malformed(self, key_pair):
        pub, _ = key_pair
        with pytest.raises(MalformedCiphertextError):
            pub.homo_add(pub.encrypt(1), pub.n_square)

    def test_foreign_ciphertext_decrypts_to_something(self, key_pair):
        """No integrity check: a ciphertext under another key yields some value in [0, n)."""
        pub, priv = key_pair
        other_pub, _ = preset_key_pair(1)
        c = other_pub.encrypt(5) % pub.n_square
        try:
            m = priv.decrypt(c)
        except MalformedCiphertextError:
            return
        assert 0 <= m < pub.n


# =============================================================================
# Public key serialization
# =============================================================================


class TestPublicKeySerialization:

    def test_to_dict_uses_decimal_strings(self, key_pair):
        pub, _ = key_pair
        assert pub.to_dict() == {"n": "1022117", "g": "1022118"}

    def test_from_dict(self, key_pair):
        pub, _ = key_pair
        assert PublicKey.from_dict(pub.to_dict()) == pub

    def test_from_dict_rejects_wrong_generator(self):
        with pytest.raises(InvalidModulusError):
            PublicKey.from_dict({"n": "1022117", "g": "2"})

    def test_from_dict_rejects_missing_modulus(self):
        with pytest.raises(InvalidModulusError):
            PublicKey.from_dict({})

    def test_invalid_public_modulus(self):
        with pytest.raises(InvalidModulusError):
            PublicKey(1)

    def test_private_key_is_not_a_public_key(self, key_pair):
        _, priv = key_pair
        assert not isinstance(priv, PublicKey)
        assert isinstance(priv, PrivateKey)
