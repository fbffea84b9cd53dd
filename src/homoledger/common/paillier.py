"""
This module provides the Paillier additively homomorphic cryptosystem used by
the ledger: key generation, encryption, decryption and homomorphic addition.
All large-integer arithmetic goes through gmpy2; values returned to callers
are plain Python ints.
"""

from typing import Iterable, Optional, Tuple, Union
import logging
import gmpy2

from homoledger import config
from homoledger.common.errors import (
    PaillierError,
    InvalidModulusError,
    NonInvertibleError,
    MalformedCiphertextError,
    MessageMalFormedError,
    WrongRandomnessError,
)
from homoledger.common.numbers import (
    sample_coprime,
    is_probable_prime,
    random_prime,
    is_in_interval,
    check_invertible_and_valid_mod,
)

logger = logging.getLogger(__name__)


def _is_int(x) -> bool:
    return isinstance(x, (int, type(gmpy2.mpz(0)))) and not isinstance(x, bool)


# --- Core Classes ---


class PublicKey:
    """
    Represents the public part of a Paillier key pair: the modulus n and the
    generator g = n + 1. Immutable once created and safe to share.
    """

    def __init__(self, n: Union[int, gmpy2.mpz]):
        if not _is_int(n) or n <= 1:
            raise InvalidModulusError("Public modulus n must be an integer greater than 1")
        self._n: gmpy2.mpz = gmpy2.mpz(n)
        self._ns: gmpy2.mpz = self._n * self._n
        self._g: gmpy2.mpz = self._n + 1

    @property
    def n(self) -> int:
        return int(self._n)

    @property
    def g(self) -> int:
        return int(self._g)

    @property
    def n_square(self) -> int:
        return int(self._ns)

    def __eq__(self, other) -> bool:
        return isinstance(other, PublicKey) and self._n == other._n

    def __hash__(self) -> int:
        return hash(("PublicKey", int(self._n)))

    def __repr__(self) -> str:
        return f"PublicKey(n={int(self._n)})"

    def validate_ciphertext(self, c) -> gmpy2.mpz:
        """
        Checks that `c` can be a ciphertext under this key and returns it as mpz.

        Raises MalformedCiphertextError for non-integers, values outside
        [0, N^2) and values sharing a factor with N^2.
        """
        if not _is_int(c):
            raise MalformedCiphertextError(
                f"Ciphertext must be an integer, got {type(c).__name__}"
            )
        c = gmpy2.mpz(c)
        if not is_in_interval(c, self._ns):
            raise MalformedCiphertextError("Ciphertext must be in the range [0, N^2-1]")
        if not check_invertible_and_valid_mod(self._ns, c):
            raise MalformedCiphertextError("Ciphertext is not relatively prime to N^2")
        return c

    def _check_message(self, m) -> gmpy2.mpz:
        if not _is_int(m):
            raise MessageMalFormedError(
                f"Message must be an integer, got {type(m).__name__}"
            )
        if not is_in_interval(m, self._n):
            raise MessageMalFormedError("Message must be in the range [0, N-1]")
        return gmpy2.mpz(m)

    def encrypt_and_return_randomness(self, m: int) -> Tuple[int, int]:
        """Encrypts a message and returns the ciphertext and randomness used."""
        m = self._check_message(m)
        r = sample_coprime(self._n)

        gm = gmpy2.powmod(self._g, m, self._ns)
        rn = gmpy2.powmod(r, self._n, self._ns)
        c = (gm * rn) % self._ns
        logger.debug("Encrypted a plaintext under n=%d", int(self._n))
        return int(c), int(r)

    def encrypt(self, m: int) -> int:
        """
        Encrypts m in [0, N) as c = g^m * r^N mod N^2 with fresh randomness r.

        Two encryptions of the same message differ with overwhelming
        probability; compare decryptions, never ciphertexts.
        """
        c, _ = self.encrypt_and_return_randomness(m)
        return c

    def encrypt_with_randomness(self, m: int, r: int) -> int:
        """Encrypts a message using a specified random value `r`."""
        m = self._check_message(m)
        if not _is_int(r) or not check_invertible_and_valid_mod(self._n, gmpy2.mpz(r)):
            raise WrongRandomnessError(
                "Randomness must be a positive integer relatively prime to N"
            )
        gm = gmpy2.powmod(self._g, m, self._ns)
        rn = gmpy2.powmod(gmpy2.mpz(r), self._n, self._ns)
        return int((gm * rn) % self._ns)

    def homo_add(self, c1: int, c2: int) -> int:
        """Homomorphically adds two ciphertexts: Dec(c1 * c2) = m1 + m2 mod N."""
        a = self.validate_ciphertext(c1)
        b = self.validate_ciphertext(c2)
        return int((a * b) % self._ns)

    def homo_sum(self, ciphertexts: Iterable[int]) -> int:
        """Folds homo_add over a non-empty iterable of ciphertexts."""
        acc: Optional[gmpy2.mpz] = None
        for c in ciphertexts:
            c = self.validate_ciphertext(c)
            acc = c if acc is None else (acc * c) % self._ns
        if acc is None:
            raise ValueError("homo_sum needs at least one ciphertext")
        return int(acc)

    def as_ints(self):
        """Serializes the PublicKey to a list of integers for hashing."""
        return [int(self._n), int(self._g)]

    def to_dict(self) -> dict:
        """Serializes n and g as decimal strings."""
        return {"n": str(int(self._n)), "g": str(int(self._g))}

    @classmethod
    def from_dict(cls, data: dict) -> "PublicKey":
        try:
            n = int(data["n"])
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidModulusError(f"Public key needs a decimal modulus 'n': {e}")
        key = cls(n)
        if "g" in data and int(data["g"]) != key.g:
            raise InvalidModulusError("Public key generator must be g = n + 1")
        return key


class PrivateKey:
    """
    Represents a Paillier private key {n, lambda, mu}.

    Has no serialization method. Private keys stay with the registry that
    owns them.
    """

    def __init__(
        self,
        n: Union[int, gmpy2.mpz],
        lambda_n: Union[int, gmpy2.mpz],
        mu: Union[int, gmpy2.mpz],
    ):
        self._public = PublicKey(n)
        self._n: gmpy2.mpz = gmpy2.mpz(n)
        self._ns: gmpy2.mpz = self._n * self._n
        self._lambda: gmpy2.mpz = gmpy2.mpz(lambda_n)
        self._mu: gmpy2.mpz = gmpy2.mpz(mu)

    @property
    def n(self) -> int:
        return int(self._n)

    @property
    def public_key(self) -> PublicKey:
        return self._public

    def __repr__(self) -> str:
        return f"PrivateKey(n={int(self._n)}, lambda=<hidden>, mu=<hidden>)"

    def _L(self, u: gmpy2.mpz) -> gmpy2.mpz:
        """Implements the Paillier L function: L(u) = (u - 1) // N."""
        return (u - 1) // self._n

    def decrypt(self, c: int) -> int:
        """
        Decrypts a ciphertext: m = L(c^lambda mod N^2) * mu mod N.

        Paillier has no integrity check: any well-formed ciphertext decrypts
        to some value in [0, N), so callers compare against what they expect.
        """
        c = self._public.validate_ciphertext(c)
        c_pow_lambda = gmpy2.powmod(c, self._lambda, self._ns)
        m = (self._L(c_pow_lambda) * self._mu) % self._n
        logger.debug("Decrypted a ciphertext under n=%d", int(self._n))
        return int(m)


# --- Key Generation ---


def generate_key_pair_from_primes(p: int, q: int) -> Tuple[PublicKey, PrivateKey]:
    """
    Builds a Paillier key pair from two distinct primes.

    Returns:
        A tuple of (public_key, private_key). p and q are not retained.

    Raises:
        InvalidModulusError: p == q, or either value is not a prime.
        NonInvertibleError: L(g^lambda mod n^2) has no inverse modulo n.
    """
    if not _is_int(p) or not _is_int(q):
        raise InvalidModulusError("Primes p and q must be integers")
    if p == q:
        raise InvalidModulusError("Primes p and q must be distinct")
    if not is_probable_prime(p) or not is_probable_prime(q):
        raise InvalidModulusError("Both p and q must be prime")

    p, q = gmpy2.mpz(p), gmpy2.mpz(q)
    n = p * q
    n_square = n * n
    g = n + 1
    # lambda is the Carmichael function, lcm(p-1, q-1) for n=pq.
    lambda_n = ((p - 1) * (q - 1)) // gmpy2.gcd(p - 1, q - 1)

    lg = (gmpy2.powmod(g, lambda_n, n_square) - 1) // n
    if gmpy2.gcd(lg, n) != 1:
        raise NonInvertibleError("Could not compute modular inverse of L(g^lambda)")
    mu = gmpy2.invert(lg, n)

    logger.debug("Generated Paillier key pair with a %d-bit modulus", n.bit_length())
    return PublicKey(n), PrivateKey(n, lambda_n, mu)


def generate_key_pair(modulus_bit_len: int = None) -> Tuple[PublicKey, PrivateKey]:
    """Samples two distinct primes of modulus_bit_len // 2 bits and builds a key pair."""
    if modulus_bit_len is None:
        modulus_bit_len = config.DEFAULT_MODULUS_BITS
    if modulus_bit_len < config.MIN_MODULUS_BITS:
        raise InvalidModulusError(
            f"Modulus must be at least {config.MIN_MODULUS_BITS} bits"
        )
    prime_bits = modulus_bit_len // 2

    p = random_prime(prime_bits)
    q = random_prime(prime_bits)
    while p == q:
        q = random_prime(prime_bits)
    return generate_key_pair_from_primes(p, q)


def preset_key_pair(index: int) -> Tuple[PublicKey, PrivateKey]:
    """Builds the key pair for one of the fixed prime pairs in config.PRESET_PRIME_PAIRS."""
    if not 0 <= index < len(config.PRESET_PRIME_PAIRS):
        raise InvalidModulusError(
            f"Preset index {index} exceeds available prime pairs "
            f"({len(config.PRESET_PRIME_PAIRS)})"
        )
    p, q = config.PRESET_PRIME_PAIRS[index]
    return generate_key_pair_from_primes(p, q)


def self_test(public_key: PublicKey, private_key: PrivateKey, value: int = None) -> bool:
    """Encrypts and decrypts a probe value to check that the two keys belong together."""
    if value is None:
        value = config.SELF_TEST_VALUE
    value %= public_key.n
    try:
        return private_key.decrypt(public_key.encrypt(value)) == value
    except MalformedCiphertextError:
        return False
