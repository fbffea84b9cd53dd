import secrets
import gmpy2
from Crypto.Util.number import getPrime, isPrime

from homoledger import config
from homoledger.common.errors import RandomnessExhaustedError


def sample_coprime(n: int, max_tries: int = None) -> gmpy2.mpz:
    """
    Samples a uniformly random integer r where 0 < r < n and gcd(r, n) == 1.

    The draw uses the `secrets` CSPRNG. For a modulus with two large prime
    factors almost every draw succeeds, so the bound only trips on degenerate
    moduli.
    """
    if max_tries is None:
        max_tries = config.MAX_COPRIME_RETRIES
    n = gmpy2.mpz(n)
    if n < 2:
        raise ValueError("Modulus must be at least 2 to sample from [1, n-1]")
    for _ in range(max_tries):
        r = gmpy2.mpz(secrets.randbelow(int(n) - 1) + 1)
        if gmpy2.gcd(r, n) == 1:
            return r
    raise RandomnessExhaustedError(
        f"No value coprime to the modulus found after {max_tries} draws"
    )


def is_probable_prime(x: int) -> bool:
    """Probabilistic primality test (Miller-Rabin rounds via pycryptodome)."""
    if x < 2:
        return False
    return bool(isPrime(int(x)))


def random_prime(bits: int) -> int:
    """Returns a random prime of exactly `bits` bits."""
    return int(getPrime(bits, randfunc=secrets.token_bytes))


def is_in_interval(x: int, bound: int) -> bool:
    """Checks if x is in the interval [0, bound)."""
    return 0 <= x < bound


def check_invertible_and_valid_mod(modulus: int, *vals: int) -> bool:
    """
    Checks if all provided values are in the range (0, modulus) and are
    relatively prime to the modulus.
    """
    for v in vals:
        if not (0 < v < modulus):
            return False
        if gmpy2.gcd(v, modulus) != 1:
            return False
    return True


def circular_distance(a: int, b: int, modulus: int) -> int:
    """Distance between a and b on the ring Z_modulus (0 <= result <= modulus // 2)."""
    d = (a - b) % modulus
    return min(d, modulus - d)
