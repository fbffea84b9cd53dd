class PaillierError(Exception):
    """Base exception for Paillier-related errors."""

    pass


class InvalidModulusError(PaillierError):
    """Raised when key generation input cannot form a valid modulus."""

    pass


class NonInvertibleError(PaillierError):
    """Raised when mu = L(g^lambda mod n^2)^-1 mod n does not exist."""

    pass


class RandomnessExhaustedError(PaillierError):
    """Raised when rejection sampling fails to find a usable value within its bound."""

    pass


class MalformedCiphertextError(PaillierError):
    """Raised when a ciphertext is not an integer in [0, N^2) coprime to N."""

    pass


class MessageMalFormedError(PaillierError):
    """Raised when a message is malformed (e.g., not in [0, N-1])."""

    pass


class WrongRandomnessError(PaillierError):
    """Raised when provided randomness is cryptographically invalid."""

    pass
