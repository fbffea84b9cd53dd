class LedgerError(Exception):
    """Base exception for the accounting layer."""

    pass


class RegistryError(LedgerError):
    """Raised when the party registry is misused."""

    pass


class DuplicateIdError(RegistryError):
    """Raised when a party id is registered twice."""

    pass


class UnknownPartyError(RegistryError):
    """Raised when a party id has no registry entry."""

    pass


class RegistryFrozenError(RegistryError):
    """Raised when registering into a registry that has been frozen."""

    pass


class DecryptionMismatchError(LedgerError):
    """Raised on request when a decrypted amount differs from the claimed amount."""

    pass


class DuplicateKeyError(RegistryError):
    """Raised when a public key modulus is already held by another party."""

    pass
