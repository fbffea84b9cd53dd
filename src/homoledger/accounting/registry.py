from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence
import logging

from homoledger import config
from homoledger.common.errors import NonInvertibleError
from homoledger.common.paillier import (
    PublicKey,
    PrivateKey,
    generate_key_pair,
    generate_key_pair_from_primes,
    preset_key_pair,
    self_test,
)
from homoledger.accounting.errors import (
    DuplicateIdError,
    DuplicateKeyError,
    UnknownPartyError,
    RegistryFrozenError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PartyRecord:
    """Public view of a registered party. The private key is not part of it."""

    id: str
    name: str
    public_key: PublicKey


class PartyRegistry:
    """
    Maps party ids to their Paillier key pairs and is the only holder of
    private keys.

    The registry is populated once at the start of a fiscal period and then
    frozen; after that it is only read and can be shared between threads
    without locking.
    """

    def __init__(self):
        self._parties: Dict[str, PartyRecord] = {}
        self._private_keys: Dict[str, PrivateKey] = {}
        # Modulus -> owning party id. No two parties may share a key pair.
        self._moduli: Dict[int, str] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> "PartyRegistry":
        """Marks the registry read-only. Further registrations raise RegistryFrozenError."""
        self._frozen = True
        logger.info("Party registry frozen with %d parties", len(self._parties))
        return self

    def register(
        self,
        party_id: str,
        public_key: PublicKey,
        private_key: PrivateKey,
        name: Optional[str] = None,
    ) -> PartyRecord:
        """
        Registers a party with its key pair.

        Raises:
            RegistryFrozenError: the registry has been frozen.
            DuplicateIdError: the id is already registered.
            DuplicateKeyError: another party already holds this modulus.
            ValueError: the id is empty, or the keys do not share a modulus.
        """
        self._check_new_id(party_id)
        if not isinstance(public_key, PublicKey) or not isinstance(private_key, PrivateKey):
            raise TypeError("register expects a PublicKey and a PrivateKey")
        if public_key.n != private_key.n:
            raise ValueError(f"Key pair for {party_id!r} does not share a modulus")
        if public_key.n in self._moduli:
            raise DuplicateKeyError(
                f"Cannot register {party_id!r}: its modulus is already held by "
                f"{self._moduli[public_key.n]!r}"
            )

        party = PartyRecord(
            id=party_id, name=party_id if name is None else name, public_key=public_key
        )
        self._parties[party_id] = party
        self._private_keys[party_id] = private_key
        self._moduli[public_key.n] = party_id
        logger.info("Registered party %s (n has %d bits)", party_id, public_key.n.bit_length())
        return party

    def register_generated(
        self,
        party_id: str,
        p: Optional[int] = None,
        q: Optional[int] = None,
        bits: Optional[int] = None,
        name: Optional[str] = None,
    ) -> PartyRecord:
        """
        Generates a key pair (from p and q when given, otherwise from a sampled
        modulus of `bits` bits), checks it with an encrypt/decrypt probe and
        registers it.
        """
        if (p is None) != (q is None):
            raise ValueError("Provide both p and q, or neither")
        if p is not None:
            public_key, private_key = generate_key_pair_from_primes(p, q)
        else:
            public_key, private_key = generate_key_pair(bits or config.DEFAULT_MODULUS_BITS)
        return self._register_tested(party_id, public_key, private_key, name)

    def populate(
        self, party_ids: Sequence[str], names: Optional[Sequence[str]] = None
    ) -> List[PartyRecord]:
        """
        Registers each id with the next preset prime pair not already in use.

        All ids and key pairs are checked before anything is registered, so a
        failing call leaves the registry unchanged.
        """
        if names is not None and len(names) != len(party_ids):
            raise ValueError("names must match party_ids in length")
        seen = set()
        for party_id in party_ids:
            self._check_new_id(party_id)
            if party_id in seen:
                raise DuplicateIdError(f"Party {party_id!r} appears twice in populate")
            seen.add(party_id)

        key_pairs = []
        index = 0
        while len(key_pairs) < len(party_ids):
            # Raises InvalidModulusError once the presets run out.
            public_key, private_key = preset_key_pair(index)
            index += 1
            if public_key.n not in self._moduli:
                key_pairs.append((public_key, private_key))

        parties = []
        for i, (party_id, (public_key, private_key)) in enumerate(zip(party_ids, key_pairs)):
            name = names[i] if names is not None else None
            parties.append(self._register_tested(party_id, public_key, private_key, name))
        return parties

    def _check_new_id(self, party_id) -> None:
        if self._frozen:
            raise RegistryFrozenError(f"Cannot register {party_id!r}: registry is frozen")
        if not isinstance(party_id, str) or not party_id:
            raise ValueError("Party id must be a non-empty string")
        if party_id in self._parties:
            raise DuplicateIdError(f"Party {party_id!r} is already registered")

    def _register_tested(
        self, party_id: str, public_key: PublicKey, private_key: PrivateKey, name
    ) -> PartyRecord:
        if not self_test(public_key, private_key):
            raise NonInvertibleError(f"Generated key pair for {party_id!r} failed its self test")
        return self.register(party_id, public_key, private_key, name=name)

    def party(self, party_id: str) -> PartyRecord:
        try:
            return self._parties[party_id]
        except KeyError:
            raise UnknownPartyError(f"Unknown party {party_id!r}") from None

    def public_key_of(self, party_id: str) -> PublicKey:
        return self.party(party_id).public_key

    def private_key_of(self, party_id: str) -> PrivateKey:
        """
        Returns the party's private key.

        Only the owning party's own context may call this; in a deployment the
        call never crosses a trust boundary.
        """
        try:
            return self._private_keys[party_id]
        except KeyError:
            raise UnknownPartyError(f"Unknown party {party_id!r}") from None

    def party_ids(self) -> List[str]:
        return list(self._parties)

    def __contains__(self, party_id) -> bool:
        return party_id in self._parties

    def __len__(self) -> int:
        return len(self._parties)

    def __iter__(self) -> Iterator[PartyRecord]:
        return iter(list(self._parties.values()))
