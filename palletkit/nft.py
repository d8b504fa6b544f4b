"""Non-fungible token registry: classes of tokens that can be minted, moved and burned."""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Hashable

U64_MAX = 2**64 - 1

TokenKey = tuple[int, int]


class NftErrorKind(enum.Enum):
    """Reasons an NFT operation can be refused."""

    NO_AVAILABLE_CLASS_ID = "no available class id"
    NO_AVAILABLE_TOKEN_ID = "no available token id"
    TOKEN_NOT_FOUND = "token not found"
    CLASS_NOT_FOUND = "class not found"
    NO_PERMISSION = "no permission"
    NUM_OVERFLOW = "arithmetic overflow"
    CANNOT_DESTROY_CLASS = "cannot destroy class with issued tokens"


class NftError(Exception):
    """Raised when an NFT operation fails; the state is left unchanged."""

    def __init__(self, kind: NftErrorKind) -> None:
        super().__init__(kind.value)
        self.kind = kind


@dataclass
class ClassInfo:
    """A token class: its metadata, issuance, owner and properties."""

    metadata: bytes
    total_issuance: int
    owner: Hashable
    data: Any = None


@dataclass
class TokenInfo:
    """A single token: its metadata, owner and properties."""

    metadata: bytes
    owner: Hashable
    data: Any = None


class NonFungibleTokens:
    """In-memory store of NFT classes and tokens."""

    def __init__(self, max_class_id: int = U64_MAX, max_token_id: int = U64_MAX) -> None:
        self.max_class_id = max_class_id
        self.max_token_id = max_token_id
        self.next_class_id = 0
        self._next_token_id: dict[int, int] = {}
        self._classes: dict[int, ClassInfo] = {}
        self._tokens: dict[TokenKey, TokenInfo] = {}
        self._by_owner: dict[Hashable, set[TokenKey]] = {}

    @classmethod
    def from_genesis(
        cls,
        tokens: Iterable[tuple[Hashable, bytes, Any, Iterable[tuple[Hashable, bytes, Any]]]],
        max_class_id: int = U64_MAX,
        max_token_id: int = U64_MAX,
    ) -> "NonFungibleTokens":
        """Build a registry from (owner, metadata, data, [(account, metadata, data), ...]) entries."""
        registry = cls(max_class_id, max_token_id)
        for owner, metadata, data, class_tokens in tokens:
            class_id = registry.create_class(owner, metadata, data)
            for account, token_metadata, token_data in class_tokens:
                registry.mint(account, class_id, token_metadata, token_data)
        return registry

    def create_class(self, owner: Hashable, metadata: bytes, data: Any = None) -> int:
        """Create a class owned by `owner` and return its id."""
        class_id = self.next_class_id
        if class_id + 1 > self.max_class_id:
            raise NftError(NftErrorKind.NO_AVAILABLE_CLASS_ID)
        self.next_class_id = class_id + 1
        self._classes[class_id] = ClassInfo(bytes(metadata), 0, owner, data)
        return class_id

    def transfer(self, from_: Hashable, to: Hashable, token: TokenKey) -> None:
        """Move `token` from `from_` to `to`."""
        token = tuple(token)
        info = self._tokens.get(token)
        if info is None:
            raise NftError(NftErrorKind.TOKEN_NOT_FOUND)
        if info.owner != from_:
            raise NftError(NftErrorKind.NO_PERMISSION)
        if from_ == to:
            return
        info.owner = to
        self._discard_owned(from_, token)
        self._by_owner.setdefault(to, set()).add(token)

    def mint(self, owner: Hashable, class_id: int, metadata: bytes, data: Any = None) -> int:
        """Mint a new token of `class_id` to `owner` and return its id."""
        token_id = self._next_token_id.get(class_id, 0)
        if token_id + 1 > self.max_token_id:
            raise NftError(NftErrorKind.NO_AVAILABLE_TOKEN_ID)
        class_info = self._classes.get(class_id)
        if class_info is None:
            raise NftError(NftErrorKind.CLASS_NOT_FOUND)
        if class_info.total_issuance + 1 > self.max_token_id:
            raise NftError(NftErrorKind.NUM_OVERFLOW)

        self._next_token_id[class_id] = token_id + 1
        class_info.total_issuance += 1
        key = (class_id, token_id)
        self._tokens[key] = TokenInfo(bytes(metadata), owner, data)
        self._by_owner.setdefault(owner, set()).add(key)
        return token_id

    def burn(self, owner: Hashable, token: TokenKey) -> None:
        """Destroy `token`, which must belong to `owner`."""
        token = tuple(token)
        info = self._tokens.get(token)
        if info is None:
            raise NftError(NftErrorKind.TOKEN_NOT_FOUND)
        if info.owner != owner:
            raise NftError(NftErrorKind.NO_PERMISSION)
        class_info = self._classes.get(token[0])
        if class_info is None:
            raise NftError(NftErrorKind.CLASS_NOT_FOUND)
        if class_info.total_issuance == 0:
            raise NftError(NftErrorKind.NUM_OVERFLOW)

        class_info.total_issuance -= 1
        del self._tokens[token]
        self._discard_owned(owner, token)

    def destroy_class(self, owner: Hashable, class_id: int) -> None:
        """Remove a class that `owner` owns and that has no tokens left."""
        info = self._classes.get(class_id)
        if info is None:
            raise NftError(NftErrorKind.CLASS_NOT_FOUND)
        if info.owner != owner:
            raise NftError(NftErrorKind.NO_PERMISSION)
        if info.total_issuance != 0:
            raise NftError(NftErrorKind.CANNOT_DESTROY_CLASS)
        del self._classes[class_id]
        self._next_token_id.pop(class_id, None)

    def is_owner(self, account: Hashable, token: TokenKey) -> bool:
        """Whether `account` holds `token`."""
        return tuple(token) in self._by_owner.get(account, ())

    def next_token_id(self, class_id: int) -> int:
        """The id the next token minted in `class_id` will get."""
        return self._next_token_id.get(class_id, 0)

    def class_info(self, class_id: int) -> ClassInfo | None:
        """The class record, or None if it does not exist."""
        return self._classes.get(class_id)

    def token_info(self, class_id: int, token_id: int) -> TokenInfo | None:
        """The token record, or None if it does not exist."""
        return self._tokens.get((class_id, token_id))

    def tokens_by_owner(self, account: Hashable) -> frozenset[TokenKey]:
        """All (class_id, token_id) pairs held by `account`."""
        return frozenset(self._by_owner.get(account, ()))

    def _discard_owned(self, account: Hashable, token: TokenKey) -> None:
        owned = self._by_owner.get(account)
        if owned is not None:
            owned.discard(token)
            if not owned:
                del self._by_owner[account]