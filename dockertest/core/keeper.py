"""Ordered handle table shared by every container lifecycle stage.

A ``Keeper`` is built once, from the declaration-ordered compositions. The
handle/collision tables it computes are then carried over unchanged while the
stored entities change type: Composition -> PendingContainer ->
RunningContainer. Index ``i`` always refers to the ``i``-th declared
composition, whatever stage its entity is in.
"""

from typing import Callable, Dict, FrozenSet, Generic, Iterable, Iterator, List, TypeVar

from ..models.errors import HandleCollisionError, HandleNotFoundError, ProcessingError

T = TypeVar("T")
U = TypeVar("U")


class Keeper(Generic[T]):
    """Handle -> entity table with collision detection.

    Invariants:
    - every index in ``lookup_handlers`` is a valid index into ``kept``
    - a collided handle is never resolvable, although every entity that
      claimed it stays in ``kept``
    """

    def __init__(
        self,
        kept: List[T],
        lookup_handlers: Dict[str, int],
        lookup_collisions: FrozenSet[str],
    ):
        for handle, index in lookup_handlers.items():
            if not 0 <= index < len(kept):
                raise ProcessingError(
                    f"handle '{handle}' maps to index {index} outside of {len(kept)} entries"
                )
        self._kept = kept
        self._lookup_handlers = lookup_handlers
        self._lookup_collisions = lookup_collisions

    @classmethod
    def build(cls, items: Iterable[T], handle_of: Callable[[T], str]) -> "Keeper[T]":
        """Build a Keeper in one pass over declaration-ordered items.

        The first occurrence of a handle claims its index, any later
        occurrence marks the handle as collided.
        """
        kept = list(items)
        handlers: Dict[str, int] = {}
        collisions = set()

        for index, item in enumerate(kept):
            handle = handle_of(item)
            if handle in handlers:
                collisions.add(handle)
            else:
                handlers[handle] = index

        for handle in collisions:
            del handlers[handle]

        return cls(kept, handlers, frozenset(collisions))

    def transform(self, kept: List[U]) -> "Keeper[U]":
        """Return a Keeper over the next lifecycle stage of the same entities.

        ``kept`` must hold exactly one entity per declared composition, in
        declaration order.
        """
        if len(kept) != len(self._kept):
            raise ProcessingError(
                f"lifecycle stage produced {len(kept)} entities, expected {len(self._kept)}"
            )
        return Keeper(list(kept), self._lookup_handlers, self._lookup_collisions)

    def resolve(self, handle: str) -> T:
        """Return the entity declared with ``handle``.

        Raises:
            HandleCollisionError: the handle was declared more than once
            HandleNotFoundError: the handle was never declared
        """
        if handle in self._lookup_collisions:
            raise HandleCollisionError(handle)
        index = self._lookup_handlers.get(handle)
        if index is None:
            raise HandleNotFoundError(handle)
        return self._kept[index]

    def index_of(self, handle: str) -> int:
        """Declaration index of ``handle``, with the same errors as resolve()."""
        self.resolve(handle)
        return self._lookup_handlers[handle]

    def is_collision(self, handle: str) -> bool:
        return handle in self._lookup_collisions

    @property
    def collisions(self) -> FrozenSet[str]:
        return self._lookup_collisions

    @property
    def kept(self) -> List[T]:
        """Entities in declaration order."""
        return self._kept

    def __iter__(self) -> Iterator[T]:
        return iter(self._kept)

    def __len__(self) -> int:
        return len(self._kept)

    def __getitem__(self, index: int) -> T:
        return self._kept[index]
