"""
A single-snapshot reactive state store.

The snapshot is a frozen dataclass. Every `set` builds a new snapshot by merging
the partial update one level deep (nested lists and dicts are replaced, never
merged) and synchronously notifies all subscribers with `(new, old)`.
"""

import dataclasses
from typing import Any, Callable, Dict, Generic, List, Mapping, TypeVar, Union

T = TypeVar("T")

Listener = Callable[[T, T], None]
Partial = Union[Mapping[str, Any], Callable[[T], Mapping[str, Any]]]


class StateStore(Generic[T]):
    """Holds the one and only copy of session state."""

    def __init__(self, initial_state: T):
        if not dataclasses.is_dataclass(initial_state):
            raise TypeError("StateStore requires a dataclass instance as its state.")
        self._state: T = initial_state
        self._listeners: List[Listener] = []
        self._fields = {f.name for f in dataclasses.fields(initial_state)}

    def get(self) -> T:
        """Returns the current immutable snapshot."""
        return self._state

    def set(self, partial: Partial) -> T:
        """
        Merges `partial` into the snapshot and notifies every subscriber.

        Args:
            partial: A mapping of field names to new values, or a function that
                receives the previous snapshot and returns such a mapping.

        Returns:
            The new snapshot.
        """
        prev_state = self._state
        update: Dict[str, Any] = dict(
            partial(prev_state) if callable(partial) else partial
        )
        unknown = set(update) - self._fields
        if unknown:
            raise TypeError(f"Unknown state fields: {', '.join(sorted(unknown))}")

        self._state = dataclasses.replace(prev_state, **update)
        for listener in list(self._listeners):
            listener(self._state, prev_state)
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def teardown(self) -> None:
        self._listeners.clear()
