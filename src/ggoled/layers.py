"""Ordered, lock-protected store of drawable layers.

The producer edits the store while the render thread composites it. Each
entry pairs the immutable layer with render state that only the render
thread mutates. Iteration follows insertion order, so later layers are drawn
over earlier ones.
"""

import itertools
import threading
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from dataclasses import dataclass

from ggoled.models import AnimationLayer, DrawLayer, LayerId, ScrollLayer


@dataclass(slots=True)
class AnimationState:
    """Playback position of an animation layer.

    ``next_update`` is a clock reading; None until the first rendered tick.
    """

    ticks: int = 0
    next_update: float | None = None


@dataclass(slots=True)
class ScrollState:
    """Horizontal offset of a scroll layer."""

    x: int = 0


@dataclass(slots=True)
class LayerEntry:
    layer: DrawLayer
    state: AnimationState | ScrollState | None


def _initial_state(layer: DrawLayer) -> AnimationState | ScrollState | None:
    if isinstance(layer, AnimationLayer):
        return AnimationState()
    if isinstance(layer, ScrollLayer):
        return ScrollState()
    return None


class LayerBatch:
    """Edits applied while the store lock is held.

    Obtained from ``LayerStore.batch()``; the render thread cannot observe
    the store between edits of one batch. A batch is unusable once its
    ``with`` block has exited.
    """

    __slots__ = ("_closed", "_store")

    def __init__(self, store: "LayerStore") -> None:
        self._store = store
        self._closed = False

    def close(self) -> None:
        self._closed = True

    def add(self, layer: DrawLayer) -> LayerId:
        return self._live()._add_locked(layer)

    def remove(self, layer_id: LayerId) -> bool:
        return self._live()._entries.pop(layer_id, None) is not None

    def remove_many(self, layer_ids: Iterable[LayerId]) -> None:
        entries = self._live()._entries
        for layer_id in layer_ids:
            entries.pop(layer_id, None)

    def clear(self) -> None:
        self._live()._entries.clear()

    def _live(self) -> "LayerStore":
        if self._closed:
            msg = "Layer batch used after its with block exited"
            raise RuntimeError(msg)
        return self._store


class LayerStore:
    """Insertion-ordered mapping of LayerId to layer and render state.

    Ids start at 1 and are never reused; ``NO_LAYER`` (0) is never issued.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[LayerId, LayerEntry] = {}
        self._counter = itertools.count(1)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, layer_id: object) -> bool:
        with self._lock:
            return layer_id in self._entries

    def ids(self) -> list[LayerId]:
        """Return layer ids in drawing order."""
        with self._lock:
            return list(self._entries)

    def add(self, layer: DrawLayer) -> LayerId:
        with self._lock:
            return self._add_locked(layer)

    def remove(self, layer_id: LayerId) -> bool:
        """Remove a layer. Returns False if it did not exist."""
        with self.batch() as batch:
            return batch.remove(layer_id)

    def remove_many(self, layer_ids: Iterable[LayerId]) -> None:
        with self.batch() as batch:
            batch.remove_many(layer_ids)

    def clear(self) -> None:
        with self.batch() as batch:
            batch.clear()

    def replace(
        self, remove_ids: Iterable[LayerId], layers: Iterable[DrawLayer]
    ) -> list[LayerId]:
        """Atomically remove some layers and add others.

        Returns:
            Ids of the added layers, in order.
        """
        with self.batch() as batch:
            batch.remove_many(remove_ids)
            return [batch.add(layer) for layer in layers]

    @contextmanager
    def batch(self) -> Generator[LayerBatch]:
        """Hold the lock across several edits.

        Example:
            with store.batch() as batch:
                batch.remove_many(old_ids)
                new_id = batch.add(layer)
        """
        with self._lock:
            batch = LayerBatch(self)
            try:
                yield batch
            finally:
                batch.close()

    @contextmanager
    def locked(self) -> Generator[list[LayerEntry]]:
        """Yield the entries in drawing order for one composite pass."""
        with self._lock:
            yield list(self._entries.values())

    def _add_locked(self, layer: DrawLayer) -> LayerId:
        layer_id = LayerId(next(self._counter))
        self._entries[layer_id] = LayerEntry(layer=layer, state=_initial_state(layer))
        return layer_id
