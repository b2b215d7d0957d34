"""
Global ID Allocation

Every layer binding owns a palette numbered 1..count. For export the
palettes are laid end to end in one global namespace:

    offset(first) = 1
    offset(next)  = offset(prev) + count(prev)

Bindings are ordered by layer priority (collision, background, object,
event, enemy, npc) and then by tileset file name, so the same set of
bindings always yields the same table. The table is recomputed on demand and
never persisted.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union
import numpy as np

from .errors import InvalidInputError, NotFoundError
from .layers import LayerTilesetBinding, LayerType, TileLayer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationEntry:
    """One binding's slice of the global namespace."""
    binding: LayerTilesetBinding
    offset: int
    count: int

    @property
    def first_id(self) -> int:
        return self.offset

    @property
    def last_id(self) -> int:
        """Last global ID (offset - 1 when the palette is empty)."""
        return self.offset + self.count - 1

    def contains(self, global_id: int) -> bool:
        return self.offset <= global_id <= self.last_id


def allocation_key(binding: LayerTilesetBinding) -> Tuple[int, str]:
    return (binding.layer_type.priority, binding.file_name)


class GlobalAllocationTable:
    """
    Contiguous, non-overlapping global ID ranges for a set of bindings.
    """

    def __init__(self, entries: List[AllocationEntry]):
        self._entries = list(entries)

    @classmethod
    def allocate(cls, bindings: Iterable[LayerTilesetBinding]) -> "GlobalAllocationTable":
        """
        Build the table.

        Args:
            bindings: Current layer bindings (any order)

        Returns:
            GlobalAllocationTable covering 1..total_count
        """
        ordered = sorted(bindings, key=allocation_key)
        entries = []
        offset = 1
        for binding in ordered:
            entries.append(AllocationEntry(binding, offset, binding.count))
            offset += binding.count

        table = cls(entries)
        logger.debug(
            "Allocated %d global IDs over %d tilesets", table.total_count, len(entries)
        )
        return table

    @property
    def entries(self) -> List[AllocationEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))

    @property
    def total_count(self) -> int:
        return sum(e.count for e in self._entries)

    def entry_for(self, key: Union[LayerTilesetBinding, LayerType, str]) -> AllocationEntry:
        """
        Find the entry for a binding or a layer type.

        Args:
            key: Binding object, LayerType, or layer type name
        """
        if isinstance(key, LayerTilesetBinding):
            for entry in self._entries:
                if entry.binding is key:
                    return entry
            raise NotFoundError(f"Binding for {key.layer_type.value} is not allocated")

        layer_type = LayerType.parse(key)
        for entry in self._entries:
            if entry.binding.layer_type == layer_type:
                return entry
        raise NotFoundError(f"No tileset bound to the {layer_type.value} layer")

    def global_id(self, key: Union[LayerTilesetBinding, LayerType, str], local_gid: int) -> int:
        """
        Translate a local GID.

        Args:
            key: Binding or layer type the GID belongs to
            local_gid: Palette GID (0 = empty)

        Returns:
            offset + local_gid - 1, or 0 for an empty cell
        """
        if local_gid == 0:
            return 0
        entry = self.entry_for(key)
        if local_gid < 0 or local_gid > entry.count:
            raise InvalidInputError(
                f"Local GID {local_gid} outside 1..{entry.count} for {entry.binding.layer_type.value}"
            )
        return entry.offset + local_gid - 1

    def resolve(self, global_id: int) -> Tuple[LayerTilesetBinding, int]:
        """
        Translate a global ID back to (binding, local GID).
        """
        for entry in self._entries:
            if entry.contains(global_id):
                return entry.binding, global_id - entry.offset + 1
        raise NotFoundError(f"Global ID {global_id} outside 1..{self.total_count}")

    def translate_layer(
        self,
        layer: TileLayer,
        binding: Optional[LayerTilesetBinding] = None
    ) -> np.ndarray:
        """
        Translate a whole layer grid to global IDs.

        Cells referencing GIDs beyond the palette (left over from a palette
        edit without retargeting) are exported as 0 and reported.

        Args:
            layer: Layer to translate
            binding: Binding to use; looked up by layer type if None

        Returns:
            int array (height, width) of global IDs
        """
        if binding is None:
            try:
                entry = self.entry_for(layer.layer_type)
            except NotFoundError:
                entry = None
        else:
            entry = self.entry_for(binding)

        data = layer.data.astype(np.int64)
        if entry is None:
            if np.any(data):
                logger.warning(
                    "Layer %r has painted cells but no tileset; exporting it empty", layer.name
                )
            return np.zeros_like(data)

        stale = data > entry.count
        if np.any(stale):
            logger.warning(
                "Layer %r: %d cells reference GIDs beyond the %d-region palette; exported as 0",
                layer.name, int(np.count_nonzero(stale)), entry.count
            )
        return np.where((data > 0) & ~stale, data + entry.offset - 1, 0)
