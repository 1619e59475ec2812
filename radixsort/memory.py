"""Device memory access primitives used by the emulated kernels.

Every function works on a batch of blocks at once: ``offsets`` and
``valid_counts`` carry one entry per block, and the result has the block as
its leading axis. Cache modifiers mirror the ld/st variants a real kernel
would pick; the emulator accepts them but they do not change any value.
"""

import numpy as np

from .policy import CacheModifier


def tile_indices(offsets, tile_elements):
    return np.asarray(offsets, dtype=np.int64)[:, None] + np.arange(tile_elements, dtype=np.int64)[None, :]


def load_tile_vectorized(buffer, offsets, tile_elements, vec_size, modifier=CacheModifier.CA):
    """Unguarded load of whole tiles as ``vec_size``-wide vector transactions."""
    assert tile_elements % vec_size == 0
    offsets = np.asarray(offsets, dtype=np.int64)
    vector_starts = offsets[:, None] + np.arange(0, tile_elements, vec_size, dtype=np.int64)[None, :]
    vectors = buffer[vector_starts[..., None] + np.arange(vec_size, dtype=np.int64)]
    return vectors.reshape(len(offsets), tile_elements)


def load_tile_guarded(buffer, offsets, valid_counts, tile_elements, oob_value, modifier=CacheModifier.NONE):
    """Element-wise load; slots at or beyond ``valid_counts`` read ``oob_value``."""
    indices = tile_indices(offsets, tile_elements)
    in_range = np.arange(tile_elements)[None, :] < np.asarray(valid_counts)[:, None]
    tile = np.full(indices.shape, oob_value, dtype=buffer.dtype)
    tile[in_range] = buffer[indices[in_range]]
    return tile


def load_tiles(buffer, offsets, valid_counts, tile_elements, vec_size, oob_value, modifier=CacheModifier.CA):
    """Full tiles take the vector path when ``vec_size > 1``; the rest are guarded."""
    valid_counts = np.asarray(valid_counts)
    offsets = np.asarray(offsets, dtype=np.int64)
    full = valid_counts == tile_elements
    if vec_size == 1 or not full.any():
        return load_tile_guarded(buffer, offsets, valid_counts, tile_elements, oob_value, modifier)
    tile = np.empty((len(offsets), tile_elements), dtype=buffer.dtype)
    tile[full] = load_tile_vectorized(buffer, offsets[full], tile_elements, vec_size, modifier)
    partial = ~full
    if partial.any():
        tile[partial] = load_tile_guarded(
            buffer, offsets[partial], valid_counts[partial], tile_elements, oob_value, modifier)
    return tile


def store_guarded(buffer, addresses, items, mask, modifier=CacheModifier.NONE):
    buffer[np.asarray(addresses)[mask]] = np.asarray(items)[mask]
