import numpy as np

from .errors import ConfigurationError


class DispatchConfig:
    """Grid size and even-share tile distribution for one sort call.

    Each block owns a contiguous run of whole tiles. The first
    ``num_blocks - num_blocks_with_extra_tile`` blocks take
    ``tiles_per_block`` tiles, the rest take one more. Only the very last
    tile of the problem may be partial.
    """

    def __init__(self, num_keys, policy, properties, grid_size=None):
        self.num_keys = num_keys
        self.tile_elements = policy.tile_elements
        self.num_tiles = (num_keys + self.tile_elements - 1) // self.tile_elements

        if grid_size is None:
            occupancy = min(policy.occupancy, properties.max_blocks_per_sm)
            self.max_grid_size = properties.sm_count * occupancy * policy.oversubscription
        else:
            if grid_size < 1:
                raise ConfigurationError(f"grid_size override must be positive, got {grid_size}")
            self.max_grid_size = grid_size
        self.grid_size_overridden = grid_size is not None

        self.num_blocks = self.max_grid_size
        self.tiles_per_block = self.num_tiles // self.num_blocks
        self.num_blocks_with_extra_tile = self.num_tiles % self.num_blocks

        if self.num_tiles < self.num_blocks:
            self.tiles_per_block = 1
            self.num_blocks = self.num_tiles
            self.num_blocks_with_extra_tile = 0

    @property
    def first_block_with_extra_tile(self):
        return self.num_blocks - self.num_blocks_with_extra_tile

    def block_tile_range(self, block):
        begin = block * self.tiles_per_block
        count = self.tiles_per_block
        if block >= self.first_block_with_extra_tile:
            begin += block - self.first_block_with_extra_tile
            count += 1
        return begin, begin + count

    def tile_ranges(self):
        blocks = np.arange(self.num_blocks, dtype=np.int64)
        extra = np.maximum(blocks - self.first_block_with_extra_tile, 0)
        begins = blocks * self.tiles_per_block + extra
        counts = np.full(self.num_blocks, self.tiles_per_block, dtype=np.int64)
        counts[blocks >= self.first_block_with_extra_tile] += 1
        return begins, counts

    @property
    def max_tiles_per_block(self):
        return self.tiles_per_block + (1 if self.num_blocks_with_extra_tile else 0)

    def block_of_tile(self):
        begins, _ = self.tile_ranges()
        return np.searchsorted(begins, np.arange(self.num_tiles), side="right") - 1

    def config_data(self, current_bit, pass_bits):
        return {
            "num_keys": self.num_keys,
            "current_bit": current_bit,
            "pass_bits": pass_bits,
            "num_tiles": self.num_tiles,
            "tiles_per_group": self.tiles_per_block,
            "num_groups_with_extra_tile": self.num_blocks_with_extra_tile,
            "num_groups": self.num_blocks,
        }

    def __repr__(self):
        return (f"DispatchConfig(num_keys={self.num_keys}, tiles={self.num_tiles}, blocks={self.num_blocks}, "
                f"tiles_per_block={self.tiles_per_block}, extra={self.num_blocks_with_extra_tile})")
