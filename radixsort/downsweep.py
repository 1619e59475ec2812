"""Downsweep: rank every element of a tile and scatter it to its final slot.

One :class:`TileProcessor` runs a single digit place over the whole grid.
Blocks are the leading axis of every array; each call to
:meth:`TileProcessor.partition` advances every block by one tile of its
even-share range. Blocks that have run out of tiles pass ``valid_count = 0``
and neither read nor write device memory.
"""

import logging

import numpy as np

from . import memory
from .packed import PackedCounters
from .policy import ScatterStrategy
from .raking import BlockRankEngine

logger = logging.getLogger(__name__)


class BlockState:
    """Block-local scratch of every block in the grid.

    Reused by every tile a block processes during one pass. ``carry`` is the
    block's slice of the Bin-Carry Table, advanced tile by tile.
    """

    def __init__(self, policy, packed, bin_carry, num_blocks, key_dtype, value_dtype=None):
        self.counters = packed.zeros((num_blocks, policy.counter_lanes, policy.block_threads))
        self.warp_sums = packed.zeros((num_blocks, policy.raking_warps))
        padded_tile = policy.tile_elements + policy.tile_elements // policy.mem_banks
        self.exchange_keys = np.zeros((num_blocks, padded_tile), dtype=key_dtype)
        self.exchange_values = None
        if value_dtype is not None:
            self.exchange_values = np.zeros((num_blocks, padded_tile), dtype=value_dtype)
        # spine output is [digit][block]
        table = np.asarray(bin_carry).reshape(policy.radix_bins, num_blocks)
        self.carry = table.T.astype(np.int64)


class Tile:
    """Register-resident contents of one tile for every block."""

    def __init__(self, keys, values, digits):
        self.keys = keys
        self.values = values
        self.digits = digits
        self.ranks = None


class GatherThenGlobalScatter:
    """Each lane gathers striped slot ``i * BLOCK_THREADS + lane`` back out of
    the exchange buffer and writes it at ``carry[digit] + slot``."""

    def __init__(self, policy):
        self.policy = policy
        striped = (np.arange(policy.elements_per_thread)[:, None] * policy.block_threads
                   + np.arange(policy.block_threads)[None, :])
        self.slots = striped.reshape(-1)

    def scatter_keys(self, processor, state, tile_carry, begin, end, valid_counts):
        positions = processor.exchange_index(self.slots)
        keys = state.exchange_keys[:, positions]
        digits = processor.extract_digits(keys)
        addresses = np.take_along_axis(tile_carry, digits.astype(np.int64), axis=1) + self.slots[None, :]
        mask = self.slots[None, :] < np.asarray(valid_counts)[:, None]
        memory.store_guarded(processor.keys_out, addresses, keys, mask, self.policy.store_modifier)
        return addresses, mask

    def scatter_values(self, processor, state, plan):
        addresses, mask = plan
        values = state.exchange_values[:, processor.exchange_index(self.slots)]
        memory.store_guarded(processor.values_out, addresses, values, mask, self.policy.store_modifier)


class WarpAlignedScatter:
    """Warps flush whole digit runs in transaction-aligned segments.

    Digits are dealt round-robin to the warps of a block. For each run the
    warp starts at the destination rounded down to ``transaction_elements``
    and steps ``warp_threads`` slots at a time; lanes that fall before the
    run start or past its end stay idle.
    """

    def __init__(self, policy):
        self.policy = policy
        self.lanes = np.arange(policy.warp_threads, dtype=np.int64)

    def _segments(self, tile_carry, begin, end, valid_counts):
        valid = np.asarray(valid_counts, dtype=np.int64)[:, None]
        run_begin = np.minimum(begin, valid)
        run_end = np.minimum(end, valid)
        dst_begin = tile_carry + run_begin
        dst_end = tile_carry + run_end
        aligned = dst_begin - dst_begin % self.policy.transaction_elements
        steps = np.where(run_end > run_begin,
                         -(-(dst_end - aligned) // self.policy.warp_threads), 0)
        for digit in range(self.policy.radix_bins):
            for step in range(int(steps[:, digit].max(initial=0))):
                addresses = aligned[:, digit, None] + step * self.policy.warp_threads + self.lanes[None, :]
                local = addresses - tile_carry[:, digit, None]
                mask = (local >= run_begin[:, digit, None]) & (local < run_end[:, digit, None])
                yield addresses, np.where(mask, local, 0), mask

    def scatter_keys(self, processor, state, tile_carry, begin, end, valid_counts):
        plan = []
        rows = np.arange(state.exchange_keys.shape[0])[:, None]
        for addresses, local, mask in self._segments(tile_carry, begin, end, valid_counts):
            keys = state.exchange_keys[rows, processor.exchange_index(local)]
            memory.store_guarded(processor.keys_out, addresses, keys, mask, self.policy.store_modifier)
            plan.append((addresses, local, mask))
        return plan

    def scatter_values(self, processor, state, plan):
        rows = np.arange(state.exchange_values.shape[0])[:, None]
        for addresses, local, mask in plan:
            values = state.exchange_values[rows, processor.exchange_index(local)]
            memory.store_guarded(processor.values_out, addresses, values, mask, self.policy.store_modifier)


SCATTER_STRATEGIES = {
    ScatterStrategy.WARP_ALIGNED: WarpAlignedScatter,
    ScatterStrategy.GATHER_THEN_GLOBAL: GatherThenGlobalScatter,
}


class TileProcessor:
    def __init__(self, policy, current_bit, pass_bits, keys_in, keys_out, values_in=None, values_out=None):
        assert 0 < pass_bits <= policy.radix_bits
        self.policy = policy
        self.current_bit = current_bit
        self.pass_bits = pass_bits
        self.keys_in = keys_in
        self.keys_out = keys_out
        self.values_in = values_in
        self.values_out = values_out
        self.packed = PackedCounters.for_policy(policy)
        self.rank_engine = BlockRankEngine(policy, self.packed)
        self.scatter = SCATTER_STRATEGIES[policy.scatter_strategy](policy)
        self.sentinel = np.iinfo(keys_in.dtype).max
        self.digit_mask = (1 << pass_bits) - 1

    @property
    def keys_only(self):
        return self.values_in is None

    def extract_digits(self, keys):
        return ((keys >> keys.dtype.type(self.current_bit)) & keys.dtype.type(self.digit_mask)).astype(np.int64)

    def exchange_index(self, ranks):
        return ranks + ranks // self.policy.mem_banks

    def load(self, tile_offsets, valid_counts):
        policy = self.policy
        shape = (len(tile_offsets), policy.block_threads, policy.elements_per_thread)
        keys = memory.load_tiles(self.keys_in, tile_offsets, valid_counts, policy.tile_elements,
                                 policy.load_vec_size, self.sentinel, policy.load_modifier)
        values = None
        if not self.keys_only:
            values = memory.load_tiles(self.values_in, tile_offsets, valid_counts, policy.tile_elements,
                                       policy.load_vec_size, 0, policy.load_modifier)
            values = values.reshape(shape)
        keys = keys.reshape(shape)
        return Tile(keys, values, self.extract_digits(keys))

    def count(self, tile, state):
        """Bump the packed (digit, lane) counters, one element per lane at a time.

        Returns each element's thread-exclusive prefix: the pre-increment value
        of its sub-counter.
        """
        policy = self.policy
        state.counters.fill(0)
        rows = np.arange(state.counters.shape[0])[:, None]
        threads = np.arange(policy.block_threads)[None, :]
        lanes = self.rank_engine.digit_lane(tile.digits)
        subs = self.rank_engine.digit_sub_counter(tile.digits)
        prefix = np.empty(tile.digits.shape, dtype=np.int64)
        for i in range(policy.elements_per_thread):
            lane, sub = lanes[..., i], subs[..., i]
            words = state.counters[rows, lane, threads]
            prefix[..., i] = self.packed.extract(words, sub)
            state.counters[rows, lane, threads] = words + self.packed.unit(sub)
        return prefix

    def rank(self, tile, prefix, state):
        rows = np.arange(state.counters.shape[0])[:, None, None]
        threads = np.arange(self.policy.block_threads)[None, :, None]
        lanes = self.rank_engine.digit_lane(tile.digits)
        subs = self.rank_engine.digit_sub_counter(tile.digits)
        words = state.counters[rows, lanes, threads]
        ranks = prefix + self.packed.extract(words, subs).astype(np.int64)
        return ranks.reshape(ranks.shape[0], -1)

    def partition(self, tile_offsets, valid_counts, state):
        tile = self.load(tile_offsets, valid_counts)
        prefix = self.count(tile, state)

        self.rank_engine.exclusive_scan(state.counters, state.warp_sums)
        begin, end = self.rank_engine.bin_ranges(state.counters)
        # a wrapped sub-counter spills into its neighbour and breaks the run order
        assert (end >= begin).all(), "packed digit counters overflowed"
        tile_carry = self.rank_engine.advance_carry(state.carry, begin, end, valid_counts)

        tile.ranks = self.rank(tile, prefix, state)
        rows = np.arange(tile.ranks.shape[0])[:, None]
        exchange = self.exchange_index(tile.ranks)

        state.exchange_keys[rows, exchange] = tile.keys.reshape(tile.ranks.shape)
        plan = self.scatter.scatter_keys(self, state, tile_carry, begin, end, valid_counts)

        if not self.keys_only:
            state.exchange_values[rows, exchange] = tile.values.reshape(tile.ranks.shape)
            self.scatter.scatter_values(self, state, plan)
        return tile

    def run(self, dispatch, state):
        """Walk every block through its even-share range, one tile per step."""
        begins, counts = dispatch.tile_ranges()
        for step in range(dispatch.max_tiles_per_block):
            tiles = begins + step
            active = step < counts
            offsets = np.where(active, tiles * self.policy.tile_elements, 0)
            valid = np.where(active, np.clip(dispatch.num_keys - offsets, 0, self.policy.tile_elements), 0)
            self.partition(offsets, valid, state)
        logger.debug("downsweep bit %d (%d bits): %d blocks x %d tile steps, %s, load %s, store %s",
                     self.current_bit, self.pass_bits, dispatch.num_blocks,
                     dispatch.max_tiles_per_block, self.policy.scatter_strategy.value,
                     self.policy.load_modifier.value, self.policy.store_modifier.value)
