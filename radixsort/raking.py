"""Block-local rank engine: a raking reduce-then-scan over packed counters.

The counter grid of a block is ``[COUNTER_LANES][BLOCK_THREADS]`` packed
words, read in counter-lane-major order. ``RAKING_THREADS`` lanes each own a
contiguous segment of ``SEGMENT_LENGTH`` words (stored with one padding word
per segment, the bank-conflict layout of the device kernel):

1. upsweep: every raking lane serially reduces its segment;
2. the partials are scanned with doubling steps inside each raking warp,
   warp totals go through the warp running-sum table and are scanned the
   same way, then folded back;
3. downsweep: every raking lane re-scans its segment from its exclusive
   prefix, writing exclusive prefixes in place.

All arrays carry the block as their leading axis so a whole grid ranks in
one sweep.
"""

import numpy as np


def _kogge_stone(values, width):
    """Inclusive scan along the last axis in ``log2(width)`` doubling steps."""
    scanned = values.copy()
    offset = 1
    while offset < width:
        shifted = np.zeros_like(scanned)
        shifted[..., offset:] = scanned[..., :-offset]
        scanned += shifted
        offset <<= 1
    return scanned


class BlockRankEngine:
    def __init__(self, policy, packed):
        self.policy = policy
        self.packed = packed

    def padded_segments(self, grid):
        """Counter grid ``(blocks, lanes, threads)`` as ``(blocks, raking, segment + 1)``."""
        num_blocks = grid.shape[0]
        segments = grid.reshape(num_blocks, self.policy.raking_threads, self.policy.segment_length)
        padded = self.packed.zeros((num_blocks, self.policy.raking_threads, self.policy.segment_length + 1))
        padded[..., :-1] = segments
        return padded

    def upsweep(self, segments):
        partials = self.packed.zeros(segments.shape[:2])
        for i in range(self.policy.segment_length):
            partials += segments[..., i]
        return partials

    def scan_partials(self, partials, warp_sums):
        """Exclusive prefix of every raking lane and the packed block aggregate.

        ``warp_sums`` is the block-local warp running-sum table, shape
        ``(blocks, raking_warps)``; it is overwritten.
        """
        num_blocks = partials.shape[0]
        lanes = self.policy.raking_warp_threads
        warps = self.policy.raking_warps

        per_warp = _kogge_stone(partials.reshape(num_blocks, warps, lanes), lanes)
        warp_sums[:] = per_warp[..., -1]
        warp_inclusive = _kogge_stone(warp_sums, warps)
        warp_exclusive = warp_inclusive - warp_sums

        inclusive = (per_warp + warp_exclusive[..., None]).reshape(num_blocks, warps * lanes)
        exclusive = inclusive - partials
        aggregate = warp_inclusive[:, -1]
        return exclusive, aggregate

    def downsweep(self, segments, exclusive):
        running = exclusive.copy()
        for i in range(self.policy.segment_length):
            count = segments[..., i].copy()
            segments[..., i] = running
            running += count
        return segments

    def exclusive_scan(self, grid, warp_sums):
        """Replace every packed counter of ``grid`` by its block-exclusive prefix.

        Sub-counter ``s`` of the result also includes the block totals of all
        sub-counters below ``s``, so extracting field ``digit >>
        LOG_COUNTER_LANES`` yields a prefix over the whole digit order.
        """
        segments = self.padded_segments(grid)
        partials = self.upsweep(segments)
        exclusive, aggregate = self.scan_partials(partials, warp_sums)
        exclusive += self.packed.lower_totals(aggregate)[:, None]
        self.downsweep(segments, exclusive)
        grid[...] = segments[..., :-1].reshape(grid.shape)
        return aggregate

    # per-digit bookkeeping, done by the first RADIX_BINS lanes of a block

    def digit_lane(self, digits):
        return digits & (self.policy.counter_lanes - 1)

    def digit_sub_counter(self, digits):
        return digits >> self.policy.log_counter_lanes

    def bin_ranges(self, grid):
        """``(begin, end)`` local ranks of every digit's run, shape ``(blocks, bins)``.

        Must run after :meth:`exclusive_scan`. The last digit ends at the tile
        size, since out-of-range sentinels are ranked as well.
        """
        bins = np.arange(self.policy.radix_bins)
        words = grid[:, self.digit_lane(bins), 0]
        begin = self.packed.extract(words, self.digit_sub_counter(bins)).astype(np.int64)
        end = np.empty_like(begin)
        end[:, :-1] = begin[:, 1:]
        end[:, -1] = self.policy.tile_elements
        return begin, end

    @staticmethod
    def advance_carry(carry, begin, end, valid_counts):
        """Resolve this tile's carry and advance the running one in place.

        An element of digit ``d`` with local rank ``r`` lands at
        ``tile_carry[d] + r``. The running carry moves past the valid
        elements of each digit so the block's next tile continues there.
        """
        tile_carry = carry - begin
        valid = np.asarray(valid_counts, dtype=np.int64)[:, None]
        written = np.clip(np.minimum(end, valid) - np.minimum(begin, valid), 0, None)
        carry += written
        return tile_carry
