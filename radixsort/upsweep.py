import numpy as np


def digit_histogram(keys, dispatch, radix_bins, current_bit, pass_bits):
    """Per-block digit counts of one pass, laid out ``[digit][block]``.

    Each block counts the keys of its even-share tile range, the same
    partition the downsweep walks afterwards.
    """
    # NOTE: After this pass the table looks like
    # Bin0: [Block0, Block1, Block2, ...]
    # Bin1: [Block0, Block1, Block2, ...]
    # so the spine can scan it as one flat array and every block of the
    # downsweep finds its per-digit offsets at [digit * num_blocks + block].
    keys = keys[:dispatch.num_keys]
    digits = ((keys >> keys.dtype.type(current_bit)) & keys.dtype.type((1 << pass_bits) - 1)).astype(np.int64)
    tile_block = dispatch.block_of_tile()
    element_block = np.repeat(tile_block, dispatch.tile_elements)[:dispatch.num_keys]
    table = np.bincount(digits * dispatch.num_blocks + element_block,
                        minlength=radix_bins * dispatch.num_blocks)
    return table
