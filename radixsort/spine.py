import numpy as np


def size_dtype(num_keys):
    return np.uint32 if num_keys < (1 << 32) else np.uint64


def bin_carry_table(histogram, num_keys):
    """Exclusive prefix sum over the flattened ``[digit][block]`` histogram.

    Entry ``[digit * num_blocks + block]`` is where the first key of
    ``digit`` owned by ``block`` lands in the output buffer.
    """
    dtype = size_dtype(num_keys)
    histogram = np.asarray(histogram, dtype=dtype)
    carry = np.zeros_like(histogram)
    np.cumsum(histogram[:-1], dtype=dtype, out=carry[1:])
    return carry


def digit_totals(histogram, radix_bins):
    return np.asarray(histogram).reshape(radix_bins, -1).sum(axis=1)
