import numpy as np


class PackedCounters:
    """Several narrow digit counters packed side by side in one wide word.

    Sub-counter ``s`` occupies bits ``[s * counter_bits, (s + 1) * counter_bits)``.
    Adding two packed words adds every sub-counter at once; a sub-counter that
    exceeds its width carries into its neighbour, which is why the tuning
    policy refuses tiles larger than one counter can hold.
    """

    def __init__(self, counter_bits: int, packed_bits: int):
        self.counter_bits = counter_bits
        self.packed_bits = packed_bits
        self.ratio = packed_bits // counter_bits
        self.word_dtype = np.uint64 if packed_bits == 64 else np.uint32
        self.counter_mask = self.word_dtype((1 << counter_bits) - 1)

    @classmethod
    def for_policy(cls, policy):
        return cls(policy.counter_bits, policy.packed_bits)

    def _shift(self, sub_counter):
        return (np.asarray(sub_counter) * self.counter_bits).astype(self.word_dtype)

    def zeros(self, shape):
        return np.zeros(shape, dtype=self.word_dtype)

    def unit(self, sub_counter):
        """Packed word(s) holding a 1 in ``sub_counter`` and 0 elsewhere."""
        return np.left_shift(self.word_dtype(1), self._shift(sub_counter))

    def extract(self, words, sub_counter):
        return np.right_shift(words, self._shift(sub_counter)) & self.counter_mask

    def pack(self, counters):
        counters = np.asarray(counters)
        assert counters.shape[-1] == self.ratio
        words = self.zeros(counters.shape[:-1])
        for sub_counter in range(self.ratio):
            field = counters[..., sub_counter].astype(self.word_dtype) & self.counter_mask
            words |= np.left_shift(field, self._shift(sub_counter))
        return words

    def unpack(self, words):
        words = np.asarray(words, dtype=self.word_dtype)
        return np.stack([self.extract(words, s) for s in range(self.ratio)], axis=-1)

    def lower_totals(self, aggregate):
        """Offset every sub-counter by the totals of the sub-counters below it.

        ``aggregate`` is the packed block total; the result, added to a packed
        exclusive prefix, turns per-sub-counter prefixes into prefixes over the
        whole digit order (sub-counter major).
        """
        aggregate = np.asarray(aggregate, dtype=self.word_dtype)
        spread = np.zeros_like(aggregate)
        for step in range(1, self.ratio):
            spread += np.left_shift(aggregate, self._shift(step))
        return spread
