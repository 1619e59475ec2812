"""Order-preserving maps between sortable key types and unsigned bit patterns.

The passes only ever compare unsigned digits. Signed integers get their sign
bit flipped; floats get the sign bit flipped when positive and every bit
flipped when negative, which orders them like IEEE-754 ``totalOrder``
(``-0.0`` before ``+0.0``, NaNs at the ends by sign).
"""

import numpy as np

from .errors import ConfigurationError

UNSIGNED_FOR_SIZE = {1: np.uint8, 2: np.uint16, 4: np.uint32, 8: np.uint64}


class KeyTraits:
    def __init__(self, dtype):
        self.dtype = np.dtype(dtype)
        if self.dtype.kind not in "uif" or self.dtype.itemsize not in UNSIGNED_FOR_SIZE:
            raise ConfigurationError(f"unsupported key dtype {self.dtype}")
        if self.dtype.kind == "f" and self.dtype.itemsize < 4:
            raise ConfigurationError(f"unsupported key dtype {self.dtype}")
        self.unsigned_dtype = np.dtype(UNSIGNED_FOR_SIZE[self.dtype.itemsize])
        self.key_bits = self.dtype.itemsize * 8
        self.sign_bit = self.unsigned_dtype.type(1 << (self.key_bits - 1))
        self.all_bits = self.unsigned_dtype.type((1 << self.key_bits) - 1)

    @property
    def twiddled(self):
        return self.dtype.kind != "u"

    def twiddle_in(self, keys):
        bits = np.ascontiguousarray(keys, dtype=self.dtype).view(self.unsigned_dtype)
        if self.dtype.kind == "u":
            return bits.copy()
        if self.dtype.kind == "i":
            return bits ^ self.sign_bit
        negative = (bits & self.sign_bit) != 0
        return bits ^ np.where(negative, self.all_bits, self.sign_bit)

    def twiddle_out(self, bits):
        bits = np.asarray(bits, dtype=self.unsigned_dtype)
        if self.dtype.kind == "i":
            bits = bits ^ self.sign_bit
        elif self.dtype.kind == "f":
            # after twiddle_in a set sign bit means the key was positive
            positive = (bits & self.sign_bit) != 0
            bits = bits ^ np.where(positive, self.sign_bit, self.all_bits)
        return bits.view(self.dtype)

    def check_bit_window(self, begin_bit, end_bit):
        if not 0 <= begin_bit <= end_bit <= self.key_bits:
            raise ConfigurationError(
                f"bit window [{begin_bit}, {end_bit}) outside the {self.key_bits}-bit key")
