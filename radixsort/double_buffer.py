import logging

import numpy as np

from .errors import AllocationError, ConfigurationError

logger = logging.getLogger(__name__)


class DoubleBuffer:
    """Two (keys, values) buffer pairs and a selector naming the front pair.

    Every pass reads the front pair and writes the back pair, then flips.
    The back pair is allocated on first need. This class never frees
    anything on its own; the caller releases the alternate pair with
    :meth:`release` once the sorted data has been read.
    """

    def __init__(self, device, keys, values=None):
        keys = np.asarray(keys)
        if keys.ndim != 1:
            raise ConfigurationError(f"keys must be one-dimensional, got shape {keys.shape}")
        if values is not None:
            values = np.asarray(values)
            if values.shape != keys.shape:
                raise ConfigurationError(
                    f"values shape {values.shape} does not match keys shape {keys.shape}")

        self.device = device
        self.num_items = len(keys)
        self.key_dtype = keys.dtype
        self.value_dtype = None if values is None else values.dtype
        self.selector = 0
        self.keys = [device.create_buffer(data=keys, label="keys_buffer1"), None]
        self.values = [None, None]
        if values is not None:
            self.values[0] = device.create_buffer(data=values, label="payloads_buffer1")

    @property
    def keys_only(self):
        return self.value_dtype is None

    def select(self, index):
        index %= 2
        return self.keys[index], self.values[index]

    @property
    def front(self):
        return self.select(self.selector)

    @property
    def back(self):
        return self.select(self.selector ^ 1)

    def flip(self):
        self.selector ^= 1

    def ensure_alternate_allocated(self):
        alternate = self.selector ^ 1
        try:
            if self.keys[alternate] is None:
                self.keys[alternate] = self.device.create_buffer(
                    count=self.num_items, dtype=self.key_dtype, label="keys_buffer2")
            if not self.keys_only and self.values[alternate] is None:
                self.values[alternate] = self.device.create_buffer(
                    count=self.num_items, dtype=self.value_dtype, label="payloads_buffer2")
        except (MemoryError, RuntimeError) as exc:
            raise AllocationError(f"could not allocate the alternate buffers for {self.num_items} items") from exc
        logger.debug("alternate buffer pair %d ready", alternate)

    def copy_tail(self, start):
        """Copy items ``[start:]`` of the front pair into the back pair.

        A sort of the first ``start`` items only writes that prefix of the
        back pair, so the rest has to be there already before the first flip.
        """
        for buffers, dtype in ((self.keys, self.key_dtype), (self.values, self.value_dtype)):
            front, back = buffers[self.selector], buffers[self.selector ^ 1]
            if front is None:
                continue
            source = self.device.read_buffer(front, dtype, self.num_items)
            target = self.device.read_buffer(back, dtype, self.num_items)
            target[start:] = source[start:]
            self.device.write_buffer(back, target)
        logger.debug("copied items [%d, %d) to buffer pair %d", start, self.num_items, self.selector ^ 1)

    def read_front(self):
        keys, values = self.front
        keys = self.device.read_buffer(keys, self.key_dtype, self.num_items)
        if values is not None:
            values = self.device.read_buffer(values, self.value_dtype, self.num_items)
        return keys, values

    def release(self):
        """Free every buffer that is not front. Called by the caller, never by a sort."""
        alternate = self.selector ^ 1
        for buffers in (self.keys, self.values):
            self.device.release_buffer(buffers[alternate])
            buffers[alternate] = None
