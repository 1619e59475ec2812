"""numpy emulation of the radix sort kernels.

Buffers are plain numpy arrays and every launch runs synchronously, so the
ordering between upsweep, spine and downsweep holds trivially. Inside a
launch all blocks advance together, one tile step at a time.
"""

import logging

import numpy as np

from . import spine, upsweep
from .device import Device, DeviceProperties
from .downsweep import BlockState, TileProcessor
from .policy import HardwareClass, hardware_class_from_env

logger = logging.getLogger(__name__)

DEFAULT_SM_COUNT = 14


class EmulatedDevice(Device):
    name = "emulated"

    def __init__(self, hardware_class=None, sm_count=DEFAULT_SM_COUNT, memory_limit=None):
        if hardware_class is None:
            hardware_class = hardware_class_from_env(HardwareClass.SM35)
        elif isinstance(hardware_class, str):
            hardware_class = HardwareClass.from_name(hardware_class)
        super().__init__(DeviceProperties(hardware_class=hardware_class, sm_count=sm_count))
        # bytes this device may hand out, None for unbounded
        self.memory_limit = memory_limit
        self.allocated_bytes = 0

    def create_buffer(self, count=0, dtype=None, data=None, label=""):
        if data is not None:
            nbytes = np.asarray(data).nbytes
        else:
            nbytes = count * np.dtype(dtype).itemsize
        if self.memory_limit is not None and self.allocated_bytes + nbytes > self.memory_limit:
            raise MemoryError(f"cannot allocate {nbytes} bytes for {label or 'buffer'}: "
                              f"{self.allocated_bytes} of {self.memory_limit} bytes in use")
        buffer = np.array(data, copy=True) if data is not None else np.zeros(count, dtype=dtype)
        self.allocated_bytes += buffer.nbytes
        logger.debug("allocated %s: %d bytes (%d in use)", label or "buffer", buffer.nbytes, self.allocated_bytes)
        return buffer

    def release_buffer(self, buffer):
        if buffer is not None:
            self.allocated_bytes -= buffer.nbytes

    def read_buffer(self, buffer, dtype, count):
        return buffer[:count].view(dtype).copy()

    def write_buffer(self, buffer, data):
        data = np.asarray(data)
        buffer[:len(data)] = data.view(buffer.dtype)

    def upsweep(self, args):
        args.histogram[:] = upsweep.digit_histogram(
            args.keys_in, args.dispatch, args.policy.radix_bins, args.current_bit, args.pass_bits)

    def spine(self, args):
        args.bin_carry[:] = spine.bin_carry_table(args.histogram, args.dispatch.num_keys)

    def digit_totals(self, args):
        return spine.digit_totals(args.histogram, args.policy.radix_bins)

    def downsweep(self, args):
        processor = TileProcessor(args.policy, args.current_bit, args.pass_bits,
                                  args.keys_in, args.keys_out, args.values_in, args.values_out)
        value_dtype = None if args.keys_only else args.values_in.dtype
        state = BlockState(args.policy, processor.packed, args.bin_carry,
                           args.dispatch.num_blocks, args.keys_in.dtype, value_dtype)
        processor.run(args.dispatch, state)
