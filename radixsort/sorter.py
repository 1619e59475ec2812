import enum
import logging
import time
from dataclasses import dataclass, field

import numpy as np

from .device import PassArgs
from .dispatch import DispatchConfig
from .double_buffer import DoubleBuffer
from .errors import ConfigurationError
from .key_traits import KeyTraits
from .policy import select_policy
from .spine import size_dtype

logger = logging.getLogger(__name__)


class PassState(enum.Enum):
    SCHEDULED = "scheduled"
    UPSWEEP_DONE = "upsweep_done"
    SPINE_DONE = "spine_done"
    DOWNSWEEP_DONE = "downsweep_done"
    SKIPPED = "skipped"


@dataclass
class PassRecord:
    current_bit: int
    pass_bits: int
    state: PassState = PassState.SCHEDULED
    selector: int = 0

    @property
    def skipped(self):
        return self.state is PassState.SKIPPED


@dataclass
class SortResult:
    double_buffer: DoubleBuffer
    policy: object
    dispatch: DispatchConfig = None
    passes: list = field(default_factory=list)
    elapsed_ms: float = 0.0

    @property
    def num_flips(self):
        return sum(1 for record in self.passes if record.state is PassState.DOWNSWEEP_DONE)


def digit_places(begin_bit, end_bit, radix_bits):
    """``(current_bit, pass_bits)`` of every pass; the last may be narrower."""
    return [(bit, min(radix_bits, end_bit - bit)) for bit in range(begin_bit, end_bit, radix_bits)]


class RadixSorter:
    def __init__(self, device, policy=None):
        self.device = device
        self.policy = policy

    def resolve_policy(self, keys_only):
        policy = self.policy
        if policy is None:
            policy = select_policy(self.device.properties.hardware_class, keys_only)
        elif policy.keys_only != keys_only:
            policy = policy.replace(keys_only=keys_only)
        self.device.check_policy(policy)
        return policy

    def sort(self, double_buffer: DoubleBuffer, num_items=None, begin_bit=0, end_bit=None,
             grid_size=None, early_exit=None) -> SortResult:
        """Sort the front pair of ``double_buffer`` by bits ``[begin_bit, end_bit)``.

        The result ends up in whichever pair is front when this returns. Every
        completed downsweep flips the selector exactly once; passes skipped by
        early exit leave it alone.
        """
        if num_items is None:
            num_items = double_buffer.num_items
        if not 0 <= num_items <= double_buffer.num_items:
            raise ConfigurationError(f"num_items {num_items} outside the {double_buffer.num_items}-item buffer")
        if np.dtype(double_buffer.key_dtype).kind != "u":
            raise ConfigurationError(
                f"the sorter ranks unsigned bit patterns, got {double_buffer.key_dtype}; twiddle keys first")
        traits = KeyTraits(double_buffer.key_dtype)
        if end_bit is None:
            end_bit = traits.key_bits
        traits.check_bit_window(begin_bit, end_bit)

        policy = self.resolve_policy(double_buffer.keys_only)
        if early_exit is None:
            early_exit = policy.early_exit
        result = SortResult(double_buffer=double_buffer, policy=policy)
        # a single item is already in order
        if num_items <= 1 or begin_bit == end_bit:
            return result

        start = time.perf_counter()
        dispatch = DispatchConfig(num_items, policy, self.device.properties, grid_size)
        result.dispatch = dispatch
        logger.debug("%s on %r with %r", policy.name, self.device, dispatch)

        table_dtype = size_dtype(num_items)
        histogram = self.device.create_buffer(count=policy.radix_bins * dispatch.num_blocks,
                                              dtype=table_dtype, label="sum_table_buffer")
        bin_carry = self.device.create_buffer(count=policy.radix_bins * dispatch.num_blocks,
                                              dtype=table_dtype, label="bin_carry_buffer")
        try:
            double_buffer.ensure_alternate_allocated()
            if num_items < double_buffer.num_items:
                double_buffer.copy_tail(num_items)
            for current_bit, pass_bits in digit_places(begin_bit, end_bit, policy.radix_bits):
                record = PassRecord(current_bit, pass_bits, selector=double_buffer.selector)
                result.passes.append(record)
                self._run_pass(record, double_buffer, policy, dispatch, histogram, bin_carry, early_exit)
        finally:
            self.device.release_buffer(histogram)
            self.device.release_buffer(bin_carry)

        result.elapsed_ms = (time.perf_counter() - start) * 1000.0
        logger.info("sorted %d %s keys%s over bits [%d, %d) in %d passes (%d skipped), %.2f ms",
                    num_items, double_buffer.key_dtype, "" if double_buffer.keys_only else " with values",
                    begin_bit, end_bit, len(result.passes), len(result.passes) - result.num_flips,
                    result.elapsed_ms)
        return result

    def _run_pass(self, record, double_buffer, policy, dispatch, histogram, bin_carry, early_exit):
        keys_in, values_in = double_buffer.front
        keys_out, values_out = double_buffer.back
        args = PassArgs(policy=policy, dispatch=dispatch, current_bit=record.current_bit,
                        pass_bits=record.pass_bits, keys_in=keys_in, keys_out=keys_out,
                        values_in=values_in, values_out=values_out,
                        histogram=histogram, bin_carry=bin_carry)

        self.device.upsweep(args)
        record.state = PassState.UPSWEEP_DONE
        self.device.spine(args)
        record.state = PassState.SPINE_DONE

        if early_exit:
            totals = self.device.digit_totals(args)
            if int(np.max(totals)) == dispatch.num_keys:
                record.state = PassState.SKIPPED
                logger.debug("bit %d: every key shares digit %d, downsweep skipped",
                             record.current_bit, int(np.argmax(totals)))
                return

        self.device.downsweep(args)
        double_buffer.flip()
        record.state = PassState.DOWNSWEEP_DONE
        logger.debug("bit %d (%d bits) done, front buffer is now %d",
                     record.current_bit, record.pass_bits, double_buffer.selector)


def radix_sort(keys, values=None, *, begin_bit=0, end_bit=None, device=None, policy=None,
               grid_size=None, early_exit=None):
    """Sort ``keys`` (and ``values`` alongside) and return new arrays.

    Signed and floating-point keys are twiddled to unsigned bit patterns
    before the first pass and back after the last; ``begin_bit`` and
    ``end_bit`` address the twiddled pattern.
    """
    if device is None:
        from .device import get_device
        device = get_device()
    keys = np.asarray(keys)
    traits = KeyTraits(keys.dtype)

    double_buffer = DoubleBuffer(device, traits.twiddle_in(keys), values)
    try:
        RadixSorter(device, policy).sort(double_buffer, begin_bit=begin_bit, end_bit=end_bit,
                                         grid_size=grid_size, early_exit=early_exit)
        sorted_keys, sorted_values = double_buffer.read_front()
    finally:
        double_buffer.release()
        for buffer in double_buffer.front:
            device.release_buffer(buffer)
    return traits.twiddle_out(sorted_keys), sorted_values
