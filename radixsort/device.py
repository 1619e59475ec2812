import abc
from dataclasses import dataclass

from .errors import ConfigurationError
from .policy import HardwareClass


@dataclass(frozen=True)
class DeviceProperties:
    hardware_class: HardwareClass
    sm_count: int
    warp_threads: int = 32
    max_blocks_per_sm: int = 16


@dataclass
class PassArgs:
    """Everything one digit place hands to the upsweep, spine and downsweep."""
    policy: object
    dispatch: object
    current_bit: int
    pass_bits: int
    keys_in: object
    keys_out: object
    values_in: object = None
    values_out: object = None
    histogram: object = None
    bin_carry: object = None

    @property
    def keys_only(self):
        return self.values_in is None


class Device(abc.ABC):
    """Launch surface of one backend.

    Kernels of a pass are launched strictly in order: the downsweep never
    starts before the spine has finished writing the Bin-Carry Table.
    """

    name = "device"

    def __init__(self, properties: DeviceProperties):
        self.properties = properties

    @abc.abstractmethod
    def create_buffer(self, count=0, dtype=None, data=None, label=""):
        """Device buffer of ``count`` elements, or holding a copy of ``data``."""

    @abc.abstractmethod
    def read_buffer(self, buffer, dtype, count):
        """Copy the first ``count`` elements of ``buffer`` back as a numpy array."""

    @abc.abstractmethod
    def write_buffer(self, buffer, data):
        """Overwrite the first ``len(data)`` elements of ``buffer``."""

    @abc.abstractmethod
    def upsweep(self, args: PassArgs):
        pass

    @abc.abstractmethod
    def spine(self, args: PassArgs):
        pass

    @abc.abstractmethod
    def downsweep(self, args: PassArgs):
        pass

    @abc.abstractmethod
    def digit_totals(self, args: PassArgs):
        """Grid-wide count of every digit for the current pass (early-exit probe)."""

    def release_buffer(self, buffer):
        pass

    def check_policy(self, policy):
        if policy.warp_threads != self.properties.warp_threads:
            raise ConfigurationError(
                f"policy assumes {policy.warp_threads}-lane warps, device has {self.properties.warp_threads}")

    def __repr__(self):
        return f"{type(self).__name__}({self.properties.hardware_class.value}, sm_count={self.properties.sm_count})"


def get_device(name="emulated", **kwargs) -> Device:
    if name == "emulated":
        from .emulated import EmulatedDevice
        return EmulatedDevice(**kwargs)
    if name == "slang":
        from .slang_device import SlangDevice
        return SlangDevice(**kwargs)
    raise ConfigurationError(f"unknown device backend {name!r}")
