from .device import Device, DeviceProperties, get_device
from .double_buffer import DoubleBuffer
from .errors import AllocationError, ConfigurationError, RadixSortError
from .policy import CacheModifier, HardwareClass, ScatterStrategy, TuningPolicy, select_policy
from .sorter import PassState, RadixSorter, SortResult, radix_sort

__all__ = [
    "AllocationError",
    "CacheModifier",
    "ConfigurationError",
    "Device",
    "DeviceProperties",
    "DoubleBuffer",
    "HardwareClass",
    "PassState",
    "RadixSortError",
    "RadixSorter",
    "ScatterStrategy",
    "SortResult",
    "TuningPolicy",
    "get_device",
    "radix_sort",
    "select_policy",
]
