"""Per-architecture tuning policies for the radix sort passes.

A policy is pure configuration: nothing in here runs on the device. The
sorter resolves one policy per sort call with :func:`select_policy` and
hands it, unchanged, to the upsweep, spine and downsweep kernels.
"""

import enum
import os
from dataclasses import dataclass, field, replace

from .errors import ConfigurationError

# Defaults of the original single-architecture sorter. They still seed the
# SM35 entries below and the Slang device when nothing else is known.
KEY_BIT = 32 # uint32
SORT_BIT_PER_PASS = 4
SORT_BIN_COUNT = (1 << SORT_BIT_PER_PASS)
ELEMENTS_PER_THREAD = 4
THREADGROUP_SIZE = 128 # need to be tuned according to the device capability
MAX_THREAD_GROUPS = 800 # need to be tuned according to the device capability
# widest vector<uint, N> a shader load can issue
MAX_LOAD_VEC_SIZE = 4

HARDWARE_ENV_VAR = "RADIXSORT_HARDWARE"


class HardwareClass(enum.Enum):
    SM10 = "sm10"
    SM13 = "sm13"
    SM20 = "sm20"
    SM35 = "sm35"
    SM70 = "sm70"

    @classmethod
    def from_name(cls, name: str):
        try:
            return cls(name.strip().lower())
        except ValueError:
            known = ", ".join(member.value for member in cls)
            raise ConfigurationError(f"unknown hardware class {name!r} (known: {known})") from None


class ScatterStrategy(enum.Enum):
    # Warps flush each digit run in transaction-aligned segments. For parts
    # that only coalesce fully aligned half-warp/warp accesses.
    WARP_ALIGNED = "warp_aligned"
    # Each lane gathers its own element from the exchange buffer and writes
    # it straight to carry + rank.
    GATHER_THEN_GLOBAL = "gather_then_global"


class CacheModifier(enum.Enum):
    NONE = "none"
    CA = "ca" # cache at all levels
    CG = "cg" # cache in L2 only
    CS = "cs" # streaming, evict first


def _log2(value):
    return value.bit_length() - 1


def _is_pow2(value):
    return value > 0 and (value & (value - 1)) == 0


@dataclass(frozen=True)
class TuningPolicy:
    hardware_class: HardwareClass
    keys_only: bool
    radix_bits: int
    block_threads: int
    elements_per_thread: int
    load_vec_size: int
    occupancy: int
    oversubscription: int
    scatter_strategy: ScatterStrategy
    early_exit: bool = True
    raking_threads: int = 0 # 0 means one raking lane per block lane
    counter_bits: int = 16
    packed_bits: int = 32
    warp_threads: int = 32
    mem_banks: int = 32
    transaction_elements: int = 32
    load_modifier: CacheModifier = CacheModifier.CA
    store_modifier: CacheModifier = CacheModifier.NONE
    name: str = field(default="", compare=False)

    def __post_init__(self):
        if self.raking_threads == 0:
            object.__setattr__(self, "raking_threads", self.block_threads)
        self.validate()

    # derived sizes

    @property
    def radix_bins(self):
        return 1 << self.radix_bits

    @property
    def tile_elements(self):
        return self.block_threads * self.elements_per_thread

    @property
    def packing_ratio(self):
        return self.packed_bits // self.counter_bits

    @property
    def log_packing_ratio(self):
        return _log2(self.packing_ratio)

    @property
    def log_counter_lanes(self):
        return max(0, self.radix_bits - self.log_packing_ratio)

    @property
    def counter_lanes(self):
        return 1 << self.log_counter_lanes

    @property
    def scan_words(self):
        return self.counter_lanes * self.block_threads

    @property
    def segment_length(self):
        return self.scan_words // self.raking_threads

    @property
    def raking_warp_threads(self):
        return min(self.warp_threads, self.raking_threads)

    @property
    def raking_warps(self):
        return self.raking_threads // self.raking_warp_threads

    def validate(self):
        if not 1 <= self.radix_bits <= 8:
            raise ConfigurationError(f"radix_bits must be in 1..8, got {self.radix_bits}")
        for attr in ("block_threads", "elements_per_thread", "load_vec_size", "raking_threads",
                     "warp_threads", "mem_banks", "transaction_elements"):
            value = getattr(self, attr)
            if not _is_pow2(value):
                raise ConfigurationError(f"{attr} must be a power of two, got {value}")
        if self.block_threads < self.warp_threads:
            raise ConfigurationError("a block must hold at least one full warp")
        if self.elements_per_thread % self.load_vec_size:
            raise ConfigurationError(
                f"elements_per_thread ({self.elements_per_thread}) must be a multiple of "
                f"load_vec_size ({self.load_vec_size})")
        if self.load_vec_size > MAX_LOAD_VEC_SIZE:
            raise ConfigurationError(
                f"load_vec_size is at most {MAX_LOAD_VEC_SIZE} words, got {self.load_vec_size}")
        if self.packed_bits not in (32, 64) or self.counter_bits not in (8, 16, 32):
            raise ConfigurationError("counters must be 8/16/32 bits packed into 32/64-bit words")
        if self.counter_bits > self.packed_bits:
            raise ConfigurationError("counter_bits cannot exceed packed_bits")
        # A digit total can reach the whole tile (every element, sentinels
        # included, in one bucket), so the tile has to fit one counter.
        if self.tile_elements >= (1 << self.counter_bits):
            raise ConfigurationError(
                f"tile of {self.tile_elements} elements overflows {self.counter_bits}-bit packed counters")
        if self.raking_threads > self.scan_words or self.scan_words % self.raking_threads:
            raise ConfigurationError(
                f"raking_threads ({self.raking_threads}) must divide the {self.scan_words} counter words")
        if self.raking_warps > self.warp_threads:
            raise ConfigurationError("warp running-sum table must fit in a single warp")
        if self.occupancy < 1 or self.oversubscription < 1:
            raise ConfigurationError("occupancy and oversubscription must be at least 1")
        if not isinstance(self.scatter_strategy, ScatterStrategy):
            raise ConfigurationError(f"unknown scatter strategy {self.scatter_strategy!r}")

    def replace(self, **overrides):
        return replace(self, **overrides)

    def defines(self):
        """Preprocessor defines consumed by ``shaders/radix_sort.slang``."""
        defines = {
            "RADIX_BITS": str(self.radix_bits),
            "BLOCK_THREADS": str(self.block_threads),
            "ELEMENTS_PER_THREAD": str(self.elements_per_thread),
            "LOAD_VEC_SIZE": str(self.load_vec_size),
            "LOG_COUNTER_LANES": str(self.log_counter_lanes),
            "PACKING_RATIO": str(self.packing_ratio),
            "COUNTER_BITS": str(self.counter_bits),
            "RAKING_THREADS": str(self.raking_threads),
            "RAKING_WARP_THREADS": str(self.raking_warp_threads),
            "WARP_THREADS": str(self.warp_threads),
            "MEM_BANKS": str(self.mem_banks),
            "TRANSACTION_ELEMENTS": str(self.transaction_elements),
        }
        if self.scatter_strategy is ScatterStrategy.WARP_ALIGNED:
            defines["RADIXSORT_WARP_ALIGNED"] = "1"
        if not self.keys_only:
            defines["RADIXSORT_PAYLOAD"] = "1"
        return defines


def _policy(hardware_class, keys_only, **kwargs):
    shape = "keys" if keys_only else "pairs"
    return TuningPolicy(hardware_class=hardware_class, keys_only=keys_only,
                        name=f"{hardware_class.value}-{shape}", **kwargs)


# NOTE: SM1x parts only coalesce when a half-warp hits one aligned segment,
# hence the warp-aligned scatter and the narrower bank count there.
POLICY_TABLE = {
    (HardwareClass.SM10, True): _policy(
        HardwareClass.SM10, True, radix_bits=4, block_threads=64, elements_per_thread=4,
        load_vec_size=1, occupancy=2, oversubscription=2, scatter_strategy=ScatterStrategy.WARP_ALIGNED,
        early_exit=False, mem_banks=16, transaction_elements=16, load_modifier=CacheModifier.NONE),
    (HardwareClass.SM10, False): _policy(
        HardwareClass.SM10, False, radix_bits=4, block_threads=64, elements_per_thread=2,
        load_vec_size=1, occupancy=2, oversubscription=2, scatter_strategy=ScatterStrategy.WARP_ALIGNED,
        early_exit=False, mem_banks=16, transaction_elements=16, load_modifier=CacheModifier.NONE),
    (HardwareClass.SM13, True): _policy(
        HardwareClass.SM13, True, radix_bits=4, block_threads=128, elements_per_thread=4,
        load_vec_size=2, occupancy=3, oversubscription=4, scatter_strategy=ScatterStrategy.WARP_ALIGNED,
        mem_banks=16, transaction_elements=16, load_modifier=CacheModifier.NONE),
    (HardwareClass.SM13, False): _policy(
        HardwareClass.SM13, False, radix_bits=4, block_threads=128, elements_per_thread=2,
        load_vec_size=2, occupancy=3, oversubscription=4, scatter_strategy=ScatterStrategy.WARP_ALIGNED,
        mem_banks=16, transaction_elements=16, load_modifier=CacheModifier.NONE),
    (HardwareClass.SM20, True): _policy(
        HardwareClass.SM20, True, radix_bits=5, block_threads=128, elements_per_thread=8,
        load_vec_size=4, occupancy=4, oversubscription=8, scatter_strategy=ScatterStrategy.GATHER_THEN_GLOBAL,
        load_modifier=CacheModifier.CG),
    (HardwareClass.SM20, False): _policy(
        HardwareClass.SM20, False, radix_bits=5, block_threads=128, elements_per_thread=4,
        load_vec_size=4, occupancy=4, oversubscription=8, scatter_strategy=ScatterStrategy.GATHER_THEN_GLOBAL,
        load_modifier=CacheModifier.CG),
    (HardwareClass.SM35, True): _policy(
        HardwareClass.SM35, True, radix_bits=SORT_BIT_PER_PASS, block_threads=THREADGROUP_SIZE,
        elements_per_thread=ELEMENTS_PER_THREAD, load_vec_size=4, occupancy=8, oversubscription=4,
        scatter_strategy=ScatterStrategy.GATHER_THEN_GLOBAL, raking_threads=64),
    (HardwareClass.SM35, False): _policy(
        HardwareClass.SM35, False, radix_bits=SORT_BIT_PER_PASS, block_threads=THREADGROUP_SIZE,
        elements_per_thread=ELEMENTS_PER_THREAD, load_vec_size=2, occupancy=8, oversubscription=4,
        scatter_strategy=ScatterStrategy.GATHER_THEN_GLOBAL, raking_threads=64),
    (HardwareClass.SM70, True): _policy(
        HardwareClass.SM70, True, radix_bits=6, block_threads=256, elements_per_thread=8,
        load_vec_size=4, occupancy=4, oversubscription=4, scatter_strategy=ScatterStrategy.GATHER_THEN_GLOBAL,
        load_modifier=CacheModifier.CG, store_modifier=CacheModifier.CS),
    (HardwareClass.SM70, False): _policy(
        HardwareClass.SM70, False, radix_bits=6, block_threads=256, elements_per_thread=4,
        load_vec_size=4, occupancy=4, oversubscription=4, scatter_strategy=ScatterStrategy.GATHER_THEN_GLOBAL,
        load_modifier=CacheModifier.CG, store_modifier=CacheModifier.CS),
}


def hardware_class_from_env(default: HardwareClass) -> HardwareClass:
    name = os.environ.get(HARDWARE_ENV_VAR)
    if not name:
        return default
    return HardwareClass.from_name(name)


def select_policy(hardware_class, keys_only: bool) -> TuningPolicy:
    if isinstance(hardware_class, str):
        hardware_class = HardwareClass.from_name(hardware_class)
    try:
        return POLICY_TABLE[(hardware_class, bool(keys_only))]
    except KeyError:
        raise ConfigurationError(f"no tuning policy for {hardware_class!r}") from None
