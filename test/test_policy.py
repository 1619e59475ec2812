import pytest

from radixsort import ConfigurationError, HardwareClass, ScatterStrategy, select_policy
from radixsort.policy import POLICY_TABLE, hardware_class_from_env


@pytest.mark.parametrize("hardware_class", list(HardwareClass))
@pytest.mark.parametrize("keys_only", [True, False])
def test_every_hardware_class_has_both_shapes(hardware_class, keys_only):
    policy = select_policy(hardware_class, keys_only)
    assert policy.hardware_class is hardware_class
    assert policy.keys_only is keys_only
    assert policy.tile_elements < (1 << policy.counter_bits)
    assert policy.counter_lanes * policy.packing_ratio >= policy.radix_bins


def test_sm1x_parts_scatter_warp_aligned():
    for (hardware_class, _), policy in POLICY_TABLE.items():
        if hardware_class in (HardwareClass.SM10, HardwareClass.SM13):
            assert policy.scatter_strategy is ScatterStrategy.WARP_ALIGNED
        else:
            assert policy.scatter_strategy is ScatterStrategy.GATHER_THEN_GLOBAL


def test_select_policy_accepts_names():
    assert select_policy("SM20", True) is POLICY_TABLE[(HardwareClass.SM20, True)]
    with pytest.raises(ConfigurationError):
        select_policy("sm99", True)


def test_derived_sizes():
    policy = select_policy(HardwareClass.SM35, True)
    assert policy.radix_bins == 16
    assert policy.tile_elements == 512
    assert policy.packing_ratio == 2
    assert policy.counter_lanes == 8
    assert policy.scan_words == 1024
    assert policy.segment_length == 16
    assert policy.raking_warps == 2


def test_raking_threads_default_to_block_threads():
    policy = select_policy(HardwareClass.SM20, True)
    assert policy.raking_threads == policy.block_threads


@pytest.mark.parametrize("overrides", [
    {"radix_bits": 0},
    {"radix_bits": 9},
    {"block_threads": 96},
    {"elements_per_thread": 6},
    {"load_vec_size": 8},
    {"elements_per_thread": 8, "load_vec_size": 8, "block_threads": 64, "raking_threads": 64},
    {"counter_bits": 8},
    {"raking_threads": 4096},
    {"oversubscription": 0},
    {"packed_bits": 48},
])
def test_invalid_overrides_are_rejected(overrides):
    policy = select_policy(HardwareClass.SM35, True)
    with pytest.raises(ConfigurationError):
        policy.replace(**overrides)


def test_counter_width_bounds_the_tile():
    policy = select_policy(HardwareClass.SM35, True)
    # 256 elements per tile cannot be counted in 8 bits
    with pytest.raises(ConfigurationError):
        policy.replace(block_threads=64, elements_per_thread=4, raking_threads=64, counter_bits=8)
    narrow = policy.replace(block_threads=32, elements_per_thread=4, raking_threads=32, counter_bits=8)
    assert narrow.packing_ratio == 4
    assert narrow.log_counter_lanes == 2


def test_defines():
    keys = select_policy(HardwareClass.SM13, True).defines()
    assert keys["RADIX_BITS"] == "4"
    assert keys["RADIXSORT_WARP_ALIGNED"] == "1"
    assert "RADIXSORT_PAYLOAD" not in keys

    pairs = select_policy(HardwareClass.SM35, False).defines()
    assert pairs["RADIXSORT_PAYLOAD"] == "1"
    assert "RADIXSORT_WARP_ALIGNED" not in pairs
    assert pairs["RAKING_THREADS"] == "64"
    assert pairs["LOG_COUNTER_LANES"] == "3"


def test_hardware_class_from_env(monkeypatch):
    monkeypatch.delenv("RADIXSORT_HARDWARE", raising=False)
    assert hardware_class_from_env(HardwareClass.SM35) is HardwareClass.SM35
    monkeypatch.setenv("RADIXSORT_HARDWARE", "sm13")
    assert hardware_class_from_env(HardwareClass.SM35) is HardwareClass.SM13
    monkeypatch.setenv("RADIXSORT_HARDWARE", "fermi")
    with pytest.raises(ConfigurationError):
        hardware_class_from_env(HardwareClass.SM35)
