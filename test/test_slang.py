import numpy as np
import pytest

from radixsort import DoubleBuffer, HardwareClass, RadixSorter, ScatterStrategy, radix_sort, select_policy

pytestmark = pytest.mark.gpu

NUM_KEYS = (1 << 20) + 1179


@pytest.fixture(scope="module")
def slang_device():
    pytest.importorskip("slangpy")
    from radixsort.slang_device import SlangDevice
    return SlangDevice(hardware_class=HardwareClass.SM35)


def test_keys_with_payload(slang_device):
    rng = np.random.default_rng(1179)
    keys = rng.integers(0, 0xFFFFFFFF, size=NUM_KEYS, dtype=np.uint32)
    payloads = rng.integers(0, 0xFFFFFFFF, size=NUM_KEYS, dtype=np.uint32)
    sorted_keys, sorted_payloads = radix_sort(keys, payloads, device=slang_device)
    order = np.argsort(keys, kind="stable")
    assert np.array_equal(sorted_keys, keys[order])
    assert np.array_equal(sorted_payloads, payloads[order])


def test_keys_only(slang_device):
    rng = np.random.default_rng(317)
    keys = rng.integers(0, 0xFFFFFFFF, size=1024 + 317, dtype=np.uint32)
    sorted_keys, payloads = radix_sort(keys, device=slang_device)
    assert payloads is None
    assert np.array_equal(sorted_keys, np.sort(keys))


def test_warp_aligned_scatter(slang_device):
    rng = np.random.default_rng(512)
    keys = rng.integers(0, 1 << 24, size=512 * 512, dtype=np.uint32)
    policy = select_policy(HardwareClass.SM13, True).replace(scatter_strategy=ScatterStrategy.WARP_ALIGNED)
    sorted_keys, _ = radix_sort(keys, device=slang_device, policy=policy)
    assert np.array_equal(sorted_keys, np.sort(keys))


def test_signed_keys_and_early_exit(slang_device):
    rng = np.random.default_rng(32)
    keys = rng.integers(-100, 100, size=50000, dtype=np.int32)
    sorted_keys, _ = radix_sort(keys, device=slang_device, early_exit=True)
    assert np.array_equal(sorted_keys, np.sort(keys))


@pytest.mark.parametrize("load_vec_size", [1, 2, 4])
def test_vector_and_scalar_loads_agree(slang_device, load_vec_size):
    rng = np.random.default_rng(4)
    keys = rng.integers(0, 0xFFFFFFFF, size=64 * 512 + 77, dtype=np.uint32)
    payloads = np.arange(len(keys), dtype=np.uint32)
    policy = select_policy(HardwareClass.SM35, False).replace(load_vec_size=load_vec_size)
    sorted_keys, sorted_payloads = radix_sort(keys, payloads, device=slang_device, policy=policy)
    order = np.argsort(keys, kind="stable")
    assert np.array_equal(sorted_keys, keys[order])
    assert np.array_equal(sorted_payloads, order)


def test_prefix_sort_keeps_the_tail(slang_device):
    keys = np.array([9, 3, 7, 1, 100, 200, 300, 400], dtype=np.uint32)
    buffers = DoubleBuffer(slang_device, keys)
    RadixSorter(slang_device).sort(buffers, num_items=4, end_bit=4)
    assert buffers.read_front()[0].tolist() == [1, 3, 7, 9, 100, 200, 300, 400]
