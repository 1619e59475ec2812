import numpy as np
import pytest

from radixsort import ConfigurationError, DeviceProperties, HardwareClass, select_policy
from radixsort.dispatch import DispatchConfig

SM35 = DeviceProperties(hardware_class=HardwareClass.SM35, sm_count=14)


def test_default_grid_size():
    policy = select_policy(HardwareClass.SM35, True)
    dispatch = DispatchConfig(1 << 20, policy, SM35)
    assert dispatch.max_grid_size == 14 * 8 * 4
    assert dispatch.num_blocks == 448
    assert not dispatch.grid_size_overridden


def test_occupancy_is_capped_by_the_device():
    policy = select_policy(HardwareClass.SM35, True).replace(occupancy=32)
    dispatch = DispatchConfig(1 << 22, policy, SM35)
    assert dispatch.max_grid_size == 14 * 16 * 4


def test_even_share_gives_the_remainder_to_the_last_blocks():
    policy = select_policy(HardwareClass.SM35, True)
    dispatch = DispatchConfig(10 * policy.tile_elements - 5, policy, SM35, grid_size=4)
    assert dispatch.num_tiles == 10
    assert dispatch.tiles_per_block == 2
    assert dispatch.num_blocks_with_extra_tile == 2
    assert dispatch.max_tiles_per_block == 3

    begins, counts = dispatch.tile_ranges()
    assert begins.tolist() == [0, 2, 4, 7]
    assert counts.tolist() == [2, 2, 3, 3]
    assert [dispatch.block_tile_range(block) for block in range(4)] == [(0, 2), (2, 4), (4, 7), (7, 10)]
    assert dispatch.block_of_tile().tolist() == [0, 0, 1, 1, 2, 2, 2, 3, 3, 3]


def test_small_problem_uses_one_block_per_tile():
    policy = select_policy(HardwareClass.SM35, True)
    dispatch = DispatchConfig(3 * policy.tile_elements + 1, policy, SM35)
    assert dispatch.num_blocks == 4
    assert dispatch.tiles_per_block == 1
    assert dispatch.num_blocks_with_extra_tile == 0
    assert dispatch.tile_ranges()[1].tolist() == [1, 1, 1, 1]


def test_tiles_cover_the_problem_once():
    policy = select_policy(HardwareClass.SM20, False)
    dispatch = DispatchConfig(987654, policy, SM35, grid_size=37)
    begins, counts = dispatch.tile_ranges()
    assert begins[0] == 0
    assert np.array_equal(begins[1:], (begins + counts)[:-1])
    assert begins[-1] + counts[-1] == dispatch.num_tiles


def test_grid_override_must_be_positive():
    with pytest.raises(ConfigurationError):
        DispatchConfig(100, select_policy(HardwareClass.SM35, True), SM35, grid_size=0)


def test_config_data():
    policy = select_policy(HardwareClass.SM35, True)
    dispatch = DispatchConfig(5000, policy, SM35, grid_size=3)
    data = dispatch.config_data(current_bit=8, pass_bits=4)
    assert data["num_tiles"] == 10
    assert data["num_groups"] == 3
    assert data["tiles_per_group"] == 3
    assert data["num_groups_with_extra_tile"] == 1
    assert data["current_bit"] == 8
