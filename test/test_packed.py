import numpy as np

from radixsort.packed import PackedCounters


def test_pack_unpack_fields():
    packed = PackedCounters(16, 32)
    words = packed.pack(np.array([[3, 5], [0, 65535]]))
    assert words.dtype == np.uint32
    assert words.tolist() == [3 | (5 << 16), 65535 << 16]
    assert np.array_equal(packed.unpack(words), [[3, 5], [0, 65535]])


def test_unit_increments_one_sub_counter():
    packed = PackedCounters(8, 32)
    words = packed.zeros(4)
    subs = np.array([0, 1, 2, 3])
    words += packed.unit(subs)
    words += packed.unit(subs)
    assert np.array_equal(packed.extract(words, subs), [2, 2, 2, 2])
    assert np.array_equal(packed.extract(words, 0), [2, 0, 0, 0])


def test_adding_packed_words_adds_every_field():
    packed = PackedCounters(16, 64)
    a = packed.pack(np.array([1, 2, 3, 4]))
    b = packed.pack(np.array([10, 20, 30, 40]))
    assert a.dtype == np.uint64
    assert np.array_equal(packed.unpack(a + b), [11, 22, 33, 44])


def test_overflowing_field_spills_into_neighbour():
    packed = PackedCounters(8, 32)
    word = packed.pack(np.array([255, 0, 0, 0]))
    word = word + packed.unit(0)
    assert np.array_equal(packed.unpack(word), [0, 1, 0, 0])


def test_lower_totals():
    packed = PackedCounters(8, 32)
    aggregate = packed.pack(np.array([4, 7, 1, 9]))
    assert np.array_equal(packed.unpack(packed.lower_totals(aggregate)), [0, 4, 11, 12])

    single = PackedCounters(32, 32)
    assert int(single.lower_totals(np.uint32(123))) == 0
