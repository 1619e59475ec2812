class RadixSortError(Exception):
    pass


class ConfigurationError(RadixSortError, ValueError):
    """Invalid policy, bit window or problem shape, caught before any launch."""


class AllocationError(RadixSortError, RuntimeError):
    """The alternate key/value buffers could not be allocated."""
