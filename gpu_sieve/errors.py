"""
Error taxonomy for the sieve.

Device-layer failures are fatal: a launch that failed part way may have
left some lanes' writes incomplete, so nothing is retried and no partial
flag array is ever returned.
"""


class SieveError(Exception):
    """Base class for every error raised by gpu_sieve."""


class DeviceUnavailableError(SieveError, RuntimeError):
    """Capability query failed or the device forbids compute work."""


class AllocationError(SieveError, RuntimeError):
    """The device could not provide memory for the candidate array."""


class LaunchError(SieveError, RuntimeError):
    """The marking kernel failed to start, faulted, or its result could not be copied back."""


class InvalidArgumentError(SieveError, ValueError):
    """Rejected input. Raised before any device memory is allocated."""
