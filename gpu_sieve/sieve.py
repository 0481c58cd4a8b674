"""
Sieve engine: allocate, launch, wait, copy back, release.

Responsibility: orchestration around one marking launch. The lane program
itself lives in the backends (gpu_backend, parallel_backend); this module
only decides the launch shape and owns the device region for the duration
of one call.

Flag convention: flags[i] == 0 means i is prime, flags[i] == 1 means i is
composite (0 and 1 are marked by convention).
"""

import math
import sys
import time

import numpy as np

from .capability import lane_width, launch_config, query_capability
from .errors import InvalidArgumentError
from .gpu_backend import HAS_GPU, CudaDevice
from .parallel_backend import CpuDevice


def default_device(verbose: bool = False):
    """CUDA device 0 if a GPU is available, otherwise the CPU pool."""
    if HAS_GPU:
        return CudaDevice()
    if verbose:
        print("    GPU not available, falling back to CPU workers")
    return CpuDevice()


def _validate_bound(N) -> int:
    if isinstance(N, bool) or not isinstance(N, (int, np.integer)):
        raise InvalidArgumentError(f"N must be an integer, got {type(N).__name__}")
    N = int(N)
    if N < 2:
        raise InvalidArgumentError(f"N must be at least 2, got {N}")
    return N


def _validate_out(out, N: int) -> np.ndarray:
    if out is None:
        return np.zeros(N, dtype=np.uint8)
    if not isinstance(out, np.ndarray) or out.dtype != np.uint8 or out.shape != (N,):
        raise InvalidArgumentError(
            f"out must be a uint8 array of shape ({N},)"
        )
    return out


def _free_after_failure(device, region):
    """Release the region while another error propagates; that error wins."""
    try:
        device.free(region)
    except Exception as e:
        print(f"    WARNING: releasing device memory after a failed launch also failed: {e}",
              file=sys.stderr)


def sieve(N: int, device=None, out: np.ndarray = None, verbose: bool = False) -> np.ndarray:
    """
    Mark every composite below N in one parallel launch.

    Parameters
    ----------
    N : int
        Exclusive upper bound, N >= 2.
    device : optional
        Explicit device handle. Defaults to default_device().
    out : np.ndarray, optional
        Zero-filled uint8 host buffer of length N to receive the flags.
    verbose : bool
        Print progress lines.

    Returns
    -------
    np.ndarray
        uint8 array of length N where flags[i] == 0 iff i is prime.

    Raises
    ------
    InvalidArgumentError
        Bad N or out, or N larger than the device can hold. Nothing is
        allocated on the device.
    DeviceUnavailableError
        Capability query failed. Nothing is allocated on the device.
    AllocationError, LaunchError
        Device failure. The device region is released before raising.
    """
    N = _validate_bound(N)
    out = _validate_out(out, N)
    if device is None:
        device = default_device(verbose)

    capability = query_capability(device)
    if N > capability.total_memory:
        raise InvalidArgumentError(
            f"N={N:,} does not fit in {capability.total_memory:,} bytes on {capability.name}"
        )

    root = math.isqrt(N)
    config = launch_config(root, lane_width(capability))

    if verbose:
        print(f"    Sieving N={N:,} on {capability.name}")
        print(f"    Launch: {config.groups} groups x {config.lanes_per_group} lanes "
              f"(root={root})")

    t0 = time.time()
    region = device.allocate(N)
    try:
        device.launch(region, N, root, config)
        device.synchronize()
        device.copy_to_host(region, out)
    except BaseException:
        _free_after_failure(device, region)
        raise
    device.free(region)

    if verbose:
        print(f"    Completed in {time.time() - t0:.3f}s")

    return out


def flags_to_primes(flags: np.ndarray) -> np.ndarray:
    """Return the indices whose flag is 0, in increasing order."""
    return np.flatnonzero(flags == 0)


def generate_primes_below(N: int, device=None, verbose: bool = False) -> np.ndarray:
    """
    Return array of all primes < N.

    Parameters
    ----------
    N : int
        Exclusive upper bound, N >= 2.

    Returns
    -------
    np.ndarray
        Strictly increasing int64 array of primes.
    """
    flags = sieve(N, device=device, verbose=verbose)
    return flags_to_primes(flags).astype(np.int64)
