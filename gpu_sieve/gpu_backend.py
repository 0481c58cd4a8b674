"""
GPU-accelerated Sieve of Eratosthenes using Numba CUDA.

One launch marks every composite below N. Lane roles are chosen by lane
identity:

- lane 0 clears 0 and 1 and walks all even numbers from 4, serially
- lane i (2 <= i <= root) walks i*i, i*i + i, ... if flag[i] is still 0

There is no barrier and no atomic anywhere in the kernel. Every store
writes 1 to an index that really is composite, so overlapping stores are
idempotent and the result does not depend on lane ordering. A stale read
of flag[i] can only cause a redundant pass. Keep it that way: a kernel
that stores anything other than 1 needs real synchronization.
"""

import numpy as np

from .capability import DeviceCapability
from .errors import AllocationError, DeviceUnavailableError, LaunchError

try:
    from numba import cuda
    from numba.core.errors import NumbaError
    from numba.cuda.cudadrv.driver import CudaAPIError
    from numba.cuda.cudadrv.error import CudaSupportError
    HAS_GPU = cuda.is_available()
except ImportError:
    HAS_GPU = False


if HAS_GPU:

    @cuda.jit
    def _mark_composites_kernel(flags, n, root):
        """CUDA kernel: one launch of the marking program over all lanes."""
        if cuda.blockIdx.x == 0 and cuda.threadIdx.x == 0:
            # Designated lane: serial even elimination
            flags[0] = 1
            flags[1] = 1
            for j in range(4, n, 2):
                flags[j] = 1
            return

        index = cuda.grid(1)
        if index <= 1 or index > root:
            return
        if flags[index] != 0:  # already known composite
            return
        for j in range(index * index, n, index):
            flags[j] = 1


class CudaDevice:
    """
    Explicit handle to one CUDA device.

    Every primitive enters ``cuda.gpus[device_id]`` itself, so nothing
    depends on which device happens to be current in the process.
    """

    def __init__(self, device_id: int = 0):
        self.device_id = device_id

    def __repr__(self):
        return f"CudaDevice(device_id={self.device_id})"

    def _gpu(self):
        if not HAS_GPU:
            raise DeviceUnavailableError("CUDA is not available")
        try:
            return cuda.gpus[self.device_id]
        except IndexError as e:
            raise DeviceUnavailableError(f"no CUDA device {self.device_id}") from e

    def capability(self) -> DeviceCapability:
        gpu = self._gpu()
        try:
            with gpu:
                device = cuda.get_current_device()
                _, total = cuda.current_context().get_memory_info()
                name = device.name
                if isinstance(name, bytes):
                    name = name.decode()
                return DeviceCapability(
                    name=name,
                    compute_capability=tuple(device.compute_capability),
                    compute_mode=int(device.COMPUTE_MODE),
                    max_lanes_per_group=int(device.MAX_THREADS_PER_BLOCK),
                    total_memory=int(total),
                    multiprocessors=int(device.MULTIPROCESSOR_COUNT),
                )
        except (CudaSupportError, CudaAPIError) as e:
            raise DeviceUnavailableError(f"CUDA device query failed: {e}") from e

    def allocate(self, n: int):
        """Zero-filled device array of n flags."""
        try:
            with self._gpu():
                return cuda.to_device(np.zeros(n, dtype=np.uint8))
        except (CudaSupportError, CudaAPIError) as e:
            raise AllocationError(f"cannot allocate {n:,} bytes on {self!r}: {e}") from e

    def launch(self, d_flags, n: int, root: int, config):
        try:
            with self._gpu():
                _mark_composites_kernel[config.groups, config.lanes_per_group](
                    d_flags, n, root
                )
        except (CudaSupportError, CudaAPIError, NumbaError) as e:
            raise LaunchError(f"kernel launch failed: {e}") from e

    def synchronize(self):
        try:
            with self._gpu():
                cuda.synchronize()
        except (CudaSupportError, CudaAPIError) as e:
            raise LaunchError(f"kernel faulted: {e}") from e

    def copy_to_host(self, d_flags, out: np.ndarray):
        try:
            with self._gpu():
                d_flags.copy_to_host(out)
        except (CudaSupportError, CudaAPIError) as e:
            raise LaunchError(f"copy back failed: {e}") from e

    def free(self, d_flags):
        try:
            with self._gpu():
                d_flags.gpu_data.free()
        except (CudaSupportError, CudaAPIError) as e:
            raise LaunchError(f"releasing device memory failed: {e}") from e
