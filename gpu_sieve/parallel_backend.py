"""
Multi-core backend for the marking launch.

Runs the same lane program as the CUDA kernel on a process pool. The
candidate array lives in shared memory, every worker attaches to it once
through the pool initializer, and each pool task is one group of lanes.
Workers write to the shared array concurrently with no locking; see
gpu_backend for why that is safe.

A worker that dies mid-launch breaks the pool, and the launch fails with
LaunchError. Its partial writes are never read back.
"""

import os
import sys
from concurrent.futures import ProcessPoolExecutor
from multiprocessing import cpu_count, shared_memory
from typing import Optional, Tuple

import numpy as np

from .capability import COMPUTE_MODE_DEFAULT, DeviceCapability
from .errors import AllocationError, InvalidArgumentError, LaunchError

CPU_LANES_PER_GROUP = 64
SHM_ROOT = '/dev/shm'

# Global variables for worker processes (set via initializer)
_worker_flags = None
_worker_shm = None


def _init_worker_shm(shm_name: str, n: int):
    """Attach a worker to the shared candidate array."""
    global _worker_flags, _worker_shm
    _worker_shm = shared_memory.SharedMemory(name=shm_name)
    _worker_flags = np.ndarray((n,), dtype=np.uint8, buffer=_worker_shm.buf)


def _run_group(args: Tuple[int, int, int, int]) -> int:
    """
    Run every lane of one group against the shared array.

    Returns the number of lanes that did marking work.
    """
    group, lanes_per_group, n, root = args
    flags = _worker_flags
    busy = 0

    first = group * lanes_per_group
    for lane in range(first, first + lanes_per_group):
        if lane == 0:
            # Designated lane: serial even elimination
            flags[0] = 1
            flags[1] = 1
            flags[4::2] = 1
            busy += 1
        elif lane > root:
            break
        elif lane > 1 and flags[lane] == 0:
            flags[lane * lane::lane] = 1
            busy += 1

    return busy


def _physical_memory() -> int:
    try:
        return os.sysconf('SC_PAGE_SIZE') * os.sysconf('SC_PHYS_PAGES')
    except (ValueError, OSError, AttributeError):
        return sys.maxsize


def _shared_memory_free() -> Optional[int]:
    """Free bytes on the shared memory filesystem, None where there is none."""
    try:
        st = os.statvfs(SHM_ROOT)
    except (OSError, AttributeError):
        return None
    return st.f_bavail * st.f_frsize


def _reserve(shm: shared_memory.SharedMemory, n: int):
    """Back every page of the segment now, so a full tmpfs fails here and not on first write."""
    fd = getattr(shm, '_fd', -1)
    if fd >= 0 and hasattr(os, 'posix_fallocate'):
        os.posix_fallocate(fd, 0, n)


class CpuDevice:
    """
    Explicit handle to a pool of CPU worker processes.

    Parameters
    ----------
    num_workers : int, optional
        Number of worker processes. Defaults to CPU count.
    mp_context : optional
        multiprocessing context used to start workers. Defaults to the
        platform's start method.
    """

    def __init__(self, num_workers: int = None, mp_context=None):
        if num_workers is None:
            num_workers = cpu_count()
        if num_workers < 1:
            raise InvalidArgumentError(f"num_workers must be positive, got {num_workers}")
        self.num_workers = num_workers
        self.mp_context = mp_context
        self._executor = None
        self._futures = None

    def __repr__(self):
        return f"CpuDevice(num_workers={self.num_workers})"

    def capability(self) -> DeviceCapability:
        total = _physical_memory()
        shm_free = _shared_memory_free()
        if shm_free is not None:
            total = min(total, shm_free)
        return DeviceCapability(
            name=f"cpu ({self.num_workers} workers)",
            compute_capability=(0, 0),
            compute_mode=COMPUTE_MODE_DEFAULT,
            max_lanes_per_group=CPU_LANES_PER_GROUP,
            total_memory=total,
            multiprocessors=self.num_workers,
        )

    def allocate(self, n: int) -> shared_memory.SharedMemory:
        """Shared memory block of n flags. A new segment is zero-filled."""
        try:
            shm = shared_memory.SharedMemory(create=True, size=n)
        except OSError as e:
            raise AllocationError(f"cannot allocate {n:,} bytes of shared memory: {e}") from e

        try:
            _reserve(shm, n)
        except OSError as e:
            shm.close()
            shm.unlink()
            raise AllocationError(f"cannot reserve {n:,} bytes of shared memory: {e}") from e
        return shm

    def launch(self, shm: shared_memory.SharedMemory, n: int, root: int, config):
        tasks = [(group, config.lanes_per_group, n, root)
                 for group in range(config.groups)]
        try:
            self._executor = ProcessPoolExecutor(
                max_workers=self.num_workers, mp_context=self.mp_context,
                initializer=_init_worker_shm, initargs=(shm.name, n),
            )
            self._futures = [self._executor.submit(_run_group, task) for task in tasks]
        except OSError as e:
            raise LaunchError(f"cannot start {self.num_workers} workers: {e}") from e

    def synchronize(self):
        """Wait for every group of the current launch."""
        if self._futures is None:
            return
        executor, futures = self._executor, self._futures
        self._executor = self._futures = None
        try:
            for future in futures:
                future.result()
        except Exception as e:
            raise LaunchError(f"worker failed during launch: {e!r}") from e
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    def copy_to_host(self, shm: shared_memory.SharedMemory, out: np.ndarray):
        flags = np.ndarray(out.shape, dtype=np.uint8, buffer=shm.buf)
        try:
            out[:] = flags
        finally:
            del flags

    def free(self, shm: shared_memory.SharedMemory):
        if self._executor is not None:
            self._executor.shutdown(wait=True, cancel_futures=True)
            self._executor = self._futures = None
        shm.close()
        shm.unlink()
