"""
Shared fixtures.

RecordingDevice implements the device primitives in-process, running the
lane program through the sequential simulator in a shuffled lane order.
It records every primitive call so tests can check what happened on the
device, and can be told to fail at any step.
"""

import numpy as np
import pytest

from gpu_sieve.capability import COMPUTE_MODE_DEFAULT, DeviceCapability
from gpu_sieve.errors import AllocationError, LaunchError
from gpu_sieve.reference import run_lanes


class RecordingDevice:

    def __init__(self, seed=0, **capability):
        self.seed = seed
        self.calls = []
        self.fail_on = None
        self.fail_free = False
        self.live_regions = 0
        self.launch_configs = []
        self._capability = dict(
            name='recording',
            compute_capability=(8, 0),
            compute_mode=COMPUTE_MODE_DEFAULT,
            max_lanes_per_group=16,
            total_memory=10**9,
            multiprocessors=4,
        )
        self._capability.update(capability)

    def _step(self, name):
        self.calls.append(name)
        if self.fail_on == name:
            if name == 'capability':
                raise OSError("driver not loaded")
            if name == 'allocate':
                raise AllocationError("out of memory")
            raise LaunchError(f"injected failure in {name}")

    def capability(self):
        self._step('capability')
        return DeviceCapability(**self._capability)

    def allocate(self, n):
        self._step('allocate')
        self.live_regions += 1
        return np.zeros(n, dtype=np.uint8)

    def launch(self, region, n, root, config):
        self._step('launch')
        self.launch_configs.append(config)
        assert config.total_lanes >= root + 1
        order = np.random.default_rng(self.seed).permutation(root + 1).tolist()
        run_lanes(n, order=order, flags=region)

    def synchronize(self):
        self._step('synchronize')

    def copy_to_host(self, region, out):
        self._step('copy_to_host')
        out[:] = region

    def free(self, region):
        self.calls.append('free')
        self.live_regions -= 1
        if self.fail_free:
            raise RuntimeError("driver reset while freeing")


@pytest.fixture
def recording_device():
    return RecordingDevice()
