"""
Capability probing and launch sizing.

Responsibility: turn a device's capability descriptor into a launch shape.
The lane width is a tuning value only. Any positive width gives a correct
sieve, because launch_config always creates enough groups to cover every
divisor candidate.
"""

from dataclasses import dataclass
from typing import Tuple

from .errors import DeviceUnavailableError, InvalidArgumentError


# CUdevice_attribute COMPUTE_MODE values
COMPUTE_MODE_DEFAULT = 0
COMPUTE_MODE_PROHIBITED = 2

# Compute capability 2.0 (Fermi) raised the per-block thread limit to 1024
WIDE_LANE_WIDTH = 1024
NARROW_LANE_WIDTH = 512
WIDE_MIN_CAPABILITY = (2, 0)


@dataclass(frozen=True)
class DeviceCapability:
    """What a device reports about itself before a launch."""
    name: str
    compute_capability: Tuple[int, int]
    compute_mode: int
    max_lanes_per_group: int
    total_memory: int
    multiprocessors: int


@dataclass(frozen=True)
class LaunchConfig:
    """Grid shape for one launch: `groups` blocks of `lanes_per_group` lanes."""
    groups: int
    lanes_per_group: int

    @property
    def total_lanes(self) -> int:
        return self.groups * self.lanes_per_group


def query_capability(device) -> DeviceCapability:
    """
    Read the capability descriptor of an explicit device handle.

    Parameters
    ----------
    device
        Any device handle exposing ``capability()``.

    Returns
    -------
    DeviceCapability

    Raises
    ------
    DeviceUnavailableError
        If the query fails or the device is in prohibited compute mode.
    """
    try:
        capability = device.capability()
    except DeviceUnavailableError:
        raise
    except Exception as e:
        raise DeviceUnavailableError(f"capability query failed: {e}") from e

    if capability.compute_mode == COMPUTE_MODE_PROHIBITED:
        raise DeviceUnavailableError(
            f"device {capability.name!r} is in prohibited compute mode"
        )
    return capability


def lane_width(capability: DeviceCapability) -> int:
    """Lanes per group: wide on newer architectures, clamped to the device limit."""
    if tuple(capability.compute_capability) >= WIDE_MIN_CAPABILITY:
        width = WIDE_LANE_WIDTH
    else:
        width = NARROW_LANE_WIDTH
    return max(1, min(width, capability.max_lanes_per_group))


def probe(device) -> int:
    """Query `device` and return the lane width to launch with."""
    return lane_width(query_capability(device))


def launch_config(root: int, width: int) -> LaunchConfig:
    """
    Size a launch so that lanes 0..root all exist.

    Lane 0 is the designated even-eliminator and lanes 2..root are the
    divisor candidates, so root + 1 lanes are needed.
    """
    if width < 1:
        raise InvalidArgumentError(f"lane width must be positive, got {width}")
    lanes_needed = max(root, 0) + 1
    groups = (lanes_needed + width - 1) // width
    return LaunchConfig(groups=groups, lanes_per_group=width)


def check_gpu(device) -> bool:
    """Print what `device` reports. Returns False if it is unavailable."""
    try:
        capability = query_capability(device)
    except DeviceUnavailableError as e:
        print(f"Device not available: {e}")
        return False

    major, minor = capability.compute_capability
    print(f"Device: {capability.name}")
    print(f"Compute capability: {major}.{minor}")
    print(f"Multiprocessors: {capability.multiprocessors}")
    print(f"Memory: {capability.total_memory / 1e9:.1f}GB")
    print(f"Lane width: {lane_width(capability)}")
    return True
