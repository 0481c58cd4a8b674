"""
Tests for capability probing and launch sizing.
"""

import pytest

from gpu_sieve.capability import (
    COMPUTE_MODE_PROHIBITED, NARROW_LANE_WIDTH, WIDE_LANE_WIDTH,
    DeviceCapability, LaunchConfig, check_gpu, lane_width, launch_config, probe,
    query_capability,
)
from gpu_sieve.errors import DeviceUnavailableError, InvalidArgumentError

from conftest import RecordingDevice


def make_capability(cc=(8, 0), max_lanes=1024, mode=0):
    return DeviceCapability(
        name='test', compute_capability=cc, compute_mode=mode,
        max_lanes_per_group=max_lanes, total_memory=10**9, multiprocessors=1,
    )


class TestLaneWidth:
    """Newer architectures get the wide width, clamped to the device limit."""

    @pytest.mark.parametrize("cc", [(2, 0), (7, 5), (9, 0), (12, 0)])
    def test_wide(self, cc):
        assert lane_width(make_capability(cc=cc)) == WIDE_LANE_WIDTH

    @pytest.mark.parametrize("cc", [(1, 0), (1, 3)])
    def test_narrow(self, cc):
        assert lane_width(make_capability(cc=cc)) == NARROW_LANE_WIDTH

    def test_clamped_to_device_limit(self):
        assert lane_width(make_capability(max_lanes=64)) == 64

    def test_never_below_one(self):
        assert lane_width(make_capability(max_lanes=0)) == 1


class TestQueryCapability:

    def test_probe_returns_width(self):
        assert probe(RecordingDevice(max_lanes_per_group=32)) == 32

    def test_query_failure_wrapped(self):
        device = RecordingDevice()
        device.fail_on = 'capability'
        with pytest.raises(DeviceUnavailableError, match="driver not loaded"):
            query_capability(device)

    def test_prohibited_mode(self):
        device = RecordingDevice(compute_mode=COMPUTE_MODE_PROHIBITED)
        with pytest.raises(DeviceUnavailableError, match="prohibited"):
            probe(device)

    def test_device_unavailable_passes_through(self):
        class Missing:
            def capability(self):
                raise DeviceUnavailableError("no device")

        with pytest.raises(DeviceUnavailableError, match="no device"):
            probe(Missing())


class TestLaunchConfig:
    """Every lane 0..root exists, in as few groups as the width allows."""

    @pytest.mark.parametrize("root", [0, 1, 2, 10, 63, 64, 65, 1000])
    @pytest.mark.parametrize("width", [1, 3, 64, 1024])
    def test_covers_root(self, root, width):
        config = launch_config(root, width)
        assert config.lanes_per_group == width
        assert config.total_lanes >= root + 1
        assert (config.groups - 1) * width < root + 1

    def test_single_group_when_wide(self):
        assert launch_config(10, 1024) == LaunchConfig(groups=1, lanes_per_group=1024)

    @pytest.mark.parametrize("width", [0, -1])
    def test_bad_width(self, width):
        with pytest.raises(InvalidArgumentError):
            launch_config(10, width)


class TestCheckGpu:

    def test_reports_device(self, capsys):
        assert check_gpu(RecordingDevice(max_lanes_per_group=256))
        out = capsys.readouterr().out
        assert "Device: recording" in out
        assert "Compute capability: 8.0" in out
        assert "Lane width: 256" in out

    def test_reports_unavailable(self, capsys):
        device = RecordingDevice()
        device.fail_on = 'capability'
        assert not check_gpu(device)
        assert "not available" in capsys.readouterr().out
