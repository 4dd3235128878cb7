"""Tests for resource sample types."""

import pytest

from why_linux.samples import (
    CpuSample,
    DiskSample,
    IoSample,
    MemSample,
    ResourceKind,
)


def test_kind_and_value():
    assert CpuSample("a", 1, 12.0).kind is ResourceKind.CPU
    assert MemSample("a", 1, 5.0, 80.0).value == 5.0
    assert DiskSample("/dev/sda1", "/", 91.0).value == 91.0
    assert IoSample(1, "a", 10, 5).value == 15


def test_mem_to_dict_carries_system_percent():
    sample = MemSample(name="x", pid=1, mem_percent=1.0, system_used_percent=90.0)
    assert sample.to_dict() == {
        "name": "x",
        "pid": 1,
        "mem_percent": 1.0,
        "system_used_percent": 90.0,
    }


def test_samples_are_immutable():
    sample = CpuSample(name="x", pid=1, cpu_percent=1.0)
    with pytest.raises(AttributeError):
        sample.cpu_percent = 2.0  # type: ignore[misc]
