"""Tests for host-level probes with psutil stubbed out."""

import socket
from collections import namedtuple

import pytest

from node_fingerprint.fingerprint import (
    CgroupFingerprint,
    CPUFingerprint,
    HostFingerprint,
    MemoryFingerprint,
    NetworkFingerprint,
    NetworkInterfaceError,
    StorageFingerprint,
)
from node_fingerprint.fingerprint.cgroup import find_cgroup_mount

Addr = namedtuple("Addr", "family address netmask broadcast ptp")
Stats = namedtuple("Stats", "isup duplex speed mtu")
Freq = namedtuple("Freq", "current min max")
Usage = namedtuple("Usage", "total used free percent")
VirtualMemory = namedtuple("VirtualMemory", "total available")

PSUTIL = "node_fingerprint.fingerprint.host.psutil"
NET_PSUTIL = "node_fingerprint.fingerprint.network.psutil"


@pytest.mark.asyncio
async def test_host_probe_reports_kernel_and_hostname(agent_config):
    response = await HostFingerprint().fingerprint(agent_config)

    assert response.detected is True
    assert response.attributes["unique.hostname"] == socket.gethostname()
    assert response.attributes["kernel.name"]
    assert "cpu.arch" in response.attributes
    assert HostFingerprint.mandatory is True


@pytest.mark.asyncio
async def test_cpu_probe_computes_total(agent_config, monkeypatch):
    monkeypatch.setattr(f"{PSUTIL}.cpu_count", lambda logical=True: 4)
    monkeypatch.setattr(f"{PSUTIL}.cpu_freq", lambda: Freq(1800.0, 800.0, 2500.0))

    response = await CPUFingerprint().fingerprint(agent_config)

    assert response.attributes == {
        "cpu.numcores": "4",
        "cpu.frequency": "2500",
        "cpu.totalcompute": "10000",
    }
    assert response.resources.cpu_cores == 4
    assert response.resources.cpu_mhz == 10000


@pytest.mark.asyncio
async def test_cpu_probe_honours_total_compute_override(agent_config, monkeypatch):
    monkeypatch.setattr(f"{PSUTIL}.cpu_count", lambda logical=True: 2)
    monkeypatch.setattr(f"{PSUTIL}.cpu_freq", lambda: None)
    agent_config.fingerprint.cpu_total_compute = 3000

    response = await CPUFingerprint().fingerprint(agent_config)

    assert "cpu.frequency" not in response.attributes
    assert response.attributes["cpu.totalcompute"] == "3000"
    assert response.resources.cpu_mhz == 3000


@pytest.mark.asyncio
async def test_memory_probe(agent_config, monkeypatch):
    monkeypatch.setattr(
        f"{PSUTIL}.virtual_memory", lambda: VirtualMemory(8 * 1024**3, 0)
    )

    response = await MemoryFingerprint().fingerprint(agent_config)

    assert response.attributes == {"memory.totalbytes": str(8 * 1024**3)}
    assert response.resources.memory_mb == 8192


@pytest.mark.asyncio
async def test_storage_probe_uses_existing_ancestor(
    agent_config, tmp_path, monkeypatch
):
    seen = []

    def disk_usage(path):
        seen.append(path)
        return Usage(100 * 1024**2, 40 * 1024**2, 60 * 1024**2, 40.0)

    monkeypatch.setattr(f"{PSUTIL}.disk_usage", disk_usage)
    agent_config.agent.data_dir = tmp_path / "not" / "created"

    response = await StorageFingerprint().fingerprint(agent_config)

    assert seen == [str(tmp_path)]
    assert response.attributes["unique.storage.volume"] == str(tmp_path)
    assert response.attributes["unique.storage.bytesfree"] == str(60 * 1024**2)
    assert response.resources.disk_mb == 60


def stub_interfaces(monkeypatch, addresses, stats):
    monkeypatch.setattr(f"{NET_PSUTIL}.net_if_addrs", lambda: addresses)
    monkeypatch.setattr(f"{NET_PSUTIL}.net_if_stats", lambda: stats)


@pytest.mark.asyncio
async def test_network_probe_skips_loopback_and_down_interfaces(
    agent_config, monkeypatch
):
    stub_interfaces(
        monkeypatch,
        {
            "lo": [Addr(socket.AF_INET, "127.0.0.1", "255.0.0.0", None, None)],
            "eth9": [Addr(socket.AF_INET, "192.168.9.9", "255.255.255.0", None, None)],
            "eth0": [
                Addr(socket.AF_INET6, "fe80::1", None, None, None),
                Addr(socket.AF_INET, "10.1.2.3", "255.255.255.0", None, None),
            ],
        },
        {
            "lo": Stats(True, 0, 0, 65536),
            "eth9": Stats(False, 2, 1000, 1500),
            "eth0": Stats(True, 2, 10000, 1500),
        },
    )

    response = await NetworkFingerprint().fingerprint(agent_config)

    assert response.detected is True
    assert response.attributes == {"network.ip-address": "10.1.2.3"}
    assert len(response.networks) == 1
    network = response.networks[0]
    assert (network.device, network.ip, network.cidr, network.mbits) == (
        "eth0",
        "10.1.2.3",
        "10.1.2.3/32",
        10000,
    )


@pytest.mark.asyncio
async def test_network_probe_falls_back_to_configured_speed(agent_config, monkeypatch):
    stub_interfaces(
        monkeypatch,
        {"ens4": [Addr(socket.AF_INET, "10.0.0.8", "255.255.255.0", None, None)]},
        {"ens4": Stats(True, 0, 0, 1460)},
    )
    agent_config.fingerprint.network_speed_mbits = 1000

    response = await NetworkFingerprint().fingerprint(agent_config)

    assert response.networks[0].mbits == 1000


@pytest.mark.asyncio
async def test_network_probe_not_applicable_without_interfaces(
    agent_config, monkeypatch
):
    stub_interfaces(
        monkeypatch,
        {"lo": [Addr(socket.AF_INET, "127.0.0.1", "255.0.0.0", None, None)]},
        {"lo": Stats(True, 0, 0, 65536)},
    )

    response = await NetworkFingerprint().fingerprint(agent_config)

    assert response.detected is False
    assert response.is_empty()


@pytest.mark.asyncio
async def test_network_probe_rejects_missing_configured_interface(
    agent_config, monkeypatch
):
    stub_interfaces(
        monkeypatch,
        {"eth0": [Addr(socket.AF_INET, "10.0.0.8", "255.255.255.0", None, None)]},
        {"eth0": Stats(True, 0, 0, 1500)},
    )
    agent_config.fingerprint.network_interface = "bond0"

    with pytest.raises(NetworkInterfaceError, match="bond0"):
        await NetworkFingerprint().fingerprint(agent_config)


def test_network_probe_periodic_descriptor():
    assert NetworkFingerprint(interval=15.0).periodic is True
    assert NetworkFingerprint().periodic is False


MOUNTINFO_V2 = [
    "22 1 8:1 / / rw,relatime shared:1 - ext4 /dev/sda1 rw",
    "30 22 0:26 / /sys/fs/cgroup rw,nosuid shared:4 - cgroup2 cgroup2 rw",
]

MOUNTINFO_V1 = [
    "22 1 8:1 / / rw,relatime shared:1 - ext4 /dev/sda1 rw",
    "31 25 0:27 / /sys/fs/cgroup/cpu,cpuacct rw shared:10 - cgroup cgroup rw,cpu",
    "32 25 0:28 / /sys/fs/cgroup/memory rw shared:11 - cgroup cgroup rw,memory",
]


def test_find_cgroup_mount_variants():
    assert find_cgroup_mount(MOUNTINFO_V2) == ("/sys/fs/cgroup", "v2")
    assert find_cgroup_mount(MOUNTINFO_V1) == ("/sys/fs/cgroup", "v1")
    assert find_cgroup_mount(MOUNTINFO_V2[:1]) is None


@pytest.mark.asyncio
async def test_cgroup_probe_retracts_vanished_mount(agent_config, tmp_path):
    mountinfo = tmp_path / "mountinfo"
    mountinfo.write_text("\n".join(MOUNTINFO_V2) + "\n", encoding="utf-8")
    probe = CgroupFingerprint(interval=15.0, mountinfo_path=mountinfo)

    first = await probe.fingerprint(agent_config)
    mountinfo.write_text(MOUNTINFO_V2[0] + "\n", encoding="utf-8")
    second = await probe.fingerprint(agent_config)

    assert first.attributes == {
        "unique.cgroup.mountpoint": "/sys/fs/cgroup",
        "unique.cgroup.version": "v2",
    }
    assert second.detected is False
    assert second.attributes == {
        "unique.cgroup.mountpoint": None,
        "unique.cgroup.version": None,
    }


@pytest.mark.asyncio
async def test_cgroup_probe_without_mountinfo(agent_config, tmp_path):
    probe = CgroupFingerprint(mountinfo_path=tmp_path / "missing")

    response = await probe.fingerprint(agent_config)

    assert response.detected is False
    assert response.is_empty()
    assert probe.supports("linux") is True
    assert probe.supports("darwin") is False
