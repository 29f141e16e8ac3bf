import logging
import os
import sys

import pytest

from colima import configmanager
from colima.config import (
    Config,
    Kubernetes,
    Mount,
    Network,
    Provision,
    current_profile,
    set_profile,
)
from colima.startconfig import (
    merge_unchanged,
    set_config_defaults,
    set_fixed_configs,
    template_file,
)


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    home = tmp_path / "colima-home"
    home.mkdir()
    monkeypatch.setenv("COLIMA_HOME", str(home))
    monkeypatch.setenv("LIMA_HOME", str(tmp_path / "lima-home"))
    monkeypatch.setattr(sys, "platform", "linux")
    set_profile("")
    yield home
    set_profile("")


def test_template_file_location(isolated):
    path = template_file()
    assert os.path.basename(path) == "default.yaml"
    assert os.path.dirname(path) == os.path.join(str(isolated), "_templates")
    assert os.path.isdir(os.path.dirname(path))


def test_config_defaults_fill_missing():
    conf = Config()
    set_config_defaults(conf)
    assert conf.vm_type == "qemu"
    assert conf.mount_type == "sshfs"
    assert conf.hostname == "colima"


def test_config_defaults_hostname_follows_profile():
    set_profile("work")
    conf = Config()
    set_config_defaults(conf)
    assert conf.hostname == current_profile().id
    assert conf.hostname.startswith("colima-")


def test_config_defaults_keep_existing():
    conf = Config(vm_type="vz", mount_type="9p", hostname="box")
    set_config_defaults(conf)
    assert (conf.vm_type, conf.mount_type, conf.hostname) == ("vz", "9p", "box")


def test_fixed_configs_override(caplog):
    fixed = Config(
        arch="aarch64",
        vm_type="qemu",
        runtime="containerd",
        mount_type="9p",
        network=Network(address=True),
    )
    configmanager.save_to_file(fixed, current_profile().state_file())

    conf = Config(arch="x86_64", vm_type="vz", runtime="docker", mount_type="sshfs")
    with caplog.at_level(logging.WARNING):
        set_fixed_configs(conf)

    assert conf.arch == fixed.arch
    assert conf.vm_type == fixed.vm_type
    assert conf.runtime == fixed.runtime
    assert conf.mount_type == fixed.mount_type
    assert conf.network.address is True
    assert "'architecture' cannot be updated after initial setup, discarded" in caplog.text
    assert "network address cannot be disabled once enabled" in caplog.text


def test_fixed_configs_no_warning_when_equal(caplog):
    fixed = Config(arch="aarch64", runtime="docker")
    configmanager.save_to_file(fixed, current_profile().state_file())
    conf = Config(arch="aarch64", runtime="docker", vm_type="qemu")
    with caplog.at_level(logging.WARNING):
        set_fixed_configs(conf)
    assert conf.vm_type == "qemu"
    assert "cannot be updated" not in caplog.text


def test_fixed_configs_without_state_file():
    conf = Config(arch="x86_64", runtime="docker")
    set_fixed_configs(conf)
    assert conf == Config(arch="x86_64", runtime="docker")


def _current():
    return Config(
        cpu=6,
        disk=200,
        memory=4.5,
        arch="aarch64",
        cpu_type="host",
        runtime="containerd",
        mounts=[Mount(location="/data", writable=True)],
        mount_type="9p",
        mount_inotify=True,
        forward_agent=True,
        ssh_config=True,
        ssh_port=2222,
        env={"A": "1"},
        hostname="box",
        activate_runtime=False,
        network=Network(dns_resolvers=["1.1.1.1"], dns_hosts={"a.test": "10.0.0.1"}, host_addresses=True),
        kubernetes=Kubernetes(enabled=True, version="v1.30.0+k3s1", k3s_args=["--x"]),
        docker={"features": {"buildkit": True}},
        provision=[Provision(mode="system", script="true")],
    )


def test_merge_takes_all_unchanged():
    current = _current()
    conf = Config(runtime="docker", cpu=2)
    merge_unchanged(conf, current, set())
    assert conf == current


def test_merge_keeps_changed_flags():
    current = _current()
    conf = Config(cpu=8, runtime="docker", kubernetes=Kubernetes(version="v1"))
    merge_unchanged(conf, current, {"cpu", "runtime", "kubernetes-version"})
    assert conf.cpu == 8
    assert conf.runtime == "docker"
    assert conf.kubernetes.version == "v1"
    assert conf.kubernetes.enabled is True
    assert conf.disk == current.disk


def test_merge_always_takes_docker_and_provision():
    current = _current()
    conf = Config(docker={"x": 1})
    all_flags = {"cpu", "disk", "memory", "arch", "runtime", "mount", "env"}
    merge_unchanged(conf, current, all_flags)
    assert conf.docker == current.docker
    assert conf.provision == current.provision


def test_merge_activate_without_current_value():
    current = Config()
    conf = Config(activate_runtime=True)
    merge_unchanged(conf, current, set())
    assert conf.activate_runtime is True


def test_merge_does_not_share_containers():
    current = _current()
    conf = Config()
    merge_unchanged(conf, current, set())
    conf.mounts.append(Mount(location="/other"))
    conf.env["B"] = "2"
    assert len(current.mounts) == 1
    assert "B" not in current.env