import os

import pytest
import yaml

from colima import config
from colima.config import (
    Config,
    Kubernetes,
    Mount,
    Network,
    Profile,
    Provision,
    VersionInfo,
    app_version,
    cache_dir,
    config_base_dir,
    current_profile,
    lima_dir,
    profile_from_name,
    set_profile,
    ssh_config_file,
    templates_dir,
)


@pytest.fixture
def restore_profile():
    previous = current_profile()
    yield
    set_profile(previous.short_name)


@pytest.fixture
def colima_home(tmp_path, monkeypatch):
    monkeypatch.setenv("COLIMA_HOME", str(tmp_path))
    monkeypatch.delenv("LIMA_HOME", raising=False)
    return tmp_path


def test_app_version():
    assert app_version() == VersionInfo(version="development", revision="unknown")


@pytest.mark.parametrize("name", ["", "colima", "default"])
def test_default_profile(name):
    assert profile_from_name(name) == Profile(
        id="colima", display_name="colima", short_name="default"
    )


def test_custom_profile():
    p = profile_from_name("dev")
    assert p.id == "colima-dev"
    assert p.display_name == "colima [profile=dev]"
    assert p.short_name == "dev"


def test_profile_prefix_is_stripped():
    assert profile_from_name("colima-dev") == profile_from_name("dev")


def test_set_profile(restore_profile):
    set_profile("work")
    assert current_profile() == profile_from_name("work")


def test_auto_activate():
    assert Config().auto_activate() is True
    assert Config(activate_runtime=False).auto_activate() is False
    assert Config(activate_runtime=True).auto_activate() is True


def test_empty():
    assert Config().empty() is True
    assert Config(runtime="docker").empty() is False


def test_driver_label_qemu():
    assert Config(vm_type="qemu").driver_label() == "QEMU"


def test_mounts_or_default_keeps_configured():
    mounts = [Mount(location="/data", writable=True)]
    assert Config(mounts=mounts).mounts_or_default() == mounts


def test_mounts_or_default(monkeypatch, tmp_path, restore_profile):
    monkeypatch.setenv("HOME", str(tmp_path))
    set_profile("default")
    assert Config().mounts_or_default() == [
        Mount(location=str(tmp_path), writable=True),
        Mount(location="/tmp/colima", writable=True),
    ]


def test_to_dict_empty_keeps_hostname_only():
    assert Config().to_dict() == {"hostname": ""}


def test_to_dict_activate_false_kept():
    assert Config(activate_runtime=False).to_dict()["autoActivate"] is False


def test_to_dict_memory_integral():
    assert Config(memory=2.0).to_dict()["memory"] == 2


def test_round_trip():
    conf = Config(
        cpu=2,
        disk=100,
        memory=2.5,
        arch="aarch64",
        network=Network(address=True, dns_resolvers=["1.1.1.1"], dns_hosts={"a": "b"}),
        env={"KEY": "value"},
        hostname="colima",
        ssh_port=2222,
        ssh_config=True,
        vm_type="vz",
        mounts=[Mount(location="/a", mount_point="/b", writable=True)],
        mount_type="virtiofs",
        mount_inotify=True,
        runtime="docker",
        activate_runtime=True,
        kubernetes=Kubernetes(enabled=True, version="v1", k3s_args=["--disable=traefik"]),
        docker={"features": {"buildkit": True}},
        provision=[Provision(mode="system", script="echo hi")],
    )
    assert Config.from_dict(conf.to_dict()) == conf
    assert Config.from_dict(yaml.safe_load(yaml.safe_dump(conf.to_dict()))) == conf


def test_from_dict_uses_file_keys():
    conf = Config.from_dict({"cpuType": "host", "sshPort": 22, "rosetta": True})
    assert conf.cpu_type == "host"
    assert conf.ssh_port == 22
    assert conf.vz_rosetta is True


def test_from_dict_none_is_empty():
    assert Config.from_dict(None) == Config()


def test_from_dict_invalid_dns():
    with pytest.raises(ValueError):
        Config.from_dict({"network": {"dns": ["not-an-ip"]}})


def test_from_dict_wrong_type():
    with pytest.raises(TypeError):
        Config.from_dict({"cpu": "many"})


def test_colima_home(colima_home):
    assert config_base_dir() == str(colima_home)
    assert ssh_config_file() == os.path.join(str(colima_home), "ssh_config")


def test_templates_dir_created(colima_home):
    directory = templates_dir()
    assert directory == os.path.join(str(colima_home), "_templates")
    assert os.path.isdir(directory)


def test_lima_dir_default(colima_home):
    assert lima_dir() == os.path.join(str(colima_home), "_lima")


def test_lima_home(colima_home, monkeypatch, tmp_path):
    lima_home = tmp_path / "lima"
    monkeypatch.setenv("LIMA_HOME", str(lima_home))
    assert lima_dir() == str(lima_home)
    assert lima_home.is_dir()


def test_cache_dir(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path))
    assert cache_dir() == os.path.join(str(tmp_path), "colima")
    assert (tmp_path / "colima").is_dir()


def test_xdg_config_home(monkeypatch, tmp_path):
    monkeypatch.delenv("COLIMA_HOME", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    assert config_base_dir() == os.path.join(str(tmp_path / "xdg"), "colima")


def test_dot_colima_preferred(monkeypatch, tmp_path):
    home = tmp_path / "home"
    (home / ".colima").mkdir(parents=True)
    monkeypatch.delenv("COLIMA_HOME", raising=False)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    assert config_base_dir() == str(home / ".colima")


def test_profile_paths(colima_home):
    p = profile_from_name("dev")
    assert p.config_dir() == os.path.join(str(colima_home), "dev")
    assert os.path.isdir(p.config_dir())
    assert p.file() == os.path.join(str(colima_home), "dev", config.CONFIG_FILE_NAME)
    instance = os.path.join(str(colima_home), "_lima", "colima-dev")
    assert p.lima_instance_dir() == instance
    assert p.lima_file() == os.path.join(instance, "lima.yaml")
    assert p.state_file() == os.path.join(instance, "colima.yaml")