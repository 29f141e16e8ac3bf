import os
from unittest.mock import patch

import pytest

from colima import config as cfg
from colima import configmanager
from colima.config import Config, Kubernetes, Mount
from colima.configmanager import ConfigError


@pytest.fixture
def env(tmp_path, monkeypatch):
    colima_home = tmp_path / "colima_home"
    colima_home.mkdir()
    user_home = tmp_path / "user"
    user_home.mkdir()
    monkeypatch.setenv("COLIMA_HOME", str(colima_home))
    monkeypatch.setenv("HOME", str(user_home))
    monkeypatch.setenv("LIMA_HOME", str(tmp_path / "lima"))
    cfg.set_profile("default")
    yield tmp_path
    cfg.set_profile("")


def test_save_and_load_round_trip(env):
    conf = Config(
        cpu=4,
        disk=60,
        memory=8,
        runtime="docker",
        vm_type="qemu",
        mount_type="sshfs",
        mounts=[Mount(location="/data", writable=True)],
        kubernetes=Kubernetes(enabled=True, version="v1", k3s_args=["--disable=traefik"]),
    )
    configmanager.save(conf)
    assert configmanager.load() == conf


def test_load_without_file_is_empty(env):
    loaded = configmanager.load()
    assert loaded.empty()
    assert loaded == Config()


def test_load_from_missing_file(env):
    with pytest.raises(ConfigError, match="could not load config from file"):
        configmanager.load_from(str(env / "missing.yaml"))


def test_load_from_invalid_yaml(env):
    bad = env / "bad.yaml"
    bad.write_text("cpu: [unterminated\n")
    with pytest.raises(ConfigError):
        configmanager.load_from(str(bad))


def test_load_from_wrong_type(env):
    bad = env / "bad.yaml"
    bad.write_text("cpu: lots\n")
    with pytest.raises(ConfigError):
        configmanager.load_from(str(bad))


def test_load_from_empty_file_is_empty(env):
    empty = env / "empty.yaml"
    empty.write_text("")
    assert configmanager.load_from(str(empty)) == Config()


def test_save_to_file_and_save_from_file(env):
    other = env / "other.yaml"
    conf = Config(runtime="containerd", cpu=2)
    configmanager.save_to_file(conf, str(other))
    configmanager.save_from_file(str(other))
    assert configmanager.load() == conf


def test_load_instance(env):
    conf = Config(runtime="docker", arch="x86_64")
    configmanager.save_to_file(conf, cfg.current_profile().state_file())
    assert configmanager.load_instance() == conf


def test_load_copies_old_config(env):
    old_dir = env / "user" / ".colima"
    old_dir.mkdir()
    (old_dir / "colima.yaml").write_text("runtime: docker\ncpu: 3\n")
    loaded = configmanager.load()
    assert loaded.runtime == "docker"
    assert loaded.cpu == 3
    assert os.path.exists(cfg.current_profile().file())


def test_teardown_removes_config_dir(env):
    configmanager.save(Config(runtime="docker"))
    directory = os.path.join(str(env / "colima_home"), "default")
    assert os.path.isdir(directory)
    assert configmanager.load() == Config(runtime="docker")
    configmanager.teardown()
    assert not os.path.exists(directory)
    assert configmanager.load() == Config()


def test_validate_invalid_mount_type():
    with pytest.raises(ConfigError, match="invalid mountType"):
        configmanager.validate_config(Config(mount_type="nfs", vm_type="qemu"))


def test_validate_invalid_vm_type():
    with pytest.raises(ConfigError, match="invalid vmType"):
        configmanager.validate_config(Config(mount_type="sshfs", vm_type="bogus"))


def test_validate_qemu_requires_qemu_img():
    with patch("shutil.which", return_value=None):
        with pytest.raises(ConfigError, match="cannot use vmType"):
            configmanager.validate_config(Config(mount_type="sshfs", vm_type="qemu"))


@pytest.mark.parametrize("image", ["http://example.com/disk.img", "https://example.com/disk.img"])
def test_validate_rejects_remote_disk_image(image):
    with patch("shutil.which", return_value="/usr/bin/qemu-img"):
        with pytest.raises(ConfigError, match="remote URLs not supported"):
            configmanager.validate_config(
                Config(mount_type="9p", vm_type="qemu", disk_image=image)
            )