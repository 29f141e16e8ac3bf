# colima

A Python library with the building blocks for running container runtimes
inside a Lima virtual machine:

- instance profiles and their directories on disk
- the YAML configuration file: loading, validation and saving
- turning start flags into a configuration and merging it with stored settings
- a check of the installed Lima version
- editing a file in the user's editor
- a background daemon and its processes (vmnet networking and forwarding of
  file modification events into the VM)

Some functions run external programs: `limactl`, `sudo`, `cp`, `sh` and the
chosen editor. These must be available on the host when those functions are
used.

## What this package does not do

- It has no command-line program and installs no command.
- It does not create, start, stop or delete the virtual machine.
- It does not provision or start a container runtime or Kubernetes.

`colima.manager.Manager` controls the daemon by running
`<executable> daemon start|stop|status <profile>` through a host object that
you supply. This package does not provide that command. You must point
`Manager(host, executable=...)` at a program that implements it, for example
one built on `colima.daemonrunner`.

## Profiles

Every instance belongs to a profile. The default profile has the id `colima`.
A custom profile gets a prefixed id, so it cannot clash with other Lima
instances:

```python
from colima.config import profile_from_name, set_profile, current_profile

dev = profile_from_name("dev")
dev.id             # "colima-dev"
dev.display_name   # "colima [profile=dev]"
dev.short_name     # "dev"

set_profile("dev")
current_profile().file()        # <config dir>/dev/colima.yaml
current_profile().state_file()  # <lima dir>/colima-dev/colima.yaml
```

The directory functions create each directory if it is missing:
`config_base_dir()`, `cache_dir()`, `templates_dir()` and `lima_dir()`.

The base configuration directory is chosen in this order:

1. `$COLIMA_HOME`, if that directory exists.
2. `~/.colima`, if it exists. A warning is logged if `$XDG_CONFIG_HOME` is
   also set.
3. `$XDG_CONFIG_HOME/colima`, if that variable is set.
4. `~/.colima` on macOS, or the user configuration directory plus `colima`
   elsewhere.

`lima_dir()` returns `$LIMA_HOME` if that variable is set. Otherwise it
returns `_lima` under the base directory.

`cache_dir()` returns `colima` under `$XDG_CACHE_HOME`, or under the user
cache directory if that variable is not set.

## Configuration

`colima.config.Config` is a dataclass. `to_dict()` and `Config.from_dict()`
convert it to and from the YAML file format. Empty fields are omitted from
the file.

```python
from colima import configmanager

conf = configmanager.load()          # an empty Config when no file exists yet
if conf.empty():
    conf = configmanager.load_from("my-template.yaml")

configmanager.validate_config(conf)  # raises ConfigError on invalid settings
configmanager.save(conf)             # writes the current profile's file
```

`validate_config` raises `ConfigError` in these cases:

- The mount type is not `9p` or `sshfs`. `virtiofs` is also allowed on
  macOS 13 and newer.
- The VM type is not `qemu`. `vz` is also allowed on macOS 13 and newer.
- The VM type is `qemu` and `qemu-img` is not in `$PATH`.
- The disk image is an `http://` or `https://` URL.

`load_from` raises `ConfigError` when the file is unreadable or malformed.

Other functions in `colima.configmanager`:

- `save_to_file` writes a configuration to any path.
- `save_from_file` loads a file and saves it as the current profile's
  configuration.
- `load_instance` reads the running instance's state file.
- `teardown` deletes the profile's configuration directory.

## Flags to configuration

Mount flags take the form `location[:mountpoint][:w]`:

```python
from colima.startflags import mounts_from_flag, dns_hosts_from_flag, kubernetes_disable_args

mounts_from_flag(["~:w", "/tmp:/users/tmp"])
# [Mount(location="~", mount_point="", writable=True),
#  Mount(location="/tmp", mount_point="/users/tmp", writable=False)]

dns_hosts_from_flag(["example.com=1.2.3.4"])   # {"example.com": "1.2.3.4"}
kubernetes_disable_args(["traefik"])           # ["--disable=traefik"]
```

The other functions take a set named `changed` that holds the names of the
flags given explicitly, such as `"vm-type"`, `"mount-type"` and `"cpu"`.

- `set_flag_defaults(config, changed)` fills in the VM type. It then makes the
  mount type fit the VM type: `virtiofs` needs `vz`, and `9p` needs `qemu`.
- `colima.startconfig.merge_unchanged(config, current, changed)` copies stored
  values for every flag not in `changed`. Docker settings and provision
  scripts are always taken from the stored configuration.
- `set_config_defaults(config)` fills in a missing VM type, mount type and
  hostname.
- `set_fixed_configs(config)` restores settings that cannot change after the
  instance is created: architecture, VM type, runtime, mount type and an
  enabled network address. It takes them from the profile's state file and
  logs a warning for each one that was changed.
- `template_file()` returns the path of the default configuration template.

## Lima version

```python
from colima.core import check_lima_version, lima_version_supported

check_lima_version("v1.0.2-rc1")   # "v1.0.2"
check_lima_version("v0.17.0")      # RuntimeError: minimum Lima version supported is v0.18.0 ...
lima_version_supported()           # runs `limactl info` and checks its version
```

`check_lima_version` behaves as follows:

- A development build (`HEAD`) is accepted and a warning is logged.
- A malformed version raises `ValueError`.
- A version older than `v0.18.0` raises `RuntimeError`.

## Editing files

`colima.editor.wait_for_user_edit(editor, content)` writes `content` to a
temporary file and opens it in the editor. It waits until the editor exits,
then returns the file's path. If the user emptied the file, it deletes the
file and returns `None`.

When `editor` is empty, the editor is chosen in this order:

1. VS Code, if running inside its terminal.
2. `$EDITOR`.
3. The first of `vim`, `code` and `nano` found in `$PATH`.

`resolve_editor` returns the resulting shell command. It adds `--wait` where
the editor needs it.

## Command chains

A command chain runs its steps in order, and named stages are logged as the
chain reaches them.

- A step that raises ends the chain. If a stage has been reached, the error is
  raised as `RuntimeError("error at '<stage>': ...")`.
- An error wrapped in `NonFatalError` only logs a warning, and the chain goes
  on.
- `retry(stage, interval, count, func)` adds a step that is retried up to
  `count` more times, `interval` seconds apart.

```python
from colima.cli import CommandChain, NonFatalError

chain = CommandChain("docker").init(quiet=False)
chain.stage("preparing")
chain.add(lambda: None)
chain.exec()
```

`colima.cli` also has helpers for external programs:

- `command(...)` and `command_interactive(...)` build a `Command`. Its
  `run()` and `output()` raise `subprocess.CalledProcessError` on failure.
- `prompt(question)` asks a yes/no question and returns `True` only for an
  answer starting with `y` or `Y`.

## Daemon processes

Background processes implement the `colima.process.Process` interface, with
the methods `name`, `start(stop_event)`, `alive(daemon_running)` and
`dependencies`.

- `colima.vmnet.VmnetProcess` runs `socket_vmnet` as root. Its dependencies
  are `VmnetBinaries`, which extracts a tar.gz archive you point it at, and
  `RunDir`.
- `colima.inotify.InotifyProcess` runs when inotify mounts are enabled. It
  lists the volumes of running docker or containerd containers that lie
  within the mounted directories, and watches those volumes on the host. It
  repeats each modification inside the VM with `chmod`, at most 50 unique
  paths per half second. It needs a guest object with `run_quiet` and
  `run_output` methods.

`colima.daemonrunner` runs processes in a detached daemon on POSIX systems:

- `start(processes, directory)` forks the daemon and writes its pid and log
  files.
- `status(directory)` returns the daemon's pid, or raises `RuntimeError` if it
  is not running.
- `stop(directory, timeout)` sends SIGTERM and waits for the daemon to exit.
- `run_processes(processes, stop_event)` runs the processes in threads until
  the event is set or one of them fails.

`colima.manager.Manager` works out which processes a configuration needs
with `processes_from_config`. It starts them, stops them and reports their
`Status` through the host object.

`omit_children_directories` reduces a list of directories to their sorted,
unique top-level parents:

```python
from colima.inotify import omit_children_directories

omit_children_directories(["/someone", "/user", "/user/someone", "/a", "/a/ee"])
# ["/a", "/someone", "/user"]
```