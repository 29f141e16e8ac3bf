[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "colima"
version = "0.1.0"
description = "Profiles, configuration and background daemon processes for container runtimes in a Lima virtual machine"
requires-python = ">=3.10"
keywords = [
    "containers",
    "docker",
    "containerd",
    "kubernetes",
    "lima",
    "virtual-machine",
    "qemu",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: MacOS",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
]
dependencies = [
    "pyyaml>=6.0",
    "semver>=3.0",
    "watchdog>=3.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[tool.hatch.build.targets.wheel]
packages = ["colima"]

[tool.hatch.build.targets.sdist]
include = ["colima", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
