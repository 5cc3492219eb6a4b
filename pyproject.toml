[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sclib"
version = "2.0.0"
description = "Small systems helpers: RC4 random bytes, size strings, signal-safe formatting, signal handling, sockets, pipes and polling"
requires-python = ">=3.10"
dependencies = []
keywords = ["socket", "poll", "epoll", "kqueue", "pipe", "signal", "rc4", "size", "systemd"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sclib"]

[tool.pytest.ini_options]
addopts = "-ra"
