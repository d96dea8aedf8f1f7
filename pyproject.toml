[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sntpd"
version = "0.1.0"
description = "A small SNTP server answering client time requests over UDP, with a simple NTP client"
requires-python = ">=3.10"
dependencies = []
keywords = ["sntp", "ntp", "time", "udp", "server"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: No Input/Output (Daemon)",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking :: Time Synchronization",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
sntpd = "sntpd.server:main"

[tool.hatch.build.targets.wheel]
packages = ["sntpd"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
