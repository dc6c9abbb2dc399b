[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "quictunnel"
version = "0.1.0"
description = "Wire formats, packet obfuscation, Brutal congestion control, port hopping and UDP session handling for Hysteria, Hysteria2 and TUIC tunnels"
requires-python = ">=3.10"
dependencies = []
keywords = ["hysteria", "hysteria2", "tuic", "quic", "proxy", "obfuscation", "udp", "port-hopping"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: System :: Networking",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["quictunnel"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
