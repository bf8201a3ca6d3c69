[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "peerchain"
version = "0.1.0"
description = "A small proof-of-work blockchain whose nodes share blocks and chains over UDP multicast"
requires-python = ">=3.10"
dependencies = []
keywords = ["blockchain", "proof-of-work", "peer-to-peer", "sha256", "mining", "multicast"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
peerchain = "peerchain.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["peerchain"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
