[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "peggo"
version = "0.1.0"
description = "Building blocks for a Gravity Bridge orchestrator: Cosmos message broadcasting, Ethereum claim ordering and ERC20 symbol lookups"
requires-python = ">=3.10"
dependencies = [
    "pycryptodome",
    "pyyaml",
]
keywords = [
    "gravity-bridge",
    "cosmos",
    "ethereum",
    "orchestrator",
    "bridge",
    "erc20",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
peggo = "peggo.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["peggo"]

[tool.hatch.build.targets.sdist]
include = [
    "peggo",
    "tests",
    "pyproject.toml",
]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
