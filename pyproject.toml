[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "partitionlink"
version = "0.1.0"
description = "A small in-memory key/hash store node with multicast node discovery and a framed TCP command protocol"
requires-python = ">=3.10"
keywords = [
    "database",
    "key-value",
    "cluster",
    "multicast",
    "discovery",
    "tcp",
    "protocol",
    "asyncio",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Database :: Database Engines/Servers",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "msgpack",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
partitionlink-server = "partitionlink.server:main"
partitionlink-client = "partitionlink.client:main"

[tool.hatch.build.targets.wheel]
packages = ["partitionlink"]

[tool.hatch.build.targets.sdist]
include = [
    "partitionlink",
    "tests",
    "pyproject.toml",
]

[tool.pytest.ini_options]
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
