[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "melody"
version = "1.2.0"
description = "A minimalist framework for managing WebSocket sessions on aiohttp: connect, broadcast, filter and close."
requires-python = ">=3.10"
dependencies = [
    "aiohttp",
]
keywords = ["websocket", "websockets", "broadcast", "pubsub", "aiohttp", "realtime"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Framework :: AsyncIO",
    "Framework :: aiohttp",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "hypothesis",
]

[project.scripts]
melody = "melody.apps:main"

[tool.hatch.build.targets.wheel]
packages = ["melody"]

[tool.hatch.build.targets.sdist]
include = ["melody", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
