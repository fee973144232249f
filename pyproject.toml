[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "w3xkit"
version = "1.0.0"
description = "Readers, writers and cleanup passes for Warcraft III map data files"
requires-python = ">=3.10"
dependencies = []
keywords = ["warcraft", "w3x", "w3i", "w3u", "map", "ini", "slk", "modding"]
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
    "Topic :: File Formats",
    "Topic :: Games/Entertainment",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["w3xkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
