[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kptools"
version = "0.1.0"
description = "Kernel timing and space-time stack profiling tools, with readers for the recorded timing data"
requires-python = ">=3.10"
dependencies = []
keywords = ["profiling", "kernel timer", "performance", "benchmark", "space-time stack"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Benchmark",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
kp-reader = "kptools.reader:main"
kp-json-writer = "kptools.json_writer:main"

[tool.hatch.build.targets.wheel]
packages = ["kptools"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
