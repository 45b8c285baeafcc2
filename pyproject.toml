[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "guardheap"
version = "0.1.0"
description = "A simulated guarded heap for tests: leak detection, overrun guards and forced allocation failures"
requires-python = ">=3.10"
dependencies = []
keywords = ["testing", "memory", "allocator", "leak detection", "buffer overrun"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Testing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["guardheap"]

[tool.pytest.ini_options]
addopts = "-ra"
