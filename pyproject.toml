[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "winemu"
version = "0.1.0"
description = "Building blocks for emulating Windows user-mode processes: handles, kernel objects, registry hives, PE image mapping, AFD helpers and a region allocator"
requires-python = ">=3.10"
dependencies = []
keywords = ["emulator", "windows", "pe", "registry", "hive", "handles", "afd"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["winemu"]

[tool.pytest.ini_options]
addopts = "-ra"
