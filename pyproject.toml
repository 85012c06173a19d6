[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sysycc"
version = "0.1.0"
description = "Intermediate representation, ARM code generation and linear-scan register allocation for a SysY compiler back end"
requires-python = ">=3.10"
dependencies = []
keywords = ["compiler", "sysy", "ir", "arm", "register-allocation", "linear-scan", "code-generation"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Compilers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sysycc"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
