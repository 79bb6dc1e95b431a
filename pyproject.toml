[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "glmquota"
version = "0.1.0"
description = "Activate and monitor GLM coding-plan quota, with a systemd-driven scheduling daemon"
requires-python = ">=3.10"
keywords = ["glm", "quota", "heartbeat", "systemd", "scheduler", "cli"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Utilities",
]
dependencies = [
    "requests>=2.28",
    "pyyaml>=6.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "responses>=0.23",
]

[project.scripts]
glm = "glmquota.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["glmquota"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
