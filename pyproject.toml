[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "riffknative"
version = "0.1.0"
description = "Commands for managing Knative adapters and deployers of riff workloads against a resource store"
requires-python = ">=3.10"
keywords = ["knative", "riff", "kubernetes", "cli", "deployer", "adapter"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Build Tools",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
riff-knative = "riffknative.knative:main"

[tool.hatch.build.targets.wheel]
packages = ["riffknative"]

[tool.pytest.ini_options]
addopts = "-ra"
