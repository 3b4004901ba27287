[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kruiseset"
version = "0.1.0"
description = "Offline editing of container images, resources, selectors, service accounts and RBAC subjects in Kubernetes and OpenKruise manifests"
requires-python = ">=3.10"
keywords = ["kubernetes", "openkruise", "manifests", "yaml", "rbac", "cloneset"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
kruiseset = "kruiseset.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["kruiseset"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
