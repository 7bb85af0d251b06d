[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "clusterops"
version = "0.1.0"
description = "Cluster management services: topology, resource caching, security policy detection, control plane and etcd restore over SSH, and health checks"
requires-python = ">=3.10"
keywords = ["kubernetes", "cluster", "etcd", "topology", "health-check", "ssh"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Clustering",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "paramiko",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["clusterops"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
