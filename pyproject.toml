[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sloth"
version = "0.1.0"
description = "Generate Prometheus SLO recording and alerting rules from SLO specifications."
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = ["slo", "sli", "prometheus", "monitoring", "alerting", "openslo", "error-budget"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["sloth"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
