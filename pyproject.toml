[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sikit"
version = "0.1.0"
description = "Helpers for moving data between programs and files, JSON streams, FTP, Elasticsearch, gRPC and RabbitMQ."
requires-python = ">=3.10"
keywords = ["io", "json", "hmac", "files", "ftp", "elasticsearch", "grpc", "rabbitmq"]
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
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "grpcio",
    "pika",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["sikit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
