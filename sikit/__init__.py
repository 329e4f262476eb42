"""Helpers for JSON streams, files, FTP, Elasticsearch, gRPC and RabbitMQ."""

__version__ = "0.1.0"

__all__ = [
    "codec",
    "elastic",
    "encoding",
    "files",
    "ftp",
    "growslice",
    "grpcconf",
    "rmqchannel",
    "rmqconn",
    "rmqlog",
    "rmqpool",
    "school",
]