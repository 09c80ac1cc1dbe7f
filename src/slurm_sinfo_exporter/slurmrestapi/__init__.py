"""SLURM REST API client package.

Provides a lightweight HTTP transport for the SLURM REST API that returns
the raw node inventory payload. Decoding and validation of the payload are
handled by the parser module.

Exports:
    SlurmRestApiClient: HTTP client with authentication and error handling.
    DEFAULT_API_VERSION: Default SLURM REST API version.
    DEFAULT_TIMEOUT: Default HTTP request timeout.
"""

from .client import (
    DEFAULT_API_VERSION,
    DEFAULT_TIMEOUT,
    ExpiredTokenError,
    SlurmRestApiClient,
)

__all__ = [
    "DEFAULT_API_VERSION",
    "DEFAULT_TIMEOUT",
    "ExpiredTokenError",
    "SlurmRestApiClient",
]
