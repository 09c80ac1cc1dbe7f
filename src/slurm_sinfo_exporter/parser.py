"""Decoding of raw node inventory payloads into typed records."""

import pydantic
import structlog

from .errors import MalformedPayload, SourceError
from .types import NodeRecord, SinfoResponse

logger = structlog.get_logger(__name__)


def parse_nodes(raw: bytes) -> list[NodeRecord]:
    """Parse a node inventory payload.

    The payload's embedded error list takes precedence over its node data:
    if the source reported any error, the whole payload is rejected even
    when nodes are present.

    Args:
        raw: JSON document as returned by a fetcher.

    Returns:
        Node records exactly as reported by the source.

    Raises:
        MalformedPayload: If the payload does not match the schema.
        SourceError: If the payload carries a non-empty error list. The
            message is the first reported error.
    """
    try:
        response = SinfoResponse.model_validate_json(raw)
    except pydantic.ValidationError as exc:
        logger.error(
            "Failed to decode node inventory",
            error_count=exc.error_count(),
            error=str(exc),
        )
        msg = f"invalid node inventory payload: {exc}"
        raise MalformedPayload(msg) from exc

    if response.errors:
        for error in response.errors:
            logger.error("Data source error response", error_message=error)
        raise SourceError(response.errors[0])

    return response.nodes
