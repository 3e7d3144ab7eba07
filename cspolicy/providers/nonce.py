"""Per-request CSP nonce generation."""

from __future__ import annotations

import base64
import secrets

import structlog

from cspolicy.middleware.pipeline import RequestContext
from cspolicy.policy.errors import InvalidArgumentError

logger = structlog.get_logger()

DEFAULT_NONCE_BIT_LENGTH = 128


class NonceProvider:
    """Hand out one cryptographically random nonce per request.

    The nonce is cached on the request context: the header and every
    inline script or style tag of the response must carry the same value.
    """

    def __init__(self, bit_length: int = DEFAULT_NONCE_BIT_LENGTH) -> None:
        if bit_length < 64 or bit_length % 8:
            raise InvalidArgumentError("nonce bit length must be a multiple of 8 and at least 64")
        self._byte_length = bit_length // 8

    def get_nonce(self, context: RequestContext) -> str:
        if context is None:
            raise InvalidArgumentError("context must not be None")
        if context.nonce is None:
            context.nonce = self.create_nonce()
            logger.debug("csp_nonce_generated", request_id=context.request_id)
        return context.nonce

    def create_nonce(self) -> str:
        """Base64 encoding of fresh random bytes."""
        return base64.b64encode(secrets.token_bytes(self._byte_length)).decode("ascii")
