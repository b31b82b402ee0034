"""Implementation modules behind ``assist_gateway.base.cancellation``."""

from .cancellation_token import CancellationToken

__all__ = ["CancellationToken"]
