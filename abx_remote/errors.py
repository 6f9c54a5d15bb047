from __future__ import annotations


class ValidationError(ValueError):
    """A test session was started with settings that cannot be honoured.

    Raised before any state changes and before any request goes out.
    """
