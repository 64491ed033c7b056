"""Exceptions raised by the MiniVC host layer."""


class MiniVCError(Exception):
    """Base exception for MiniVC errors."""

    pass


class ResponseCommittedError(MiniVCError):
    """A response was written to after it had already been committed."""

    pass
