from __future__ import annotations


class ConceptGraphError(RuntimeError):
    pass


class InputTooLargeError(ConceptGraphError):
    """Content would push the corpus (or a single source) over its size ceiling."""

    def __init__(self, message: str, *, size: int = 0, limit: int = 0):
        super().__init__(message)
        self.size = int(size)
        self.limit = int(limit)


class SourceTooLargeError(InputTooLargeError):
    pass


class FetchError(ConceptGraphError):
    """A file could not be read or a URL could not be fetched."""


class StoreError(ConceptGraphError):
    """The graph repository failed or is unreachable."""


def mb(n: int) -> str:
    return f"{n / 1024 / 1024:.2f}MB"
