class ChatPlatformError(RuntimeError):
    """Raised when the chat platform rejects a send after its bounded retries."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CatalogSourceError(RuntimeError):
    """Raised when the catalog source cannot be fetched or does not hold a JSON array."""
    pass
