class NeoWatchError(Exception):
    """Base error carrying a stable ``kind`` the HTTP layer can map."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message}


class UpstreamUnavailable(NeoWatchError):
    """The NEO feed failed, timed out or answered with a non-success status."""

    kind = "upstream_unavailable"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["upstream_status"] = self.status_code
        return data


class NotFound(NeoWatchError):
    kind = "not_found"


class ValidationFailure(NeoWatchError):
    """Caller supplied a malformed or missing parameter."""

    kind = "validation_failure"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["field"] = self.field
        return data
