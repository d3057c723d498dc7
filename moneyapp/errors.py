class MoneyAppError(Exception):
    """Base error; ``status`` is the HTTP status the web layer answers with."""

    status = 500

    def __init__(self, message: str = "", status: int | None = None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status

    def to_dict(self) -> dict:
        return {"error": self.message or self.__class__.__name__}


class ConfigError(MoneyAppError):
    status = 500


class UpstreamError(MoneyAppError):
    status = 502


class ValidationError(MoneyAppError):
    status = 400


class AccountNotFoundError(MoneyAppError):
    status = 404


class ImportParseError(MoneyAppError):
    status = 400
