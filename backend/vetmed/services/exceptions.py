"""Domain errors raised by the household services; main.py maps them to HTTP responses."""


class DomainError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidOperation(DomainError):
    status_code = 400


class AccessDenied(DomainError):
    status_code = 403


class ResourceNotFound(DomainError):
    status_code = 404


class Conflict(DomainError):
    status_code = 409
