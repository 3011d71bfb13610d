"""
Domain errors raised by the engines and mapped to JSON responses in main.py.
"""


class LinkUpError(Exception):
    status_code = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class NotFound(LinkUpError):
    status_code = 404


class Forbidden(LinkUpError):
    status_code = 403


class InvalidTransition(LinkUpError):
    status_code = 409


class AlreadyRated(LinkUpError):
    status_code = 409

    def __init__(self, detail: str = "You have already rated this user for this event") -> None:
        super().__init__(detail)


class ValidationFailed(LinkUpError):
    status_code = 422
