"""Error taxonomy shared by the service layer and the HTTP handlers in ``main``.

Services raise these; ``main`` turns them into JSON responses of the form
``{"detail": <message>, **extra}`` with the error's status code.
"""


class StoreError(Exception):
    status_code = 500

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra


class ValidationError(StoreError):
    status_code = 400


class NotFound(StoreError):
    status_code = 404


class Forbidden(StoreError):
    status_code = 403


class Unauthorized(StoreError):
    status_code = 401


class InvalidCredentials(Unauthorized):
    pass


class Conflict(StoreError):
    status_code = 409


class DuplicateEmail(Conflict):
    pass
