from typing import Optional


class SkillSwapError(Exception):
    """Base class for every error the connection services raise on purpose."""

    status_code = 400
    default_detail = "Request could not be processed."

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidRequestError(SkillSwapError):
    status_code = 400
    default_detail = "Invalid request."


class SelfConnectionError(SkillSwapError):
    status_code = 405
    default_detail = "Cannot send a connection request to yourself."


class DuplicateRequestError(SkillSwapError):
    status_code = 409
    default_detail = "A connection request already exists between these users."


class AlreadyConnectedError(SkillSwapError):
    status_code = 409
    default_detail = "Already connected with this user."


class NotAuthorizedError(SkillSwapError):
    status_code = 403
    default_detail = "You are not allowed to perform this action."


class NotFoundError(SkillSwapError):
    status_code = 404
    default_detail = "Not found."


class StoreUnavailableError(SkillSwapError):
    """
    Wraps any transport or database failure raised by the document store.

    `operation` names the store call that failed and `cause` keeps the
    original exception (also chained as `__cause__`) for logging.
    """

    status_code = 503
    default_detail = "Document store is unavailable."

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{self.default_detail} operation={operation}")
