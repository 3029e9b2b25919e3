# src/api/errors.py
#
# Error taxonomy shared by the reschedule engine, the cohort initiator and
# the meeting client. The web layer renders every ScheduleError as
# {"error": message} with the class's status code.


class ScheduleError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, details: str = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_body(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ScheduleError):
    """Bad or missing input."""

    status_code = 400


class NoOpError(ValidationError):
    """The new date equals the session's current date."""


class InvalidDateError(ValidationError):
    """The new date is today or in the past, or cannot be parsed."""


class NotFoundError(ScheduleError):
    status_code = 404


class UnexpectedError(ScheduleError):
    """Fetch/connectivity failures and anything else we cannot recover from."""

    status_code = 500


class ScheduleInvariantError(RuntimeError):
    """A computation reached a state that valid inputs can never produce."""
