class PracticeError(Exception):
    """Base for errors the practice core reports to its caller."""

    status_code = 400
    reason_code = "practice_error"
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None, reason_code: str | None = None):
        self.message = str(message or self.default_message)
        if reason_code:
            self.reason_code = reason_code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "success": False,
            "reason": self.reason_code,
            "message": self.message,
        }


class NotFound(PracticeError):
    status_code = 404
    reason_code = "not_found"
    default_message = "Resource not found"


class InvalidState(PracticeError):
    status_code = 409
    reason_code = "invalid_state"
    default_message = "Operation not allowed in the current session state"


class ValidationFailure(PracticeError):
    status_code = 400
    reason_code = "validation_failure"
    default_message = "Invalid request"


class SessionNotFound(NotFound):
    reason_code = "session_not_found"
    default_message = "Session not found"


class QuestionNotFound(NotFound):
    reason_code = "question_not_found"
    default_message = "Question not found in this session"


class NoQuestionsAvailable(NotFound):
    reason_code = "no_questions_available"
    default_message = "No questions available for the selected criteria"


class UserNotFound(NotFound):
    reason_code = "user_not_found"
    default_message = "User not found"


class SessionNotActive(InvalidState):
    reason_code = "session_not_active"
    default_message = "Session is not active"


class SessionAlreadyTerminal(InvalidState):
    reason_code = "session_already_terminal"
    default_message = "Session has already ended"


class SessionNotTerminal(InvalidState):
    reason_code = "session_not_terminal"
    default_message = "Feedback is available once the session has ended"


class InvalidPeriod(ValidationFailure):
    reason_code = "invalid_period"
    default_message = "Period must be one of 7d, 30d, 90d"
