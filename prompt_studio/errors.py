"""Typed failures raised at service boundaries.

Handlers catch these and turn them into ``{'error': message}`` payloads, so a
failure always ends as an inline message rather than a crashed request.
"""


class PromptStudioError(Exception):
    """Base class for errors whose message is safe to show to the user."""

    status_code = 400

    def __init__(self, message=''):
        super().__init__(message)
        self.message = message


class AuthError(PromptStudioError):
    status_code = 401


class InvalidCredentialsError(AuthError):
    def __init__(self, message='Invalid email or password.'):
        super().__init__(message)


class DuplicateAccountError(AuthError):
    status_code = 409

    def __init__(self, message='An account with this email already exists.'):
        super().__init__(message)


class UserNotFoundError(PromptStudioError):
    status_code = 404

    def __init__(self, message='User not found.'):
        super().__init__(message)


class PaymentBackendError(PromptStudioError):
    status_code = 502


class GenerationError(PromptStudioError):
    status_code = 502


class ConfigurationError(PromptStudioError):
    status_code = 503
