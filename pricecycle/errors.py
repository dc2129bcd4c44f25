"""Failure types shared by the step engine and the batch runner."""
from typing import Optional


class StepFailed(Exception):
    """A logical step exhausted its retry budget (or had no usable candidate)."""

    def __init__(self, step_name: str, retries_used: int, cause: BaseException):
        super().__init__(f"{step_name} failed after retries: {cause}")
        self.step_name = step_name
        self.retries_used = retries_used
        self.cause = cause

    @property
    def cause_message(self) -> str:
        return str(self.cause)


class OperationCanceled(Exception):
    """Stop was requested for the current operation. Never retried."""

    def __init__(self, message: str = "stop requested", step: Optional[str] = None):
        super().__init__(message)
        self.step = step
        self.evidence_path = ""


class OperationBusy(RuntimeError):
    """Another fetch/run operation is already in flight."""


class LoginRequired(RuntimeError):
    """No saved login and the browser is headless, so nobody can log in manually."""
