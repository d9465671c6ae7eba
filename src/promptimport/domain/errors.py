# src/promptimport/domain/errors.py


class PromptImportError(Exception):
    """Base class for errors raised by the import pipeline."""


class JobNotFound(PromptImportError):
    def __init__(self, job_id: str):
        super().__init__(f"Import job {job_id} not found")
        self.job_id = job_id


class PermissionDenied(PromptImportError):
    def __init__(self, job_id: str, user_id: str):
        super().__init__(f"User {user_id} may not read import job {job_id}")
        self.job_id = job_id
        self.user_id = user_id


class InvalidTransition(PromptImportError):
    """Raised when a job is moved along an edge the state machine forbids."""

    def __init__(self, job_id: str, current: str, target: str):
        super().__init__(f"Import job {job_id}: illegal transition {current} -> {target}")
        self.job_id = job_id
        self.current = current
        self.target = target
