from __future__ import annotations


class GradebookError(Exception):
    pass


class InvalidGradeError(GradebookError, ValueError):
    pass


class SubjectNotFoundError(GradebookError, LookupError):
    pass


class StorageError(GradebookError):
    pass
