"""
Exceptions raised by the Workfront automation layer.
"""
from typing import List, Optional


class WorkfrontError(Exception):
    """Base error for Workfront automation failures."""
    pass


class SessionNotFoundError(WorkfrontError):
    """The saved browser storage state is missing (no login has been done)."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Session state not found at {path}. Log in first.")


class SessionExpiredError(WorkfrontError):
    """The browser was redirected to a login page."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Session expired or not authenticated (landed on {url})")


class ElementNotFoundError(WorkfrontError):
    """None of the selector strategies matched a visible element."""

    def __init__(self, description: str, selectors: Optional[List[str]] = None, attempts: int = 1):
        self.description = description
        self.selectors = selectors or []
        self.attempts = attempts
        message = f"{description} not found"
        if attempts > 1:
            message += f" after {attempts} attempts"
        super().__init__(message)


class FolderNotFoundError(ElementNotFoundError):
    def __init__(self, folder: str, selectors: Optional[List[str]] = None, attempts: int = 1):
        self.folder = folder
        super().__init__(f'Folder "{folder}"', selectors, attempts)


class DocumentNotFoundError(ElementNotFoundError):
    def __init__(self, file_name: str, attempts: int = 1):
        self.file_name = file_name
        super().__init__(f'Document "{file_name}"', [".doc-detail-view"], attempts)


class FrameNotFoundError(WorkfrontError):
    """The Workfront iframe never showed up inside the host page."""
    pass
