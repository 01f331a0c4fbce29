"""
Error taxonomy for qtiedit.

Every failure that leaves the library is a QtiError subclass carrying the
context (path, pattern, element name) a host needs to build a message.
"""
from __future__ import annotations

from typing import List, Optional


class QtiError(Exception):
    pass


class StructureError(QtiError):
    """Root element missing or not <questestinterop>."""

    def __init__(self, message: str = "Root element must be <questestinterop>"):
        super().__init__(message)
        self.message = message


class MissingElement(QtiError):
    def __init__(self, name: str):
        super().__init__(f"Missing required QTI element: {name}")
        self.name = name


class XmlParseError(QtiError):
    def __init__(self, message: str):
        super().__init__(f"XML parse error: {message}")
        self.message = message


class WriteError(QtiError):
    def __init__(self, path, reason: Optional[str] = None):
        msg = f"Cannot write file: {path}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
        self.path = path
        self.reason = reason


class InvalidPattern(QtiError):
    def __init__(self, pattern: str, reason: Optional[str] = None):
        msg = f"Invalid regex pattern: {pattern}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
        self.pattern = pattern
        self.reason = reason


class PackageError(QtiError):
    """Archive extraction/creation failed, or the package layout is unusable."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StaleMatch(QtiError):
    def __init__(self, matched_text: str):
        super().__init__(f"Field no longer contains the match {matched_text!r} at its recorded range")
        self.matched_text = matched_text


class ConfigError(QtiError):
    def __init__(self, path, problems: List[str]):
        msg = f"Invalid settings in {path}"
        if problems:
            msg += ":\n" + "\n".join(f"  - {p}" for p in problems)
        super().__init__(msg)
        self.path = path
        self.problems = problems


class SnapshotError(QtiError):
    def __init__(self, path, problems: List[str]):
        msg = f"Invalid document snapshot {path}"
        if problems:
            msg += ":\n" + "\n".join(f"  - {p}" for p in problems)
        super().__init__(msg)
        self.path = path
        self.problems = problems
