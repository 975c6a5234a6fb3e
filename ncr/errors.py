from __future__ import annotations


class ReconcileError(Exception):
    """Base class for everything the reconciler raises on purpose."""


class InvalidDocument(ReconcileError):
    pass


class SourceUnavailable(ReconcileError):
    pass


class ContentUnavailable(ReconcileError):
    """Content of a single file could not be materialized."""

    def __init__(self, reference: str, reason: str):
        super().__init__(f"{reference}: {reason}")
        self.reference = reference
        self.reason = reason


class DesiredStateError(ReconcileError):
    """The assembled desired state is inconsistent; nothing may be applied."""


class AmbiguousFile(DesiredStateError):
    def __init__(self, path: str):
        super().__init__(f"file {path!r} is declared more than once")
        self.path = path


class AmbiguousUnit(DesiredStateError):
    def __init__(self, name: str):
        super().__init__(f"unit {name!r} has more than one base definition")
        self.name = name


class AmbiguousDropIn(DesiredStateError):
    def __init__(self, unit: str, name: str):
        super().__init__(f"drop-in {name!r} of unit {unit!r} is declared more than once")
        self.unit = unit
        self.name = name


class OrphanDropIn(DesiredStateError):
    def __init__(self, name: str):
        super().__init__(f"unit {name!r} only has drop-in fragments and no base definition")
        self.name = name


class ManagerUnreachable(ReconcileError):
    """The service manager cannot be talked to at all."""


class StepFailed(ReconcileError):
    """A single filesystem or service-manager operation failed."""

    def __init__(self, target: str, cause: str):
        super().__init__(f"{target}: {cause}")
        self.target = target
        self.cause = cause
