import threading


class InvalidConfig(ValueError):
    """Declared configuration is rejected before any request is made."""

    def __init__(self, problems: list[tuple[str, str]], message: str | None = None):
        self.problems = problems
        if message is None:
            details = ". ".join(f"[{field}] {problem.rstrip('.')}" for field, problem in problems)
            if problems and problems[-1][1].endswith("."):
                details += "."
            message = f"invalid config supplied. {details}"
        super().__init__(message)


class MissingIdentifier(InvalidConfig):
    def __init__(self):
        super().__init__([], "at least one type of resource identifier must be set")


class ResolutionError(Exception):
    """A path or creator could not be resolved into something permissions can be applied to."""


class UnknownObjectType(ValueError):
    def __init__(self, object_type: str | None):
        self.object_type = object_type
        super().__init__(f"unknown object type {object_type}")


class OperationCancelled(Exception):
    pass


def raise_if_cancelled(cancelled: threading.Event | None, step: str) -> None:
    if cancelled is not None and cancelled.is_set():
        raise OperationCancelled(f"cancelled before {step}")
