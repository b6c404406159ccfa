"""
Error registry for Staffel

Structured error types with stable codes. Structural errors are raised
synchronously by the call that caused them; executor failures are recorded
on the command's Outcome instead of being raised out of a run.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Stable error codes"""

    # Queue definition errors (1000-1999)
    UNKNOWN_DEPENDENCY = "SQ1001"
    DUPLICATE_COMMAND_ID = "SQ1002"
    QUEUE_DEFINITION_INVALID = "SQ1003"

    # Queue registry errors (2000-2999)
    DUPLICATE_QUEUE_ID = "SQ2001"
    QUEUE_NOT_FOUND = "SQ2002"

    # Lifecycle errors (3000-3999)
    ALREADY_EXECUTING = "SQ3001"
    INVALID_STATE_TRANSITION = "SQ3002"

    # Execution errors (4000-4999)
    EXECUTOR_FAILURE = "SQ4001"

    # Configuration errors (9000-9999)
    CONFIGURATION_INVALID = "SQ9001"


class StaffelError(Exception):
    """Base exception for all Staffel errors"""

    code: ErrorCode = ErrorCode.QUEUE_DEFINITION_INVALID

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


class UnknownDependency(StaffelError):
    """Raised when a command depends on an id that is not part of its queue"""

    code = ErrorCode.UNKNOWN_DEPENDENCY

    def __init__(self, command_id: str, dependency_id: str, known_ids: List[str]):
        self.command_id = command_id
        self.dependency_id = dependency_id
        super().__init__(
            f"Command '{command_id}' depends on unknown command '{dependency_id}'",
            {"command_id": command_id, "dependency_id": dependency_id, "known_ids": known_ids},
        )


class DuplicateCommandId(StaffelError):
    """Raised when two commands of one queue share an identity"""

    code = ErrorCode.DUPLICATE_COMMAND_ID

    def __init__(self, command_ids: List[str]):
        self.command_ids = command_ids
        super().__init__(
            f"Duplicate command ids found: {command_ids}",
            {"command_ids": command_ids},
        )


class QueueDefinitionError(StaffelError):
    """Raised when a queue definition file or dict is malformed"""

    code = ErrorCode.QUEUE_DEFINITION_INVALID


class DuplicateQueueId(StaffelError):
    code = ErrorCode.DUPLICATE_QUEUE_ID

    def __init__(self, queue_id: str):
        self.queue_id = queue_id
        super().__init__(f"Queue '{queue_id}' already exists", {"queue_id": queue_id})


class QueueNotFound(StaffelError):
    code = ErrorCode.QUEUE_NOT_FOUND

    def __init__(self, queue_id: str):
        self.queue_id = queue_id
        super().__init__(f"Queue '{queue_id}' not found", {"queue_id": queue_id})


class AlreadyExecuting(StaffelError):
    code = ErrorCode.ALREADY_EXECUTING

    def __init__(self, queue_id: str):
        self.queue_id = queue_id
        super().__init__(f"Queue '{queue_id}' is already executing", {"queue_id": queue_id})


class InvalidStateTransition(StaffelError):
    """Raised when a lifecycle operation is not valid from the current status"""

    code = ErrorCode.INVALID_STATE_TRANSITION

    def __init__(self, queue_id: str, operation: str, current_status: str):
        self.queue_id = queue_id
        self.operation = operation
        self.current_status = current_status
        super().__init__(
            f"Cannot {operation} queue '{queue_id}' while it is {current_status}",
            {"queue_id": queue_id, "operation": operation, "status": current_status},
        )


class ExecutorFailure(StaffelError):
    """Wraps an error surfaced by the external executor for one command"""

    code = ErrorCode.EXECUTOR_FAILURE

    def __init__(self, command_id: str, cause: BaseException):
        self.command_id = command_id
        self.cause = cause
        reason = str(cause) or type(cause).__name__
        super().__init__(
            f"Executor failed for command '{command_id}': {reason}",
            {"command_id": command_id, "cause": type(cause).__name__},
        )


class ConfigurationError(StaffelError):
    code = ErrorCode.CONFIGURATION_INVALID
