"""promptlib - searchable personal prompt library."""

from .cli import app as cli_app
from .data_models import LibraryItem, SaveRequest, Step, Workflow
from .exceptions import LibraryError
from .library import Library
from .service import LibraryService
from .session_manager import SessionManager, WorkflowSession

__all__ = [
    "cli_app",
    "Library",
    "LibraryService",
    "LibraryItem",
    "SaveRequest",
    "Step",
    "Workflow",
    "SessionManager",
    "WorkflowSession",
    "LibraryError",
]
