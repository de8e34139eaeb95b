"""Cross-cutting utilities for the render pipeline.

This package contains helper functions used across multiple modules.
Utilities should be pure functions without business logic.

Modules:
    cli_wrapper: Non-blocking execution of external commands.
    filesystem: Scratch-file naming and cleanup.
    logging: Structured JSON logging.
    result: Ok/Err results for pipeline stages.
"""

from render_pipeline.utils.result import Err, FailureKind, Ok, Result

__all__ = [
    "Err",
    "FailureKind",
    "Ok",
    "Result",
]
