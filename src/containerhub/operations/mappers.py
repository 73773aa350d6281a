"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and CLI command wrappers
to ensure consistent error handling across all Typer commands.
"""
from __future__ import annotations

import typer
from typing import Callable, TypeVar

T = TypeVar('T')

EXIT_CODES = {
    "NotFound": 1,
    "ValueError": 2,
    "NetworkUnavailable": 3,
    "AuthError": 4,
    "ClientError": 4,
    "ServerError": 5,
    "NoSourcesConfigured": 6,
    "NoReachableRegistries": 7,
}

FALLBACK_EXIT_CODE = 3


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    Returns exit codes:
    - 0: Success
    - 1: Repository, tag or manifest not found (NotFound)
    - 2: Invalid input or configuration (ValueError)
    - 3: Registry unreachable (NetworkUnavailable) or unknown error
    - 4: Request rejected (AuthError, ClientError)
    - 5: Registry failure (ServerError)
    - 6: No sources configured (NoSourcesConfigured)
    - 7: No configured registry reachable (NoReachableRegistries)

    The exception's class hierarchy is searched, so subclasses inherit their
    parent's code. Operation errors map through the error they wrap.

    Args:
        exc: Exception to map

    Returns:
        Exit code (1-7, with 3 as fallback for unknown exceptions)
    """
    cause = getattr(exc, "cause", None)
    if isinstance(cause, BaseException):
        return exit_code_for(cause)
    for cls in type(exc).__mro__:
        if cls.__name__ in EXIT_CODES:
            return EXIT_CODES[cls.__name__]
    return FALLBACK_EXIT_CODE


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exceptions to appropriate
    exit codes using typer.Exit, after printing the error to stderr.

    Args:
        func: Function to execute

    Returns:
        Function result if successful

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except (typer.Exit, typer.Abort):
        raise
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=exit_code_for(e)) from e
