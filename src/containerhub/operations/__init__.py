"""
Operations package - Application service layer between CLI and store.

This package provides the Operations facade that orchestrates CLI commands,
centralizes error mapping, and handles output formatting while keeping
CLI commands thin and testable.
"""
from .facade import Operations, OpsConfig, parse_repository
from .mappers import exit_code_for, run_and_exit

__all__ = ["Operations", "OpsConfig", "parse_repository", "exit_code_for", "run_and_exit"]
