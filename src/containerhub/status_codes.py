"""
Human-readable explanations for registry HTTP statuses.

The explanation document maps status code strings to sentences. A packaged
default ships with the project; a different document can be configured.
"""
from __future__ import annotations

import json
import logging
from importlib import resources
from pathlib import Path
from typing import Dict, Optional

from .models import SourceStatus

__all__ = ["load_status_codes", "describe_status"]

logger = logging.getLogger(__name__)


def load_status_codes(path: Optional[Path] = None) -> Dict[str, str]:
    """
    Load the status explanation document.

    Args:
        path: Override document; the packaged default is used when None

    Raises:
        ValueError: If the document is not a JSON object of strings
    """
    if path is None:
        text = resources.files("containerhub").joinpath("resources/status_codes.json").read_text()
        source = "packaged status codes"
    else:
        text = Path(path).read_text()
        source = str(path)

    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid status code document {source}: {e}") from e
    if not isinstance(document, dict):
        raise ValueError(f"Status code document {source} must be a JSON object")

    logger.debug(f"Loaded {len(document)} status explanations from {source}")
    return {str(code): str(text) for code, text in document.items()}


def describe_status(status: SourceStatus, codes: Dict[str, str]) -> str:
    """Explain a source status, falling back to the bare code."""
    code = str(status.code)
    if code in codes:
        return codes[code]
    if status.code >= 500:
        return f"Server error (HTTP {code})."
    if status.code >= 400:
        return f"Client error (HTTP {code})."
    return f"HTTP {code}"
