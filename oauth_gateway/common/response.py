"""
Unified response bodies
"""

from typing import Any, Dict


def error_response(error: str = "Internal error", message: str = "") -> Dict[str, Any]:
    """Error body returned for every failure that crosses the service boundary."""
    return {
        "error": error,
        "message": message or error,
    }
