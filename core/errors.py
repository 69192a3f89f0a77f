# core/errors.py

from fastapi import HTTPException

from core.logging_config import logger


def extract_supabase_error(error: Exception) -> str:
    """
    Safely extract readable details from Supabase Python client errors.
    Handles:
      • PostgREST errors (APIError.message)
      • GoTrue (Auth) errors
      • Storage errors
      • Generic Python exceptions
    """

    # Case 1: errors carrying a .message attribute
    message = getattr(error, "message", None)
    if message:
        return str(message)

    # Case 2: errors with args (common)
    if getattr(error, "args", None):
        first = error.args[0]
        if isinstance(first, dict) and first.get("message"):
            return str(first["message"])
        return str(first)

    # Case 3: plain string fallback
    return str(error) or "Unknown Supabase error"


def supabase_error(error: Exception, message: str = "Supabase error"):
    """
    Convert a Supabase / database error into an HTTPException carrying the
    backend's message. Always raises.
    """
    detail = extract_supabase_error(error)
    logger.error(f"{message}: {detail}")

    raise HTTPException(
        status_code=500,
        detail=f"{message}: {detail}",
    )


def handle_supabase_error(
    error: Exception,
    operation: str = "Database operation",
    status_code: int = 500,
) -> HTTPException:
    """
    Handle Supabase errors with consistent formatting.
    Returns HTTPException (doesn't raise) so caller can customize or re-raise.

    Args:
        error: The exception that occurred
        operation: Description of what operation failed (e.g., "Failed to create booking")
        status_code: HTTP status code (default 500)
    """
    error_detail = extract_supabase_error(error)
    logger.error(f"{operation}: {error_detail}")

    error_lower = error_detail.lower()
    if "duplicate" in error_lower or "unique" in error_lower:
        return HTTPException(status_code=400, detail=f"{operation}: Record already exists")
    if "foreign key" in error_lower:
        return HTTPException(status_code=400, detail=f"{operation}: Invalid reference")
    if "not found" in error_lower or "does not exist" in error_lower:
        return HTTPException(status_code=404, detail=f"{operation}: Resource not found")
    return HTTPException(status_code=status_code, detail=f"{operation}: {error_detail}")
