"""Log redaction and error-exposure rules for the DocQuiz API.

This module centralizes:
- Keys whose values must never reach the logs (credentials, raw documents)
- Which error response fields each environment is allowed to expose
"""

# Values under these keys are replaced with "[REDACTED]" by the structured
# logger. Matching is case-insensitive and by substring.
SENSITIVE_KEYS: set[str] = {
    # Credentials
    "password",
    "secret",
    "token",
    "authorization",
    "api_key",
    "x-api-key",
    "bearer",
    "cookie",
    # Uploaded document payloads (base64 PDF bytes can be several MiB)
    "data_url",
    "document_data",
    "file_data",
    "content_bytes",
}

# In production, error responses only carry these fields in addition to the
# human-readable `error` string.
PRODUCTION_ERROR_FIELDS: set[str] = {
    "correlation_id",
    "type",
}

DEVELOPMENT_ERROR_FIELDS: set[str] = PRODUCTION_ERROR_FIELDS | {
    "details",
    "traceback",
    "exception_type",
    "validation_errors",
}


def get_allowed_error_fields(environment: str) -> set[str]:
    """Get allowed error response fields based on environment."""
    if environment == "production":
        return PRODUCTION_ERROR_FIELDS.copy()
    return DEVELOPMENT_ERROR_FIELDS.copy()


def is_sensitive_key(key: str) -> bool:
    """Check if a key should be considered sensitive and redacted."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)
