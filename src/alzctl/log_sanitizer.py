"""Log sanitization module for preventing secret leakage.

Deployments handle three kinds of secrets: the VM admin password passed to
``az vm create``, Graph bearer tokens and service principal secrets. This
module redacts them from log lines, command lines and error messages.

Security Controls:
- Log sanitization - mask ALL secrets
- Error messages don't leak secrets
- Command lines are masked argument by argument, not by regex over a join
"""

import re
from re import Pattern
from typing import Any


class LogSanitizer:
    """Sanitize sensitive data from logs and error messages.

    All methods are class methods and can be called without instantiation.
    """

    REDACTED = "[REDACTED]"

    # Order matters: more specific patterns come first
    SECRET_PATTERNS: dict[str, Pattern] = {
        "client_secret_assignment": re.compile(
            r'(client[_-]?secret["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
        "secret_env": re.compile(
            r"((?:AZURE_CLIENT_SECRET|VM_ADMIN_PASSWORD)[\"']?\s*[:=]\s*[\"']?)([^\s\"'&,\)]+)",
            re.IGNORECASE,
        ),
        "password": re.compile(r'(password["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)', re.IGNORECASE),
        "password_flag": re.compile(r"(--(?:admin-)?password[\s=]+[\"']?)([^\s\"']+)", re.IGNORECASE),
        "authorization_bearer": re.compile(r"(Authorization:\s*Bearer\s+)([^\s]+)", re.IGNORECASE),
        "bearer": re.compile(r"(Bearer\s+)([A-Za-z0-9\-_\.=]{16,})"),
        "access_token": re.compile(
            r'(access[_-]?token["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
        "token_assignment": re.compile(
            r'([^a-zA-Z]token["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)', re.IGNORECASE
        ),
    }

    # az / powershell flags whose following argument is a secret
    SECRET_FLAGS: frozenset[str] = frozenset(
        {
            "--admin-password",
            "--password",
            "--client-secret",
            "--shared-key",
            "--secret",
        }
    )

    SENSITIVE_KEYS: frozenset[str] = frozenset(
        {
            "client_secret",
            "password",
            "access_token",
            "token",
            "secret",
            "credential",
            "authorization",
            "api_key",
        }
    )

    @classmethod
    def sanitize(cls, message: Any) -> str:
        """Sanitize message by redacting sensitive patterns.

        Examples:
            >>> LogSanitizer.sanitize("client_secret=abc123")
            'client_secret=[REDACTED]'
            >>> LogSanitizer.sanitize("az vm create --admin-password Hunter2Hunter2")
            'az vm create --admin-password [REDACTED]'
        """
        if not isinstance(message, str):
            message = str(message)

        result = message
        for pattern in cls.SECRET_PATTERNS.values():
            result = pattern.sub(r"\1" + cls.REDACTED, result)

        return result

    @classmethod
    def sanitize_command(cls, cmd: list[str]) -> str:
        """Render a command list for logging with secret arguments masked.

        Args:
            cmd: Command argument list

        Returns:
            Space-joined command with the value after any secret flag masked

        Example:
            >>> LogSanitizer.sanitize_command(["az", "vm", "create", "--admin-password", "x"])
            'az vm create --admin-password [REDACTED]'
        """
        rendered: list[str] = []
        mask_next = False
        for arg in cmd:
            if mask_next:
                rendered.append(cls.REDACTED)
                mask_next = False
                continue
            if arg in cls.SECRET_FLAGS:
                mask_next = True
            rendered.append(arg)
        return cls.sanitize(" ".join(rendered))

    @classmethod
    def create_safe_error_message(cls, error: Exception, context: str = "") -> str:
        """Create error message with secrets sanitized.

        Examples:
            >>> err = ValueError("Auth failed with client_secret=abc123")
            >>> LogSanitizer.create_safe_error_message(err, "Authentication")
            'Authentication: Auth failed with client_secret=[REDACTED]'
        """
        sanitized_msg = cls.sanitize(str(error))

        if context:
            return f"{context}: {sanitized_msg}"
        return sanitized_msg

    @classmethod
    def sanitize_dict(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Sanitize dictionary values recursively.

        Keys containing a sensitive word have their value replaced; string
        values elsewhere go through :meth:`sanitize`.
        """
        result: dict[str, Any] = {}
        for key, value in data.items():
            key_lower = key.lower()
            if any(word in key_lower for word in cls.SENSITIVE_KEYS):
                result[key] = cls.REDACTED
            elif isinstance(value, dict):
                result[key] = cls.sanitize_dict(value)
            elif isinstance(value, str):
                result[key] = cls.sanitize(value)
            elif isinstance(value, (list, tuple)):
                result[key] = type(value)(
                    cls.sanitize_dict(item)
                    if isinstance(item, dict)
                    else cls.sanitize(item)
                    if isinstance(item, str)
                    else item
                    for item in value
                )
            else:
                result[key] = value

        return result


__all__ = ["LogSanitizer"]
