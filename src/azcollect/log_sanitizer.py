"""Log sanitization for collector messages.

Template links frequently carry SAS tokens in their query string, and
storage account keys pass through the account-key resolver. Anything that
ends up in a log line or an error message goes through LogSanitizer first.

Design Philosophy:
- Security first: err on side of over-redaction
- Pattern-based: not brittle keyword matching
"""

import re
from re import Pattern
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


class LogSanitizer:
    """Sanitize sensitive data from logs and error messages.

    All methods are class methods and can be called without instantiation.
    """

    REDACTED = "[REDACTED]"

    # SAS query parameters that authorize access on their own
    SAS_SECRET_PARAMS = frozenset({"sig", "se", "skoid", "sktid", "skt", "ske", "sks", "skv"})

    # Order matters: more specific patterns should come first
    SECRET_PATTERNS: dict[str, Pattern] = {
        "sas_signature": re.compile(r"([?&]sig=)([^&\s\"']+)", re.IGNORECASE),
        "account_key": re.compile(r"(AccountKey=)([^;\s\"']+)", re.IGNORECASE),
        "authorization_bearer": re.compile(r"(Authorization:\s*Bearer\s+)([^\s]+)", re.IGNORECASE),
        "access_token": re.compile(
            r'(access[_-]?token["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
        "client_secret": re.compile(
            r'(client[_-]?secret["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
    }

    @classmethod
    def sanitize(cls, message: str) -> str:
        """Sanitize message by redacting sensitive patterns.

        Args:
            message: The message to sanitize

        Returns:
            Sanitized message with secrets replaced by [REDACTED]

        Examples:
            >>> LogSanitizer.sanitize("GET https://a.blob.core.windows.net/t.json?sv=1&sig=abc")
            'GET https://a.blob.core.windows.net/t.json?sv=1&sig=[REDACTED]'
        """
        if not isinstance(message, str):
            message = str(message)

        result = message
        for pattern in cls.SECRET_PATTERNS.values():
            result = pattern.sub(r"\1" + cls.REDACTED, result)
        return result

    @classmethod
    def sanitize_uri(cls, uri: str) -> str:
        """Redact SAS credentials from a URI, keeping the rest readable.

        Examples:
            >>> LogSanitizer.sanitize_uri("https://h/t.json?sv=2020&sig=abc&se=2030")
            'https://h/t.json?sv=2020&sig=%5BREDACTED%5D&se=%5BREDACTED%5D'
        """
        try:
            parts = urlsplit(uri)
        except ValueError:
            return cls.sanitize(uri)
        if not parts.query:
            return uri
        query = [
            (name, cls.REDACTED if name.lower() in cls.SAS_SECRET_PARAMS else value)
            for name, value in parse_qsl(parts.query, keep_blank_values=True)
        ]
        return urlunsplit(parts._replace(query=urlencode(query)))

    @classmethod
    def create_safe_error_message(cls, error: BaseException, context: str = "") -> str:
        """Create error message with secrets sanitized.

        Examples:
            >>> err = ValueError("DefaultEndpointsProtocol=https;AccountKey=abc==;")
            >>> LogSanitizer.create_safe_error_message(err, "Key listing")
            'Key listing: ValueError: DefaultEndpointsProtocol=https;AccountKey=[REDACTED];'
        """
        sanitized_msg = cls.sanitize(f"{type(error).__name__}: {error}")
        if context:
            return f"{context}: {sanitized_msg}"
        return sanitized_msg


__all__ = ["LogSanitizer"]
