"""
Unit tests for log sanitization.
"""

from azcollect.log_sanitizer import LogSanitizer


class TestSanitize:
    """Pattern-based redaction."""

    def test_sas_signature_redacted(self):
        message = "GET https://a.blob.core.windows.net/t.json?sv=2021&sig=abc%2Bdef failed"

        result = LogSanitizer.sanitize(message)

        assert "abc%2Bdef" not in result
        assert "sig=[REDACTED] failed" in result

    def test_account_key_redacted(self):
        message = "DefaultEndpointsProtocol=https;AccountName=x;AccountKey=c2VjcmV0==;"

        result = LogSanitizer.sanitize(message)

        assert result == "DefaultEndpointsProtocol=https;AccountName=x;AccountKey=[REDACTED];"

    def test_bearer_and_client_secret_redacted(self):
        message = 'Authorization: Bearer eyJ0eXAi client_secret="hunter2"'

        result = LogSanitizer.sanitize(message)

        assert "eyJ0eXAi" not in result
        assert "hunter2" not in result

    def test_non_string_input(self):
        assert LogSanitizer.sanitize(404) == "404"


class TestSanitizeUri:
    """SAS-aware URI redaction."""

    def test_secret_params_redacted_others_kept(self):
        uri = "https://h.blob.core.windows.net/c/t.json?sv=2020-08-04&sp=r&se=2030-01-01&sig=abc"

        result = LogSanitizer.sanitize_uri(uri)

        assert result.startswith("https://h.blob.core.windows.net/c/t.json?")
        assert "sv=2020-08-04" in result
        assert "sp=r" in result
        assert "abc" not in result
        assert "2030-01-01" not in result

    def test_uri_without_query_unchanged(self):
        uri = "https://raw.githubusercontent.com/org/repo/main/azuredeploy.json"

        assert LogSanitizer.sanitize_uri(uri) == uri


class TestSafeErrorMessage:
    """Error message construction."""

    def test_includes_context_and_type(self):
        error = RuntimeError("AccountKey=abc123;")

        message = LogSanitizer.create_safe_error_message(error, "Listing keys")

        assert message == "Listing keys: RuntimeError: AccountKey=[REDACTED];"

    def test_without_context(self):
        assert LogSanitizer.create_safe_error_message(ValueError("bad")) == "ValueError: bad"
