from __future__ import annotations

from webhook_service.logging_config import single_line_processor
from webhook_service.middleware.trace import get_safe_headers


def test_single_line_processor_escapes_control_characters():
    event = {
        "event": "webhook delivery failed",
        "error": "HTTP 502: <html>\n<body>bad gateway</body>\r\n</html>",
        "lines": ["a\nb", 3],
        "status_code": 502,
    }

    result = single_line_processor(None, "warning", event)

    assert result["error"] == "HTTP 502: <html>\\n<body>bad gateway</body>\\r\\n</html>"
    assert result["lines"] == ["a\\nb", 3]
    assert result["status_code"] == 502


def test_safe_headers_drop_credentials_and_signatures():
    headers = {
        "Authorization": "Bearer x",
        "X-Webhook-Signature": "abc",
        "Content-Type": "application/json",
    }
    assert get_safe_headers(headers) == {"Content-Type": "application/json"}
