from starlette.requests import Request

from atelier.utils.rate_limit import get_client_identifier, is_authenticated_request


def _request(headers=(), client=("10.0.0.9", 1234)):
    return Request({
        "type": "http",
        "method": "PUT",
        "path": "/",
        "headers": [(name.lower().encode(), value.encode()) for name, value in headers],
        "client": client,
    })


def test_client_identifier_prefers_forwarded_ip():
    assert get_client_identifier(_request()) == "10.0.0.9"
    assert get_client_identifier(_request([("X-Forwarded-For", "1.2.3.4, 10.0.0.1")])) == "1.2.3.4"


def test_credentialed_requests_are_recognised():
    assert not is_authenticated_request(_request())
    assert is_authenticated_request(_request([("Authorization", "Bearer token")]))
    assert is_authenticated_request(_request([("Cookie", "access_token=abc")]))
    assert not is_authenticated_request(_request([("Cookie", "theme=dark")]))
