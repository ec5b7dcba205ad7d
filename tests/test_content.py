import httpx

from linkshelf.services.content import extract_title, fetch_title


def test_extract_title_collapses_whitespace():
    html = "<html><head><title>\n  Hello\n   World </title></head><body></body></html>"

    assert extract_title(html) == "Hello World"


def test_extract_title_missing():
    assert extract_title("<html><body><p>No title</p></body></html>") is None


def test_extract_title_from_feed():
    xml = '<?xml version="1.0"?><rss><channel><title>Feed</title></channel></rss>'

    assert extract_title(xml) == "Feed"


def test_fetch_title_uses_page_title():
    transport = httpx.MockTransport(
        lambda request: httpx.Response(
            200,
            headers={"Content-Type": "text/html; charset=utf-8"},
            text="<html><head><title>Example Domain</title></head></html>",
        )
    )

    assert fetch_title("https://example.com", timeout=1, max_bytes=10_000, transport=transport) == "Example Domain"


def test_fetch_title_ignores_error_pages():
    transport = httpx.MockTransport(
        lambda request: httpx.Response(404, text="<title>Not Found</title>")
    )

    assert fetch_title("https://example.com", timeout=1, max_bytes=10_000, transport=transport) is None


def test_fetch_title_swallows_network_errors():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    assert fetch_title(
        "https://example.com", timeout=1, max_bytes=10_000, transport=httpx.MockTransport(handler)
    ) is None
