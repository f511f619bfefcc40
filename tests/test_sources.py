import asyncio
import tempfile
import unittest
from pathlib import Path

import httpx

from conceptgraph.errors import FetchError, SourceTooLargeError
from conceptgraph.ingest.sources import extract_plain_text, fetch_url, html_to_text, is_url, read_file

PAGE = """<!DOCTYPE html>
<html><head><style>body { color: red; }</style><script>track()</script></head>
<body><nav>Home | About</nav><h1>Graph   databases</h1><p>Nodes and edges.</p><footer>(c) 2024</footer></body></html>
"""


def _transport(status=200, body=PAGE, content_type="text/html; charset=utf-8"):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, headers={"content-type": content_type}, text=body)

    return httpx.MockTransport(handler)


class TestHtml(unittest.TestCase):
    def test_html_to_text_drops_chrome(self):
        self.assertEqual(html_to_text(PAGE), "Graph databases Nodes and edges.")

    def test_is_url(self):
        self.assertTrue(is_url("https://example.com/a"))
        self.assertFalse(is_url("notes/https.txt"))


class TestFetchUrl(unittest.IsolatedAsyncioTestCase):
    async def test_fetch_html(self):
        text = await fetch_url("https://example.com/", max_bytes=10_000, transport=_transport())
        self.assertEqual(text, "Graph databases Nodes and edges.")

    async def test_fetch_plain_text(self):
        t = _transport(body="  just text \n", content_type="text/plain")
        self.assertEqual(await fetch_url("https://example.com/a.txt", max_bytes=100, transport=t), "just text")

    async def test_fetch_too_large(self):
        with self.assertRaises(SourceTooLargeError) as ctx:
            await fetch_url("https://example.com/", max_bytes=50, transport=_transport())
        self.assertEqual(ctx.exception.limit, 50)

    async def test_fetch_http_error(self):
        with self.assertRaises(FetchError):
            await fetch_url("https://example.com/missing", max_bytes=10_000, transport=_transport(status=404))

    async def test_fetch_empty_page(self):
        t = _transport(body="<html><body><script>x()</script></body></html>")
        with self.assertRaises(FetchError):
            await fetch_url("https://example.com/", max_bytes=10_000, transport=t)

    async def test_connection_error_is_fetch_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with self.assertRaises(FetchError):
            await fetch_url("https://example.com/", max_bytes=10_000, transport=httpx.MockTransport(handler))

    async def test_slow_server_times_out(self):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, text="late")

        with self.assertRaises(FetchError) as ctx:
            await fetch_url(
                "https://example.com/", max_bytes=10_000, timeout_s=0.05, transport=httpx.MockTransport(handler)
            )
        self.assertIn("Timed out", str(ctx.exception))

    async def test_malformed_content_length_is_fetch_error(self):
        def handler(request):
            return httpx.Response(200, headers={"content-length": "abc", "content-type": "text/plain"}, content=b"hello")

        with self.assertRaises(FetchError):
            await fetch_url("https://example.com/", max_bytes=10_000, transport=httpx.MockTransport(handler))

    async def test_unknown_charset_is_fetch_error(self):
        t = _transport(body="hello", content_type="text/plain; charset=bogus-xyz")
        with self.assertRaises(FetchError) as ctx:
            await fetch_url("https://example.com/", max_bytes=10_000, transport=t)
        self.assertIn("bogus-xyz", str(ctx.exception))


class TestReadFile(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    async def asyncTearDown(self):
        self._tmp.cleanup()

    async def test_markdown_is_read_verbatim(self):
        p = self.root / "notes.md"
        p.write_text("# Title\n\nSome notes.", encoding="utf-8")
        self.assertEqual(await read_file(p, max_bytes=1000), "# Title\n\nSome notes.")

    async def test_html_file_is_stripped(self):
        p = self.root / "page.html"
        p.write_text(PAGE, encoding="utf-8")
        self.assertEqual(await extract_plain_text(str(p), max_bytes=10_000), "Graph databases Nodes and edges.")

    async def test_file_too_large(self):
        p = self.root / "big.txt"
        p.write_text("x" * 200, encoding="utf-8")
        with self.assertRaises(SourceTooLargeError):
            await read_file(p, max_bytes=100)

    async def test_missing_file(self):
        with self.assertRaises(FetchError):
            await read_file(self.root / "nope.txt", max_bytes=100)


if __name__ == "__main__":
    unittest.main()
