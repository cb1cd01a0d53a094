"""
Command-line tests for HARFLECT dump and match modes.
"""

import base64
import io
import json
import os
import sys
import tempfile
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import harflect


ARCHIVE = {
    "log": {
        "version": "1.2",
        "entries": [
            {
                "request": {
                    "method": "GET",
                    "url": "https://example.com/login?redirect=http%3A%2F%2Fevil.com",
                    "queryString": [{"name": "redirect", "value": "http://evil.com"}],
                },
                "response": {
                    "content": {
                        "text": base64.b64encode(b'<a href="http://evil.com">next</a>').decode("ascii"),
                        "encoding": "base64",
                    }
                },
            },
            {
                "request": {
                    "method": "POST",
                    "url": "https://other.com/submit",
                    "postData": {
                        "params": [{"name": "data", "value": base64.b64encode(b'{"token":"abc123"}').decode("ascii")}],
                        "text": "",
                    },
                },
                "response": {"content": {"text": "<input value=abc123>"}},
            },
        ],
    }
}


class CLITestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        env = patch.dict(os.environ, {k: v for k, v in os.environ.items() if not k.startswith("HARFLECT_")}, clear=True)
        env.start()
        self.addCleanup(env.stop)

    def write(self, name, content):
        path = os.path.join(self.tmp.name, name)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return path

    def run_cli(self, argv, stdin=""):
        out = io.StringIO()
        with patch.object(sys, "stdin", io.StringIO(stdin)), redirect_stdout(out):
            code = harflect.main(argv)
        return code, out.getvalue()


class TestDumpMode(CLITestCase):

    def test_dump_file(self):
        path = self.write("capture.har", json.dumps(ARCHIVE))
        code, out = self.run_cli([path])

        self.assertEqual(code, 0)
        self.assertIn('key: query["redirect"]\nvalue: http://evil.com\nrequest: GET https://example.com/login\n\n', out)
        self.assertIn('key: form["data"]["token"]\nvalue: abc123\nrequest: POST https://other.com/submit\n\n', out)

    def test_dump_stdin(self):
        code, out = self.run_cli([], stdin=json.dumps(ARCHIVE))
        self.assertEqual(code, 0)
        self.assertIn('key: query["redirect"]', out)

    def test_bad_source_does_not_abort_batch(self):
        bad = self.write("bad.har", "{not json")
        missing = os.path.join(self.tmp.name, "missing.har")
        good = self.write("good.har", json.dumps(ARCHIVE))

        code, out = self.run_cli([bad, missing, good])

        self.assertEqual(code, 1)
        self.assertIn("value: http://evil.com", out)

    def test_deep_archive_does_not_abort_batch(self):
        deep = self.write("deep.har", '{"log": {"entries": ' + "[" * 100000 + "]" * 100000 + "}}")
        good = self.write("good.har", json.dumps(ARCHIVE))

        code, out = self.run_cli([deep, good])

        self.assertEqual(code, 1)
        self.assertIn("value: http://evil.com", out)

    def test_lone_surrogate_written_to_utf8_stdout(self):
        archive = {"log": {"entries": [{"request": {
            "method": "GET", "url": "https://example.com/",
            "queryString": [{"name": "q", "value": "\ud800"}],
        }}]}}
        surrogate = self.write("sur.har", json.dumps(archive))
        good = self.write("good.har", json.dumps(ARCHIVE))

        buffer = io.BytesIO()
        stdout = io.TextIOWrapper(buffer, encoding="utf-8")
        with redirect_stdout(stdout):
            code = harflect.main([surrogate, good])
        stdout.flush()
        out = buffer.getvalue().decode("utf-8")

        self.assertEqual(code, 0)
        self.assertIn("value: \\ud800\n", out)
        self.assertIn("value: http://evil.com", out)

    def test_invalid_url_fails_source(self):
        archive = {"log": {"entries": [{"request": {"method": "GET", "url": "http://[::1/x"}}]}}
        path = self.write("badurl.har", json.dumps(archive))
        code, _ = self.run_cli([path])
        self.assertEqual(code, 1)

    def test_dump_json_output(self):
        path = self.write("capture.har", json.dumps(ARCHIVE))
        code, out = self.run_cli(["--output", "json", path])

        self.assertEqual(code, 0)
        items = json.loads(out)
        self.assertIn(
            {"key": ["query", "redirect"], "value": "http://evil.com", "request": "GET https://example.com/login"},
            items,
        )


class TestMatchMode(CLITestCase):

    def test_match_reports_reflections(self):
        code, out = self.run_cli(["--match"], stdin=json.dumps(ARCHIVE))

        self.assertEqual(code, 0)
        results = json.loads(out)
        self.assertEqual(results, [
            {
                "method": "GET",
                "url": "https://example.com/login",
                "xss": [{"key": ["query", "redirect"], "value": "http://evil.com"}],
            },
            {
                "method": "POST",
                "url": "https://other.com/submit",
                "xss": [{"key": ["form", "data", "token"], "value": "abc123"}],
            },
        ])

    def test_match_host_filter(self):
        code, out = self.run_cli(["--match", "--hosts", "example.com"], stdin=json.dumps(ARCHIVE))

        self.assertEqual(code, 0)
        self.assertEqual([r["url"] for r in json.loads(out)], ["https://example.com/login"])

    def test_match_no_reflections(self):
        archive = {"log": {"entries": [{
            "request": {"method": "GET", "url": "https://example.com/?q=x",
                        "queryString": [{"name": "q", "value": "unseen"}]},
            "response": {"content": {"text": "nothing here"}},
        }]}}
        code, out = self.run_cli(["--match"], stdin=json.dumps(archive))
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out), [])

        code, out = self.run_cli(["--match", "--include-empty"], stdin=json.dumps(archive))
        self.assertEqual(json.loads(out), [{"method": "GET", "url": "https://example.com/", "xss": []}])

    def test_match_malformed_archive(self):
        code, out = self.run_cli(["--match"], stdin='{"log": []}')
        self.assertEqual(code, 1)
        self.assertEqual(out, "")

    def test_match_rejects_files(self):
        with self.assertRaises(SystemExit) as ctx:
            self.run_cli(["--match", "capture.har"])
        self.assertEqual(ctx.exception.code, 2)

    def test_bad_config_file(self):
        path = self.write("config.json", "[1, 2]")
        code, _ = self.run_cli(["--config", path, "--match"], stdin=json.dumps(ARCHIVE))
        self.assertEqual(code, 1)


if __name__ == "__main__":
    unittest.main()
