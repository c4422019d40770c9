import io
import re

import pytest

from conftest import FakeFetch, transport_error
from fetchcache.consumer import generate_run_id, load_manifest, parse_manifest_lines, run_consumer


def test_parse_manifest_lines_allows_comments_and_blank():
    lines = [
        "# comment",
        "",
        "https://example.com/a",
        "https://example.com/b",
        "   ",
    ]
    assert parse_manifest_lines(lines) == ["https://example.com/a", "https://example.com/b"]


def test_parse_manifest_lines_rejects_inline_metadata():
    lines = ["https://example.com/a # nope"]
    with pytest.raises(ValueError, match="single URI"):
        parse_manifest_lines(lines)


def test_load_manifest_from_stdin():
    stream = io.StringIO("https://example.com/a\n# skip\n")
    assert load_manifest("-", stdin=stream) == ["https://example.com/a"]


def test_load_manifest_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError, match="no such manifest"):
        load_manifest(str(tmp_path / "missing.txt"))


def test_generate_run_id_format():
    run_id = generate_run_id()
    assert re.match(r"^\d{8}T\d{6}Z_[0-9a-f]{6}$", run_id)


def test_run_consumer_counts_found_and_missing(settings):
    bad = "http://www.google.notATLD"
    fetch = FakeFetch({bad: transport_error(bad)})
    uris = ["http://example.com/a", "http://example.com/a", "http://example.com/b", bad]

    summary, exit_code = run_consumer(uris, settings=settings, fetch=fetch)

    assert summary["counts"] == {"total": 3, "found": 2, "not_found": 1}
    assert exit_code == 3
    assert sorted(fetch.calls) == sorted(["http://example.com/a", "http://example.com/b", bad])
    states = {item["uri"]: item["state"] for item in summary["items"]}
    assert states[bad] == "not_found"
    assert states["http://example.com/a"] == "found"


def test_run_consumer_soft_fail(settings):
    bad = "http://www.google.notATLD"
    summary, exit_code = run_consumer([bad], settings=settings, fetch=FakeFetch({bad: transport_error(bad)}), soft_fail=True)
    assert exit_code == 0
    assert summary["counts"]["not_found"] == 1
