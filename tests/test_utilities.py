"""Tests for payload normalization and directory helpers."""

import pytest

from http_recorder.core.utilities import (
    clean_directory,
    ensure_directory_exists,
    format_string,
    is_json,
    is_xml,
    try_format_json,
    try_format_xml,
)


class TestFormatString:
    """Tests for format_string dispatch."""

    def test_json_object_indented(self):
        """Compact JSON becomes two-space indented JSON."""
        assert format_string('{"a":1}') == '{\n  "a": 1\n}'

    def test_plain_text_unchanged(self):
        """Text that is neither JSON nor XML passes through."""
        assert format_string("not json or xml") == "not json or xml"

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_unchanged(self, value):
        """None and empty strings pass through."""
        assert format_string(value) == value

    def test_malformed_json_unchanged(self):
        """Bracketed but invalid JSON is returned verbatim."""
        assert format_string("{not: json}") == "{not: json}"

    def test_malformed_xml_unchanged(self):
        """Unbalanced markup is returned verbatim."""
        assert format_string("<a><b></a>") == "<a><b></a>"

    def test_xml_indented(self):
        """XML is re-serialized with indentation."""
        result = format_string("<Jobs><Job><Id>1</Id></Job></Jobs>")
        assert result == "<Jobs>\n  <Job>\n    <Id>1</Id>\n  </Job>\n</Jobs>"

    def test_json_array(self):
        """JSON arrays are formatted too."""
        assert format_string("[1,2]") == "[\n  1,\n  2\n]"

    @pytest.mark.parametrize(
        "payload",
        [
            '{"a":1,"b":{"c":[1,2,{"d":null}]}}',
            '[{"name":"vm1"},{"name":"vm2"}]',
            "<Root><Child attr='x'>text</Child><Empty/></Root>",
            '<?xml version="1.0" encoding="utf-8"?><Root><A>1</A></Root>',
            '{"unicode":"caf\\u00e9"}',
        ],
    )
    def test_idempotent(self, payload):
        """Normalizing twice equals normalizing once."""
        once = format_string(payload)
        assert format_string(once) == once

    def test_deeply_nested_json_unchanged(self):
        """JSON nested too deeply to parse comes back verbatim instead of raising."""
        payload = "[" * 100000 + "]" * 100000
        assert format_string(payload) == payload

    def test_default_namespace_kept(self):
        """Default and prefixed namespaces keep their declarations."""
        payload = (
            '<Subscriptions xmlns="http://schemas.microsoft.com/windowsazure" '
            'xmlns:i="http://www.w3.org/2001/XMLSchema-instance">'
            '<Subscription><Id>1</Id><Name i:nil="true"/></Subscription></Subscriptions>'
        )
        result = format_string(payload)
        assert result.startswith('<Subscriptions xmlns="http://schemas.microsoft.com/windowsazure"')
        assert "ns0" not in result
        assert '<Name i:nil="true" />' in result
        assert format_string(result) == result

    def test_entity_expansion_rejected(self):
        """Entity declarations are refused and the text is returned as-is."""
        payload = '<!DOCTYPE x [<!ENTITY a "aaaa">]><x>&a;</x>'
        assert format_string(payload) == payload


class TestDetection:
    """Tests for is_json and is_xml."""

    def test_is_json_brackets(self):
        """is_json checks the outer brackets only."""
        assert is_json('  {"a": 1}  ')
        assert is_json("[]")
        assert not is_json("plain")

    def test_is_xml(self):
        """is_xml requires parseable markup."""
        assert is_xml("<a/>")
        assert not is_xml("<a>")
        assert not is_xml('{"a": 1}')

    def test_try_format_helpers_fail_open(self):
        """Both formatters return their input on failure."""
        assert try_format_json("[1,") == "[1,"
        assert try_format_xml("<<") == "<<"


class TestDirectoryHelpers:
    """Tests for ensure_directory_exists and clean_directory."""

    def test_ensure_directory_exists(self, tmp_path):
        """Nested directories are created."""
        target = tmp_path / "a" / "b"
        assert ensure_directory_exists(target) == target
        assert target.is_dir()

    def test_clean_directory(self, tmp_path):
        """Files and subdirectories are removed; the directory stays."""
        (tmp_path / "suite").mkdir()
        (tmp_path / "suite" / "test.json").write_text("{}")
        (tmp_path / "top.json").write_text("{}")

        assert clean_directory(tmp_path) == 2
        assert tmp_path.is_dir()
        assert list(tmp_path.iterdir()) == []

    def test_clean_missing_directory(self, tmp_path):
        """Cleaning a missing directory is a no-op."""
        assert clean_directory(tmp_path / "missing") == 0
