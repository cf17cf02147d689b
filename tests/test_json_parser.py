# Test suite for JSON parser functionality

import pytest

from accesslint_core.utils.json_parser import parse_json_safely


class TestParseJsonSafely:
    """Lenient single-value parsing used for tool parameters"""

    def test_strict_json(self):
        assert parse_json_safely('{"file_path": "src/app.py"}') == {"file_path": "src/app.py"}

    def test_fenced_json(self):
        text = '```json\n{"query": "TODO", "limit": 5}\n```'
        assert parse_json_safely(text) == {"query": "TODO", "limit": 5}

    def test_fenced_json_surrounded_by_prose(self):
        """Test parsing valid JSON from a fenced block inside an explanation"""
        text = """Here is some JSON:
```json
{
  "name": "John",
  "age": 30
}
```
And more text."""
        assert parse_json_safely(text) == {"name": "John", "age": 30}

    def test_fenced_json_with_trailing_comma(self):
        """A fenced block that fails strict decoding is repaired"""
        text = '```json\n{\n  "name": "John",\n  "age": 30,\n}\n```'
        assert parse_json_safely(text) == {"name": "John", "age": 30}

    def test_fenced_array(self):
        assert parse_json_safely('```json\n[{"id": 1}, {"id": 2}]\n```') == [{"id": 1}, {"id": 2}]

    def test_single_quotes_and_trailing_comma(self):
        """Single quotes are normalised and trailing commas dropped"""
        text = "{'path': 'src/a.py', 'count': 2,}"
        assert parse_json_safely(text) == {"path": "src/a.py", "count": 2}

    def test_unquoted_keys(self):
        assert parse_json_safely("{file_path: 'notes.txt'}") == {"file_path": "notes.txt"}

    def test_object_embedded_in_prose(self):
        text = 'The parameters are {"x": 1, "y": [1, 2]} as shown above.'
        assert parse_json_safely(text) == {"x": 1, "y": [1, 2]}

    def test_braces_inside_string_values(self):
        """Braces inside string values do not end the object early"""
        text = 'Result: {"pattern": "a}b{c", "ok": true} done'
        assert parse_json_safely(text) == {"pattern": "a}b{c", "ok": True}

    def test_markup_inside_string_values(self):
        content = '<img src="logo.png">\n<p class="intro">Welcome</p>'
        text = '{"file_path": "index.html", "content": "' + content.replace('"', '\\"').replace(
            "\n", "\\n"
        ) + '"}'
        assert parse_json_safely(text) == {"file_path": "index.html", "content": content}

    @pytest.mark.parametrize("text", ["", "   ", "not json at all"])
    def test_unparseable_returns_none(self, text):
        assert parse_json_safely(text) is None
