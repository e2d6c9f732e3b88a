"""
Unit tests for chunking strategies.

Tests the brace heuristic (including its known limitations), the tree-sitter
and Markdown plug-ins, and the rules the Chunker applies on top of them.
"""

import pytest

from reviewctx.chunkers import (
    ChunkStrategy,
    Chunker,
    HeuristicChunker,
    MarkdownChunker,
    TreeSitterChunker,
    extract_exports,
    extract_imports,
)


SCENARIO_A = """function foo(a, b) {
  const sum = a + b;
  console.log(sum);
  return sum;
}

class Bar {
  // items held by the bar
  constructor() {
    this.items = [];
  }

  add(item) {
    this.items.push(item);
  }

  size() {
    return this.items.length;
  }
}
"""


class TestHeuristicChunker:
    """Tests for the brace-depth heuristic."""

    def test_function_and_class(self):
        """A function on lines 1-5 and a class on lines 7-20 give exactly two chunks."""
        chunks = Chunker().chunk_file("src/widget.js", SCENARIO_A)

        assert len(chunks) == 2
        foo, bar = chunks
        assert (foo.type, foo.function_name, foo.start_line, foo.end_line) == ("function", "foo", 1, 5)
        assert (bar.type, bar.class_name, bar.start_line, bar.end_line) == ("class", "Bar", 7, 20)
        assert bar.function_name is None
        assert foo.content.startswith("function foo")
        assert bar.content.splitlines()[-1] == "}"

    def test_no_declarations_gives_module_chunk(self):
        content = "const a = 1;\nconst b = 2;\nconsole.log(a + b);\n"
        chunks = Chunker().chunk_file("src/config.js", content)

        assert len(chunks) == 1
        chunk = chunks[0]
        assert chunk.type == "module"
        assert chunk.start_line == 1
        assert chunk.end_line == 4
        assert chunk.content == content

    def test_arrow_functions(self):
        content = (
            "const double = (x) => {\n"
            "  return x * 2;\n"
            "};\n"
            "\n"
            "export const triple = async (x) => {\n"
            "  return x * 3;\n"
            "};\n"
        )
        chunks = HeuristicChunker().chunk(content, "math.js", "javascript")

        assert [c.function_name for c in chunks] == ["double", "triple"]
        assert [(c.start_line, c.end_line) for c in chunks] == [(1, 3), (5, 7)]

    def test_go_and_rust_declarations(self):
        go = "func (s *Server) Start() error {\n\treturn nil\n}\n"
        rust = "pub async fn handle(req: Request) -> Response {\n    todo!()\n}\n"

        go_chunks = HeuristicChunker().chunk(go, "server.go", "go")
        rust_chunks = HeuristicChunker().chunk(rust, "lib.rs", "rust")

        assert go_chunks[0].function_name == "Start"
        assert rust_chunks[0].function_name == "handle"

    def test_declarations_inside_open_body_are_ignored(self):
        """Nested functions stay in the enclosing chunk."""
        content = (
            "function outer() {\n"
            "  function inner() {\n"
            "    return 1;\n"
            "  }\n"
            "  return inner();\n"
            "}\n"
        )
        chunks = HeuristicChunker().chunk(content, "nested.js", "javascript")

        assert len(chunks) == 1
        assert chunks[0].function_name == "outer"
        assert chunks[0].end_line == 6

    def test_brace_in_string_misplaces_close(self):
        """Braces inside string literals are counted; the chunk runs on to the end of the file."""
        content = (
            "function render() {\n"
            "  return '{';\n"
            "}\n"
            "\n"
            "function next() {\n"
            "  return 2;\n"
            "}\n"
        )
        chunks = HeuristicChunker().chunk(content, "render.js", "javascript")

        assert len(chunks) == 1
        assert chunks[0].function_name == "render"
        assert (chunks[0].start_line, chunks[0].end_line) == (1, 7)

    def test_nested_object_literal_closer_at_column_zero(self):
        """A flush-left '}' of an inner literal leaves depth above zero, so the function stays open."""
        content = (
            "function build() {\n"
            "  const cfg = {\n"
            "    a: { b: 1 },\n"
            "}\n"
            "  return cfg;\n"
            "}\n"
            "\n"
            "function next() {\n"
            "  return 2;\n"
            "}\n"
        )
        chunks = HeuristicChunker().chunk(content, "build.js", "javascript")

        assert [(c.function_name, c.start_line, c.end_line) for c in chunks] == [
            ("build", 1, 6),
            ("next", 8, 10),
        ]
        assert "return cfg;" in chunks[0].content

    def test_indented_closing_brace_closes(self):
        content = "  function a() {\n    return 1;\n  }\n  console.log(a());\n"
        chunks = HeuristicChunker().chunk(content, "indent.js", "javascript")

        assert [(c.function_name, c.start_line, c.end_line) for c in chunks] == [("a", 1, 3)]

    def test_closing_brace_with_trailing_comment_stays_open(self):
        """'} // end' is not a bare closing line, so trailing code joins the chunk."""
        content = "function a() {\n  return 1;\n} // end a\nconsole.log(a());\n"
        chunks = HeuristicChunker().chunk(content, "comment.js", "javascript")

        assert [(c.function_name, c.start_line, c.end_line) for c in chunks] == [("a", 1, 4)]

    def test_open_chunk_at_depth_zero_closes_at_next_declaration(self):
        content = (
            "function a() {\n"
            "  return 1;\n"
            "} // end a\n"
            "\n"
            "function b() {\n"
            "  return 2;\n"
            "}\n"
        )
        chunks = HeuristicChunker().chunk(content, "comment.js", "javascript")

        assert [(c.function_name, c.start_line, c.end_line) for c in chunks] == [
            ("a", 1, 3),
            ("b", 5, 7),
        ]

    def test_brace_less_declarations_close_at_next_declaration(self):
        content = "def first\n  1\nend\n\ndef second\n  2\nend\n"
        chunks = HeuristicChunker().chunk(content, "app.rb", "ruby")

        assert [(c.function_name, c.start_line, c.end_line) for c in chunks] == [
            ("first", 1, 3),
            ("second", 5, 7),
        ]

    def test_code_between_chunks_is_dropped(self):
        content = "function a() {\n}\nconsole.log('glue');\nfunction b() {\n}\n"
        chunks = HeuristicChunker().chunk(content, "glue.js", "javascript")

        assert all("glue" not in c.content for c in chunks)

    def test_empty_content(self):
        assert HeuristicChunker().chunk("", "empty.js", "javascript") == []


class TestTreeSitterChunker:
    """Tests for the Python plug-in."""

    def test_top_level_definitions(self):
        content = (
            "import os\n"
            "\n"
            "\n"
            "@cached\n"
            "def load(path):\n"
            "    return os.path.exists(path)\n"
            "\n"
            "\n"
            "class Loader:\n"
            "    def run(self):\n"
            "        return load('x')\n"
        )
        chunks = TreeSitterChunker().chunk(content, "loader.py", "python")

        assert [(c.type, c.start_line, c.end_line) for c in chunks] == [
            ("function", 4, 6),
            ("class", 9, 11),
        ]
        assert chunks[0].function_name == "load"
        assert chunks[0].content.startswith("@cached")
        assert chunks[1].class_name == "Loader"

    def test_methods_stay_in_class(self):
        content = "class A:\n    def one(self):\n        pass\n\n    def two(self):\n        pass\n"
        chunks = TreeSitterChunker().chunk(content, "a.py", "python")

        assert len(chunks) == 1
        assert chunks[0].class_name == "A"

    def test_script_without_definitions_becomes_module(self):
        content = "import sys\nprint(sys.argv)\n"
        chunks = Chunker.with_default_plugins().chunk_file("script.py", content)

        assert len(chunks) == 1
        assert chunks[0].type == "module"


class TestMarkdownChunker:
    """Tests for the Markdown plug-in."""

    def test_sections(self):
        content = "Intro text.\n\n# Title\n\nBody.\n\n## Usage\n\nRun it.\n"
        chunks = MarkdownChunker().chunk(content, "README.md", "markdown")

        assert [(c.start_line, c.end_line) for c in chunks] == [(1, 1), (3, 5), (7, 9)]
        assert all(c.type == "documentation" for c in chunks)

    def test_headers_in_code_fences_are_ignored(self):
        content = "# Setup\n\n```bash\n# not a header\npip install x\n```\n"
        chunks = MarkdownChunker().chunk(content, "docs/setup.md", "markdown")

        assert len(chunks) == 1
        assert chunks[0].end_line == 6


class TestChunker:
    """Tests for the plug-in registry and shared rules."""

    def test_blank_file_gives_module_chunk(self, chunker):
        """A file with nothing but whitespace still becomes one module chunk."""
        chunks = chunker.chunk_file("src/empty.js", "  \n\n")

        assert len(chunks) == 1
        assert chunks[0].type == "module"
        assert (chunks[0].start_line, chunks[0].end_line) == (1, 3)
        assert chunks[0].content == "  \n\n"

    def test_strategy_selection(self, chunker):
        assert isinstance(chunker.strategy_for("python"), TreeSitterChunker)
        assert isinstance(chunker.strategy_for("markdown"), MarkdownChunker)
        assert isinstance(chunker.strategy_for("go"), HeuristicChunker)

    def test_chunks_sorted_with_unique_ids(self, chunker):
        chunks = chunker.chunk_file("src/widget.js", SCENARIO_A)

        assert [c.start_line for c in chunks] == sorted(c.start_line for c in chunks)
        assert len({c.id for c in chunks}) == len(chunks)
        assert chunks[0].id == "src/widget.js:function:1"

    def test_imports_and_exports_attached(self, chunker):
        content = (
            "import { api } from '../lib/api';\n"
            "const fs = require('fs');\n"
            "\n"
            "export function load() {\n"
            "  return api.get();\n"
            "}\n"
        )
        chunks = chunker.chunk_file("src/load.js", content)

        assert chunks[0].imports == ["../lib/api", "fs"]
        assert chunks[0].exports == ["export function load() {"]

    def test_test_files_are_retyped(self, chunker):
        content = "def test_total():\n    assert total([]) == 0\n"
        for path in ("tests/test_total.py", "src/total_test.py"):
            chunks = chunker.chunk_file(path, content)
            assert [c.type for c in chunks] == ["test"]

        js = "describe('cart', function() {\n});\n"
        assert chunker.chunk_file("src/cart.spec.js", js)[0].type == "test"

    def test_regular_files_are_not_retyped(self, chunker):
        content = "def contest():\n    return 1\n"
        assert chunker.chunk_file("src/contest.py", content)[0].type == "function"

    def test_markdown_in_test_dir_stays_documentation(self, chunker):
        chunks = chunker.chunk_file("tests/README.md", "# Tests\n\nHow to run.\n")
        assert chunks[0].type == "documentation"

    def test_failing_strategy_falls_back_to_module(self):
        class Broken(ChunkStrategy):
            def chunk(self, content, path, language):
                raise RuntimeError("parser exploded")

        chunker = Chunker()
        chunker.register("python", Broken())
        content = "def a():\n    pass\n"
        chunks = chunker.chunk_file("a.py", content)

        assert len(chunks) == 1
        assert chunks[0].type == "module"
        assert chunks[0].content == content


@pytest.mark.parametrize("content,language,expected", [
    ("from pkg.sub import thing\nimport os.path\n", "python", ["pkg.sub", "os.path"]),
    ("import './styles.css';\nimport x from \"lodash\";\n", "javascript", ["./styles.css", "lodash"]),
    ("const a = require('a');\nconst b = require('a');\n", "javascript", ["a"]),
])
def test_extract_imports(content, language, expected):
    assert extract_imports(content, language) == expected


def test_extract_exports():
    content = "export const a = 1;\nconst b = 2;\nexport default a;\n"
    assert extract_exports(content) == ["export const a = 1;", "export default a;"]
