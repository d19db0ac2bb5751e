from __future__ import annotations

from helpers import run_rule

from javasentinel.suppressions import NO_SUPPRESSIONS, parse_suppressions

SOURCE = """class Legacy {
    // javasentinel: disable-next-line=design

    @Override
    public boolean equals(Object o) { return true; }
    String s = "javasentinel: disable=G01";
    int Bad_Name; /* javasentinel: disable=g01, G08 */
}
"""


def test_next_line_skips_blank_lines_and_annotations() -> None:
    suppressions = parse_suppressions(SOURCE)
    assert suppressions.covers("G10", "design", line=5)
    assert not suppressions.covers("G10", "design", line=3)
    assert not suppressions.covers("G03", "safety", line=5)


def test_directives_only_count_inside_comments() -> None:
    suppressions = parse_suppressions(SOURCE)
    assert not suppressions.covers("G01", "style", line=6)
    assert suppressions.covers("G01", "style", line=7)
    assert suppressions.covers("G08", line=7)
    assert not suppressions.covers("G01", "style", line=None)


def test_file_wide_category_and_missing_directives() -> None:
    suppressions = parse_suppressions(" * javasentinel: disable-file=Safety\nclass A { }\n")
    assert suppressions.covers("G04", "safety")
    assert not suppressions.covers("G04", None, line=2)
    assert parse_suppressions("class A { }") is NO_SUPPRESSIONS


def test_category_directive_silences_rule_findings() -> None:
    source = """
class Point {
    // javasentinel: disable-next-line=design
    @Override
    public boolean equals(Object o) { return o instanceof Point; }
}
"""
    assert run_rule("G10", source, path="Point.java") == []
