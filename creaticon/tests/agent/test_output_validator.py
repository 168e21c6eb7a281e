from creaticon.agent.output_validator import find_unbalanced_bracket, validate_output

GOOD_COMPONENT = """import React from 'react';

export default function Greeting({ name }: { name: string }) {
  const message = `Hello, ${name}`;
  return <p className="greeting">{message}</p>;
}
"""


def test_balanced_source_has_no_issue():
    assert find_unbalanced_bracket(GOOD_COMPONENT) is None


def test_unmatched_open_brace_reports_its_position():
    source = "export default function A() {\n  if (ready) {\n    return 1;\n}\n"

    issue = find_unbalanced_bracket(source)

    assert issue is not None
    assert issue.position == source.index("{")
    assert (issue.line, issue.column) == (1, source.index("{") + 1)
    assert "Unclosed '{'" in issue.message


def test_mismatched_closer_is_reported_where_it_occurs():
    source = "const A = () => {\n  const b = [1, 2;\n};"

    issue = find_unbalanced_bracket(source)

    assert issue is not None
    assert issue.position == source.rindex("}")
    assert (issue.line, issue.column) == (3, 1)
    assert issue.message.startswith("Mismatched '}'")


def test_stray_closer_is_reported():
    issue = find_unbalanced_bracket("a)")

    assert issue is not None
    assert issue.position == 1
    assert (issue.line, issue.column) == (1, 2)


def test_good_component_passes_every_check():
    report = validate_output(GOOD_COMPONENT, "component")

    assert report.passed
    assert [c.name for c in report.checks] == ["parses", "entry_point", "quality"]
    assert report.issues == []


def test_component_without_export_fails_entry_point_only():
    report = validate_output(GOOD_COMPONENT.replace("export default ", ""), "component")

    assert not report.passed
    assert [c.name for c in report.checks if not c.passed] == ["entry_point"]
    assert len(report.suggestions) == len(report.issues) == 1


def test_component_bracket_failure_carries_line_and_column():
    report = validate_output(GOOD_COMPONENT + "\nfunction Broken() {\n", "component")

    parses = report.checks[0]
    assert not parses.passed
    assert "line 8, column 19" in parses.detail


def test_icon_pack_without_svg_fails_parse_and_quality():
    report = validate_output("<!DOCTYPE html><html><body><p>No icons</p></body></html>", "icon-pack")

    failed = [c.name for c in report.checks if not c.passed]
    assert failed == ["parses", "quality"]
    assert len(report.suggestions) == 2


def test_icon_pack_fragment_fails_entry_point():
    report = validate_output("<svg viewBox='0 0 24 24'><path d='M0 0h24v24H0z'/></svg>" * 4, "icon-pack")

    failed = [c.name for c in report.checks if not c.passed]
    assert failed == ["entry_point"]
    assert "<html>" in report.checks[1].detail


def test_ui_bundle_requires_body_and_style():
    page = (
        "<!DOCTYPE html><html><head><title>Dashboard</title></head><body>"
        + "<section><h1>Metrics</h1><p>Visitors today</p></section>" * 6
        + "</body></html>"
    )

    report = validate_output(page, "ui-bundle")

    assert not report.passed
    assert "<style" in report.checks[2].detail


COMMENTED_COMPONENT = """import React from 'react';

// Steps: 1) read props 2) render the face
/* Layout notes: sidebar] stays fixed */
export default function Mood({ happy }: { happy: boolean }) {
  const face = happy ? ':)' : ":(";
  const label = `mood ${happy ? '(yes)' : '[no]'}`;
  return <span title={label}>{face}</span>;
}
"""


def test_brackets_in_comments_and_strings_are_ignored():
    assert find_unbalanced_bracket(COMMENTED_COMPONENT) is None
    assert validate_output(COMMENTED_COMPONENT, "component").checks[0].passed


def test_real_error_after_comment_is_still_found():
    source = "// wrap it (later)\nconst A = () => {\n  return 1;\n"

    issue = find_unbalanced_bracket(source)

    assert issue is not None
    assert issue.position == source.index("{")
    assert (issue.line, issue.column) == (2, 17)


def test_escaped_quote_does_not_end_string():
    assert find_unbalanced_bracket("const s = 'it\\'s (fine';\nf(s);") is None
