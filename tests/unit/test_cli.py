"""Tests for the annoeval command line."""

import json
from pathlib import Path

import pytest

from annoeval.cli import build_parser, main, submission_names

GT = """<annotations>
  <image id="0" name="a.jpg">
    <box label="car" xtl="0" ytl="0" xbr="10" ybr="10"/>
  </image>
</annotations>
"""

STUDENT = """<annotations>
  <image id="0" name="a.jpg">
    <box label="car" xtl="0" ytl="0" xbr="10" ybr="10"/>
  </image>
</annotations>
"""


@pytest.fixture
def files(tmp_path):
    """Write a GT and a perfect submission; return their paths."""
    gt = tmp_path / "gt.xml"
    gt.write_text(GT)
    student = tmp_path / "alice.xml"
    student.write_text(STUDENT)
    return gt, student


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args(["gt.xml", "a.xml", "b.xml"])
        assert args.format == "text"
        assert args.tool is None
        assert len(args.students) == 2
        assert args.sequential is False

    def test_tool_choices(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["gt.xml", "a.xml", "--tool", "ellipse"])


class TestMain:
    """Tests for main() exit codes and output."""

    def test_text_report(self, files, capsys):
        gt, student = files
        assert main([str(gt), str(student)]) == 0
        out = capsys.readouterr().out
        assert "alice.xml" in out
        assert "100/100" in out

    def test_json_output_file(self, files, tmp_path):
        gt, student = files
        output = tmp_path / "out.json"
        code = main([str(gt), str(student), "--format", "json", "--output", str(output)])
        assert code == 0
        report = json.loads(output.read_text())
        assert report["results"][0]["score"] == 100
        assert report["results"][0]["tool_type"] == "bounding_box"

    def test_csv(self, files, capsys):
        gt, student = files
        assert main([str(gt), str(student), "--format", "csv", "--sequential"]) == 0
        assert capsys.readouterr().out.startswith("Filename,Tool,Score")

    def test_bad_submission_exit_1(self, files, tmp_path, capsys):
        gt, student = files
        broken = tmp_path / "bob.xml"
        broken.write_text("not annotations")
        assert main([str(gt), str(student), str(broken)]) == 1
        err = capsys.readouterr().err
        assert "bob.xml" in err

    def test_unreadable_submission_exit_1(self, files, tmp_path):
        gt, student = files
        assert main([str(gt), str(student), str(tmp_path / "missing.xml")]) == 1

    def test_bad_gt_exit_2(self, files, tmp_path):
        _, student = files
        gt = tmp_path / "gt.xml"
        gt.write_text("{broken")
        assert main([str(gt), str(student)]) == 2

    def test_bad_schema_exit_2(self, files, tmp_path):
        gt, student = files
        schema = tmp_path / "schema.yaml"
        schema.write_text("- just\n- a list\n")
        assert main([str(gt), str(student), "--schema", str(schema)]) == 2

    def test_same_file_name_in_two_directories(self, files, tmp_path, capsys):
        gt, _ = files
        paths = []
        for group, content in (("period1", STUDENT), ("period2", "not annotations")):
            folder = tmp_path / group
            folder.mkdir()
            path = folder / "alice.xml"
            path.write_text(content)
            paths.append(path)

        assert main([str(gt), *map(str, paths), "--format", "csv"]) == 1
        captured = capsys.readouterr()
        assert str(paths[0]) in captured.out
        assert str(paths[1]) in captured.err


class TestSubmissionNames:
    def test_unique_names_stay_short(self):
        paths = [Path("a/alice.xml"), Path("b/bob.xml")]
        assert submission_names(paths) == ["alice.xml", "bob.xml"]

    def test_repeated_names_use_full_path(self):
        paths = [Path("p1/alice.xml"), Path("p2/alice.xml"), Path("p2/bob.xml")]
        assert submission_names(paths) == [str(paths[0]), str(paths[1]), "bob.xml"]
