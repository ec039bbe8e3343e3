"""
Tests for the command line interface
"""

import json
import pytest
from unittest.mock import patch

from heartlens.cli import main
from heartlens.validation import generate_fallback_result


def test_text_command_prints_analysis(tmp_path, capsys):
    transcript = tmp_path / "chat.txt"
    transcript.write_text("Alex: I love you\nSam: thank you, I love you too", encoding="utf-8")

    main(["text", str(transcript)])

    output = json.loads(capsys.readouterr().out)
    assert output["sentiment"]["dominant_emotion"] == "joy"
    assert output["confidence"] == 1.0


def test_validate_command(tmp_path, capsys):
    good = tmp_path / "good.json"
    good.write_text(json.dumps(generate_fallback_result()), encoding="utf-8")

    with pytest.raises(SystemExit) as exc:
        main(["validate", str(good)])
    assert exc.value.code == 0
    assert "Valid: True" in capsys.readouterr().out

    bad = generate_fallback_result()
    bad["relationship_health"] = -5
    bad_file = tmp_path / "bad.json"
    bad_file.write_text(json.dumps(bad), encoding="utf-8")

    with pytest.raises(SystemExit) as exc:
        main(["validate", str(bad_file)])
    assert exc.value.code == 1


def test_validate_unreadable_file(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main(["validate", str(tmp_path / "missing.json")])
    assert exc.value.code == 1


def test_analyze_command_writes_report_and_chart(tmp_path):
    shot = tmp_path / "shot.png"
    shot.write_bytes(b"fake image")
    out = tmp_path / "report.json"
    chart = tmp_path / "chart.png"

    with patch("heartlens.cli.analyze_screenshots", return_value=generate_fallback_result("Alex", "Sam")) as mock_analyze:
        main(["analyze", str(shot), "--names", "Alex", "Sam", "-o", str(out), "--chart", str(chart)])

    images, names = mock_analyze.call_args.args
    assert images == [("shot.png", b"fake image")]
    assert names == {"user_a": "Alex", "user_b": "Sam"}
    assert json.loads(out.read_text(encoding="utf-8"))["user_a"]["name"] == "Alex"
    assert chart.read_bytes().startswith(b"\x89PNG")


def test_analyze_missing_file_exits(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main(["analyze", str(tmp_path / "nope.png")])
    assert exc.value.code == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
