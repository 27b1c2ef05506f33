import numpy as np
import pytest
import soundfile as sf

from nexia.cli import build_parser, main, segment_from_file


def test_segment_from_wav_file(tmp_path):
    path = tmp_path / "visit-01.wav"
    sf.write(str(path), np.zeros(8000, dtype=np.int16), 16000, subtype="PCM_16")
    segment = segment_from_file(path)
    assert segment.media_type in {"audio/wav", "audio/x-wav"}
    assert segment.duration_seconds == pytest.approx(0.5)
    assert segment.data == path.read_bytes()


def test_unknown_container_has_zero_duration(tmp_path):
    path = tmp_path / "visit.webm"
    path.write_bytes(b"\x1a\x45\xdf\xa3" + b"\x00" * 100)
    segment = segment_from_file(path)
    assert segment.size == 104
    assert segment.duration_seconds == 0.0


def test_parser_commands():
    args = build_parser().parse_args(["--api-key", "k", "transcribe", "a.wav", "b.wav", "--notes"])
    assert args.command == "transcribe"
    assert args.files == ["a.wav", "b.wav"]
    assert args.notes is True
    args = build_parser().parse_args(["record", "--no-streaming", "--device", "2"])
    assert args.no_streaming is True


def test_empty_file_reports_error(tmp_path, capsys):
    empty = tmp_path / "empty.wav"
    empty.write_bytes(b"")
    code = main(["--settings", str(tmp_path / "settings.json"), "transcribe", str(empty)])
    assert code == 2
    assert "empty" in capsys.readouterr().err
