"""Tests for the offline render CLI."""

import pytest

from meshbloom.config import EngineState
from meshbloom.io.state import deserialize, serialize
from meshbloom.render import cli


@pytest.fixture
def fake_encoder(monkeypatch):
    """Replace ffmpeg with a recorder that drains the frame generator."""
    calls = []

    def fake_encode_video(frame_iterator, output_path, **kwargs):
        frames = list(frame_iterator)
        calls.append({"frames": frames, "output_path": output_path, **kwargs})
        output_path.write_bytes(b"\x00" * 16)
        return output_path

    monkeypatch.setattr(cli, "encode_video", fake_encode_video)
    return calls


class TestParser:
    def test_defaults(self):
        args = cli.build_parser().parse_args([])
        assert args.audio is None
        assert args.profile == "low"
        assert args.state is None

    def test_rejects_unknown_style(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--style", "plasma"])


class TestMain:
    def test_missing_audio_exits(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main([str(tmp_path / "nope.wav")])
        assert exc.value.code == 1
        assert "not found" in capsys.readouterr().err

    def test_manual_energy_render(self, tmp_path, fake_encoder, capsys):
        out = tmp_path / "out.mp4"
        cli.main([
            "-o", str(out), "-d", "0.5",
            "--width", "16", "--height", "24", "-f", "10",
            "--seed", "5", "--style", "solid", "--energy", "0.9",
        ])

        call = fake_encoder[0]
        assert len(call["frames"]) == 5
        assert call["frames"][0].shape == (24, 16, 3)
        assert call["audio_path"] is None
        assert call["quality"] == "fast"

        printed = capsys.readouterr().out
        token = printed.split("Share token: ")[1].split()[0]
        restored = deserialize(token)
        assert restored.seed == 5
        assert restored.bg_style == "solid"

    def test_state_token_applied(self, tmp_path, fake_encoder):
        token = serialize(EngineState(bg_style="radial", size=90))
        cli.main([
            "-o", str(tmp_path / "o.mp4"), "-d", "0.2",
            "--width", "12", "--height", "12", "-f", "10",
            "--state", token,
        ])
        assert len(fake_encoder[0]["frames"]) == 2

    @pytest.mark.parametrize("seed, expected", [("-1", 0xFFFFFFFF), ("4294967297", 1)])
    def test_seed_wrapped_to_32_bits(self, tmp_path, fake_encoder, capsys, seed, expected):
        cli.main([
            "-o", str(tmp_path / "o.mp4"), "-d", "0.1",
            "--width", "12", "--height", "12", "-f", "10",
            "--seed", seed,
        ])
        printed = capsys.readouterr().out
        assert f"Seed: {expected}," in printed
        token = printed.split("Share token: ")[1].split()[0]
        assert deserialize(token).seed == expected

    def test_audio_render(self, tmp_path, temp_audio_file, fake_encoder):
        cli.main([
            str(temp_audio_file), "-d", "0.3",
            "--width", "12", "--height", "20", "-f", "10",
        ])
        call = fake_encoder[0]
        assert call["audio_path"] == temp_audio_file
        assert call["output_path"] == temp_audio_file.with_name("test_audio_meshbloom.mp4")
        assert len(call["frames"]) == 3

    def test_progress_bar_non_tty(self, capsys):
        cli._progress_bar(20, 20)
        assert "100.0%" in capsys.readouterr().out
