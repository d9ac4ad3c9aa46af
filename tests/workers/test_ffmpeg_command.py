"""Tests for the ffmpeg encode command builder."""

import pytest
from pathlib import Path

from clipforge.config import settings as app_settings
from clipforge.models.export import (
    AudioCodec,
    ExportQuality,
    ExportResolution,
    ExportSettings,
    VideoCodec,
)
from clipforge.workers.ffmpeg_command import (
    FFmpegCommand,
    build_export_command,
    hardware_encoder_for,
    select_video_encoder,
)

CONCAT = Path("/scratch/concat.txt")
OUTPUT = Path("/exports/out.mp4")


@pytest.fixture(autouse=True)
def default_ffmpeg_settings(monkeypatch):
    """Pin the ffmpeg settings so environment overrides don't leak in."""
    monkeypatch.setattr(app_settings, "ffmpeg_path", "ffmpeg")
    monkeypatch.setattr(app_settings, "ffmpeg_hw_encoder", "")
    monkeypatch.setattr(app_settings, "hardware_bitrate", "5M")
    monkeypatch.setattr(app_settings, "software_preset", "medium")


class TestHardwareEncoder:
    """Tests for hardware encoder selection."""

    def test_platforms(self):
        assert hardware_encoder_for("darwin") == "h264_videotoolbox"
        assert hardware_encoder_for("win32") == "h264_nvenc"
        assert hardware_encoder_for("linux") is None

    def test_configured_encoder_wins(self, monkeypatch):
        monkeypatch.setattr(app_settings, "ffmpeg_hw_encoder", "h264_vaapi")
        assert hardware_encoder_for("linux") == "h264_vaapi"
        assert hardware_encoder_for("darwin") == "h264_vaapi"

    def test_linux_falls_back_to_software(self):
        assert select_video_encoder(ExportSettings(), "linux") == "libx264"

    def test_only_h264_is_accelerated(self):
        settings = ExportSettings(codec=VideoCodec.HEVC, hardware_acceleration=True)
        assert select_video_encoder(settings, "darwin") == "libx265"


class TestBuildExportCommand:
    """Tests for build_export_command."""

    def test_hardware_h264(self):
        command = build_export_command(CONCAT, OUTPUT, ExportSettings(), platform="darwin")

        assert command.argv == [
            "ffmpeg",
            "-f", "concat", "-safe", "0", "-i", str(CONCAT),
            "-c:v", "h264_videotoolbox",
            "-b:v", "5M",
            "-vf", "scale=1920:1080:force_original_aspect_ratio=decrease",
            "-c:a", "aac",
            "-b:a", "192k",
            "-y", str(OUTPUT),
        ]

    def test_hardware_h264_has_no_crf(self):
        for platform in ("darwin", "win32", "linux"):
            command = build_export_command(CONCAT, OUTPUT, ExportSettings(), platform=platform)
            assert "-crf" not in command.args
            assert "-preset" not in command.args
            assert command.value_of("-b:v") == "5M"

    def test_software_always_uses_crf(self):
        for codec in VideoCodec:
            for quality in ExportQuality:
                settings = ExportSettings(
                    codec=codec, quality=quality, hardware_acceleration=False
                )
                command = build_export_command(CONCAT, OUTPUT, settings, platform="darwin")

                assert command.value_of("-c:v") == codec.ffmpeg_codec
                assert command.value_of("-crf") == str(quality.crf_value)
                assert command.value_of("-preset") == "medium"
                assert "-b:v" not in command.args

    def test_hardware_flag_with_other_codec_uses_crf(self):
        settings = ExportSettings(codec=VideoCodec.VP9, quality=ExportQuality.LOW)
        command = build_export_command(CONCAT, OUTPUT, settings, platform="darwin")

        assert command.value_of("-c:v") == "libvpx-vp9"
        assert command.value_of("-crf") == "28"
        assert "-preset" not in command.args

    def test_source_resolution_has_no_scale(self):
        settings = ExportSettings(resolution=ExportResolution.SOURCE)
        command = build_export_command(CONCAT, OUTPUT, settings, platform="darwin")
        assert "-vf" not in command.args

    def test_scale_filter(self):
        settings = ExportSettings(resolution=ExportResolution.SD)
        command = build_export_command(CONCAT, OUTPUT, settings, platform="darwin")
        assert command.value_of("-vf") == "scale=854:480:force_original_aspect_ratio=decrease"

    def test_frame_rate(self):
        command = build_export_command(CONCAT, OUTPUT, ExportSettings(fps=24), platform="darwin")
        assert command.value_of("-r") == "24"

        command = build_export_command(CONCAT, OUTPUT, ExportSettings(), platform="darwin")
        assert "-r" not in command.args

    def test_audio(self):
        settings = ExportSettings(audio_codec=AudioCodec.OPUS, audio_bitrate=96)
        command = build_export_command(CONCAT, OUTPUT, settings, platform="darwin")

        assert command.value_of("-c:a") == "libopus"
        assert command.value_of("-b:a") == "96k"

    def test_output_is_last(self):
        command = build_export_command(CONCAT, OUTPUT, ExportSettings(), platform="darwin")
        assert command.args[-2:] == ["-y", str(OUTPUT)]
        assert command.args[:6] == ["-f", "concat", "-safe", "0", "-i", str(CONCAT)]

    def test_ffmpeg_path(self):
        command = build_export_command(
            CONCAT, OUTPUT, ExportSettings(), ffmpeg_path="/opt/ffmpeg/bin/ffmpeg"
        )
        assert command.executable == "/opt/ffmpeg/bin/ffmpeg"

    def test_configured_bitrate_and_preset(self, monkeypatch):
        monkeypatch.setattr(app_settings, "hardware_bitrate", "8M")
        monkeypatch.setattr(app_settings, "software_preset", "slow")

        hardware = build_export_command(CONCAT, OUTPUT, ExportSettings(), platform="darwin")
        software = build_export_command(
            CONCAT, OUTPUT, ExportSettings(hardware_acceleration=False), platform="darwin"
        )

        assert hardware.value_of("-b:v") == "8M"
        assert software.value_of("-preset") == "slow"


class TestFFmpegCommand:
    """Tests for the FFmpegCommand helper."""

    def test_value_of_missing_flag(self):
        command = FFmpegCommand(executable="ffmpeg", args=["-y"])
        assert command.value_of("-crf") is None
        assert command.value_of("-y") is None

    def test_str(self):
        command = FFmpegCommand(executable="ffmpeg", args=["-i", "in.mp4"])
        assert str(command) == "ffmpeg -i in.mp4"
