"""Property-based tests for rendition height and bitrate selection.

For a label "{H}p" the encode targets height H at the table bitrate, or the
fallback bitrate for labels outside the table.
"""

import pytest
from hypothesis import given, settings, strategies as st

from coursemedia.modules.transcoding.ffmpeg import FFmpegTranscoder
from coursemedia.modules.transcoding.models import (
    DEFAULT_BITRATE,
    RESOLUTION_BITRATES,
    Resolution,
    get_bitrate,
    parse_resolution_height,
    resolve_profile,
)


height_strategy = st.integers(min_value=1, max_value=8640)
resolution_strategy = st.sampled_from(list(Resolution))


class TestBitrateTable:
    """Tests for the resolution to bitrate table."""

    def test_standard_bitrates(self) -> None:
        assert get_bitrate("360p") == 500_000
        assert get_bitrate("480p") == 1_000_000
        assert get_bitrate("720p") == 2_500_000
        assert get_bitrate("1080p") == 5_000_000

    def test_table_is_total_over_resolutions(self) -> None:
        for resolution in Resolution:
            assert RESOLUTION_BITRATES[resolution] > 0

    @given(resolution=resolution_strategy)
    @settings(max_examples=50)
    def test_known_labels_use_table(self, resolution: Resolution) -> None:
        """Every standard resolution SHALL map to its table entry."""
        assert get_bitrate(resolution.value) == RESOLUTION_BITRATES[resolution]

    @given(height=height_strategy)
    @settings(max_examples=100)
    def test_unknown_labels_fall_back(self, height: int) -> None:
        """Labels outside the table SHALL use the fallback bitrate."""
        label = f"{height}p"
        expected = (
            RESOLUTION_BITRATES[Resolution(label)]
            if label in {r.value for r in Resolution}
            else DEFAULT_BITRATE
        )
        assert get_bitrate(label) == expected

    @given(
        resolution=resolution_strategy,
        override=st.integers(min_value=100_000, max_value=50_000_000),
    )
    @settings(max_examples=50)
    def test_overrides_win(self, resolution: Resolution, override: int) -> None:
        assert get_bitrate(resolution.value, {resolution.value: override}) == override


class TestResolutionLabels:
    """Tests for parsing resolution labels."""

    @given(height=height_strategy)
    @settings(max_examples=100)
    def test_height_parsed_from_label(self, height: int) -> None:
        """For any label "{H}p", the profile height SHALL be H."""
        profile = resolve_profile(f"{height}p")

        assert profile.height == height
        assert profile.label == f"{height}p"

    @pytest.mark.parametrize("label", ["", "p", "720", "720P ", "hd", "0p", "-360p", "7 20p"])
    def test_invalid_labels_rejected(self, label: str) -> None:
        with pytest.raises(ValueError):
            parse_resolution_height(label)


class TestTranscodeCommand:
    """Property tests for the ffmpeg encode command."""

    @given(height=height_strategy)
    @settings(max_examples=100)
    def test_command_targets_height_and_bitrate(self, height: int) -> None:
        """For any label "{H}p", the command SHALL scale to height H and
        encode at the table (or fallback) bitrate."""
        transcoder = FFmpegTranscoder()
        profile = resolve_profile(f"{height}p")

        cmd = transcoder.build_transcode_command("in.mov", "out.mp4", profile)

        assert cmd[cmd.index("-vf") + 1] == f"scale=-2:{height}"
        assert cmd[cmd.index("-b:v") + 1] == str(get_bitrate(f"{height}p"))

    def test_command_layout(self) -> None:
        transcoder = FFmpegTranscoder()
        cmd = transcoder.build_transcode_command("in.mov", "out.mp4", resolve_profile("720p"))

        assert cmd[0] == "ffmpeg"
        assert cmd[cmd.index("-i") + 1] == "in.mov"
        assert cmd[cmd.index("-c:v") + 1] == "libx264"
        assert cmd[cmd.index("-c:a") + 1] == "aac"
        assert cmd[cmd.index("-b:a") + 1] == "128k"
        assert cmd[cmd.index("-movflags") + 1] == "+faststart"
        assert "-y" in cmd
        assert cmd[-1] == "out.mp4"
