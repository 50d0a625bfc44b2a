"""Property-based tests for upload validation.

Validation reports every violated rule at once rather than stopping at the
first failure.
"""

from hypothesis import given, settings, strategies as st

from coursemedia.modules.video.service import UploadConfig, sanitize_filename, validate_upload


CONFIG = UploadConfig(temp_dir="/tmp/unused", max_file_size=10_000)

allowed_ext_strategy = st.sampled_from(["mp4", "mov", "mkv", "MP4", "Mov"])
bad_ext_strategy = st.sampled_from(["avi", "webm", "exe", "txt", ""])
allowed_mime_strategy = st.sampled_from([
    "video/mp4",
    "video/quicktime",
    "video/x-matroska",
    "application/octet-stream",
    "video/mp4; codecs=avc1",
])
bad_mime_strategy = st.sampled_from(["text/plain", "image/png", "video/x-msvideo", "", None])
stem_strategy = st.text(
    min_size=1,
    max_size=30,
    alphabet=st.characters(whitelist_categories=("L", "N")),
)


def rules(violations) -> set[str]:
    return {v.rule for v in violations}


class TestUploadValidation:
    """Property tests for upload intake rules."""

    @given(
        stem=stem_strategy,
        ext=allowed_ext_strategy,
        mime=allowed_mime_strategy,
        size=st.integers(min_value=1, max_value=10_000),
    )
    @settings(max_examples=100)
    def test_valid_uploads_pass(self, stem: str, ext: str, mime: str, size: int) -> None:
        """Any allowed extension and MIME type within the size limit SHALL pass."""
        assert validate_upload(f"{stem}.{ext}", size, mime, CONFIG) == []

    @given(
        stem=stem_strategy,
        ext=st.one_of(allowed_ext_strategy, bad_ext_strategy),
        mime=st.one_of(allowed_mime_strategy, bad_mime_strategy),
        size=st.integers(min_value=-5, max_value=20_000),
    )
    @settings(max_examples=200)
    def test_every_violated_rule_is_reported(self, stem: str, ext: str, mime, size: int) -> None:
        """The violation set SHALL be exactly the set of broken rules."""
        filename = f"{stem}.{ext}" if ext else stem
        expected = set()
        if size > CONFIG.max_file_size:
            expected.add("file_too_large")
        if ext.lower() not in {"mp4", "mov", "mkv"}:
            expected.add("extension_not_allowed")
        if mime is None or mime.split(";")[0].strip() not in {
            "video/mp4", "video/quicktime", "video/x-matroska", "application/octet-stream",
        }:
            expected.add("mime_type_not_allowed")
        if size <= 0:
            expected.add("empty_file")

        assert rules(validate_upload(filename, size, mime, CONFIG)) == expected

    def test_zero_byte_file_reports_empty_file(self) -> None:
        violations = validate_upload("lesson.mp4", 0, "video/mp4", CONFIG)

        assert rules(violations) == {"empty_file"}
        assert violations[0].message == "File is empty"

    def test_all_rules_at_once(self) -> None:
        violations = validate_upload("notes.exe", 50_000, "application/x-msdownload", CONFIG)

        assert rules(violations) == {"file_too_large", "extension_not_allowed", "mime_type_not_allowed"}
        messages = [v.message for v in violations]
        assert "File size exceeds maximum allowed size of 10000 bytes" in messages
        assert "File format not allowed. Allowed formats: mp4, mov, mkv" in messages
        assert "Invalid video MIME type" in messages


class TestSanitizeFilename:
    @given(name=st.text(max_size=60))
    @settings(max_examples=100)
    def test_result_is_a_safe_basename(self, name: str) -> None:
        cleaned = sanitize_filename(name)

        assert cleaned
        assert "/" not in cleaned and "\\" not in cleaned
        assert not cleaned.startswith(".")

    def test_path_components_are_dropped(self) -> None:
        assert sanitize_filename("../../etc/passwd") == "passwd"
        assert sanitize_filename("C:\\Users\\me\\My Lesson.mp4") == "My_Lesson.mp4"
