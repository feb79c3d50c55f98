"""Tests for path classification."""

import pytest

from diskpulse.classifier import NO_EXTENSION, classify, normalized_extension
from diskpulse.models import PathKind


class TestNormalizedExtension:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("photo.JPG", "jpg"),
            ("archive.tar.gz", "gz"),
            ("README", NO_EXTENSION),
            (".bashrc", NO_EXTENSION),
            ("trailing.", NO_EXTENSION),
        ],
    )
    def test_extensions(self, name, expected):
        assert normalized_extension(name) == expected


class TestClassify:
    def test_log_extension(self):
        assert classify("/home/u/app/output.log") == PathKind.LOG

    def test_rotated_log(self):
        assert classify("/var/tmp/system.log.1") == PathKind.LOG

    def test_temp_extension(self):
        assert classify("/home/u/Downloads/movie.crdownload") == PathKind.TEMP

    def test_cache_directory(self):
        assert classify("/home/u/.cache/pip/http/blob") == PathKind.CACHE

    def test_library_caches(self):
        assert classify("/Users/u/Library/Caches/com.vendor.app") == PathKind.CACHE

    def test_log_directory(self):
        assert classify("/Users/u/Library/Logs/app/output") == PathKind.LOG

    def test_extension_wins_over_directory(self):
        assert classify("/home/u/.cache/tool/debug.log") == PathKind.LOG

    def test_nearest_ancestor_wins(self):
        assert classify("/home/u/Logs/cache/blob") == PathKind.CACHE

    def test_residual(self):
        assert classify("/Users/u/Library/Application Support/OldApp/data") == PathKind.RESIDUAL

    def test_ordinary(self):
        assert classify("/home/u/Documents/report.pdf") == PathKind.ORDINARY

    def test_own_name_is_not_a_directory_rule(self):
        assert classify("/home/u/cache") == PathKind.ORDINARY

    def test_empty_path(self):
        assert classify("/") == PathKind.ORDINARY
