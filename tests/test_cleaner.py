"""Tests for clean plan preview and execution."""

import os
from unittest.mock import patch

import pytest

from diskpulse.categories import CategoryRule, Location
from diskpulse.cleaner import (
    CleanPlanBuilder,
    RunningApps,
    delete_path,
    empty_trash,
    execute_clean,
    parse_categories,
    preview_clean_plan,
)
from diskpulse.config import Settings
from diskpulse.errors import InvalidRequestError
from diskpulse.models import CleanCategory, FailureKind, PathKind

MB = 1024 * 1024

needs_permissions = pytest.mark.skipif(os.geteuid() == 0, reason="root ignores permissions")


def make_rules(base):
    return {
        CleanCategory.CACHE: CategoryRule(
            id=CleanCategory.CACHE,
            name="Caches",
            label="Cache",
            locations=(Location(path=str(base / "Caches")),),
            kinds=frozenset({PathKind.CACHE}),
            min_size_bytes=MB,
            skip_empty=True,
            skip_prefixes=("com.apple.",),
        ),
        CleanCategory.LOGS: CategoryRule(
            id=CleanCategory.LOGS,
            name="Logs",
            label="Log",
            locations=(Location(path=str(base / "Logs")),),
            kinds=frozenset({PathKind.LOG}),
            min_size_bytes=100 * 1024,
            skip_empty=True,
        ),
        CleanCategory.TEMP: CategoryRule(
            id=CleanCategory.TEMP,
            name="Temp",
            label="Temporary file",
            locations=(
                Location(path=str(base / "Caches")),
                Location(path=str(base / "CrashReporter"), bundle=True),
            ),
            skip_empty=True,
        ),
        CleanCategory.TRASH: CategoryRule(
            id=CleanCategory.TRASH,
            name="Trash",
            label="Trash",
            locations=(Location(path=str(base / "Trash")),),
        ),
        CleanCategory.RESIDUAL: CategoryRule(
            id=CleanCategory.RESIDUAL,
            name="Residuals",
            label="Residual",
            locations=(Location(path=str(base / "Support"), orphans_only=True),),
            skip_empty=True,
        ),
    }


@pytest.fixture
def base(tmp_path, make_file):
    root = tmp_path / "clean"
    make_file(root / "Caches" / "app1" / "blob", 2 * MB)
    make_file(root / "Caches" / "app2" / "data.cache", 3 * MB)
    make_file(root / "Caches" / "tiny" / "blob", 10)
    make_file(root / "Caches" / "com.apple.Safari" / "blob", 5 * MB)
    make_file(root / "Caches" / ".DS_Store", 2 * MB)
    (root / "Caches" / "empty").mkdir()
    make_file(root / "Logs" / "app.log", 200 * 1024)
    make_file(root / "Logs" / "small.log", 10)
    make_file(root / "CrashReporter" / "a.crash", 1000)
    make_file(root / "CrashReporter" / "b.crash", 2000)
    make_file(root / "Trash" / "old.zip", 4 * MB)
    make_file(root / "Trash" / "folder" / "doc.txt", 100)
    make_file(root / "Support" / "OldApp" / "state", 500)
    make_file(root / "Support" / "Installed" / "state", 500)
    with patch("diskpulse.cleaner.CATEGORY_RULES", make_rules(root)):
        yield root


def make_builder(settings=None, running=None, installed=frozenset({"installed"})):
    return CleanPlanBuilder(
        settings=settings or Settings(),
        running=running or RunningApps(),
        installed=installed,
    )


class TestParseCategories:
    def test_known(self):
        assert parse_categories(["logs", "cache", "logs"]) == [CleanCategory.LOGS, CleanCategory.CACHE]

    def test_unknown(self):
        with pytest.raises(InvalidRequestError, match="Unknown category: bogus"):
            parse_categories(["cache", "bogus"])


class TestPreview:
    def test_cache_items(self, base):
        plan = make_builder().preview([CleanCategory.CACHE])
        assert [os.path.basename(i.path) for i in plan.items] == ["app2", "app1"]
        assert plan.items[0].size_bytes == 3 * MB
        assert plan.items[0].description == "Cache: app2"

    def test_logs_respect_min_size(self, base):
        plan = make_builder().preview([CleanCategory.LOGS])
        assert [os.path.basename(i.path) for i in plan.items] == ["app.log"]

    def test_crash_reports_are_one_item(self, base):
        plan = make_builder().preview([CleanCategory.TEMP])
        crash = [i for i in plan.items if i.path == str(base / "CrashReporter")]
        assert len(crash) == 1
        assert crash[0].size_bytes == 3000

    def test_trash_includes_files_and_folders(self, base):
        plan = make_builder().preview([CleanCategory.TRASH])
        assert {os.path.basename(i.path) for i in plan.items} == {"old.zip", "folder"}

    def test_orphans_only(self, base):
        plan = make_builder().preview([CleanCategory.RESIDUAL])
        assert [os.path.basename(i.path) for i in plan.items] == ["OldApp"]

    def test_duplicate_path_keeps_first_category(self, base):
        plan = make_builder().preview([CleanCategory.TEMP, CleanCategory.CACHE])
        paths = [i.path for i in plan.items]
        assert len(paths) == len(set(paths))
        app1 = next(i for i in plan.items if i.path.endswith("/app1"))
        assert app1.category == CleanCategory.CACHE

    def test_totals(self, base):
        plan = make_builder().preview(list(CleanCategory))
        assert plan.total_size_bytes == sum(i.size_bytes for i in plan.items)
        assert plan.total_items == len(plan.items)

    def test_ordered_by_size(self, base):
        plan = make_builder().preview(list(CleanCategory))
        sizes = [i.size_bytes for i in plan.items]
        assert sizes == sorted(sizes, reverse=True)

    def test_idempotent(self, base):
        builder = make_builder()
        assert builder.preview(list(CleanCategory)) == builder.preview(list(CleanCategory))

    def test_protected_paths_excluded(self, base):
        settings = Settings(protected_paths=[str(base / "Caches" / "app1")])
        plan = make_builder(settings=settings).preview([CleanCategory.CACHE])
        assert [os.path.basename(i.path) for i in plan.items] == ["app2"]

    def test_running_app_excluded(self, base):
        running = RunningApps(names=frozenset({"app2"}))
        plan = make_builder(running=running).preview([CleanCategory.CACHE])
        assert [os.path.basename(i.path) for i in plan.items] == ["app1"]

    def test_missing_location_is_empty(self, tmp_path):
        with patch("diskpulse.cleaner.CATEGORY_RULES", make_rules(tmp_path / "nowhere")):
            plan = make_builder().preview(list(CleanCategory))
        assert plan.items == []
        assert plan.total_size_bytes == 0


class TestExecute:
    def test_deletes_and_reports_size(self, base):
        builder = make_builder()
        targets = [str(base / "Trash" / "old.zip"), str(base / "Trash" / "folder")]
        result = builder.execute(targets)
        assert result.success
        assert result.released_size_bytes == 4 * MB + 100
        assert result.deleted_items == 2
        assert not (base / "Trash" / "old.zip").exists()
        assert not (base / "Trash" / "folder").exists()

    def test_size_remeasured_at_deletion(self, base):
        builder = make_builder()
        plan = builder.preview([CleanCategory.TRASH])
        with open(base / "Trash" / "old.zip", "ab") as f:
            f.truncate(6 * MB)
        result = builder.execute([i.path for i in plan.items])
        assert result.released_size_bytes == 6 * MB + 100

    def test_system_path_refused(self, base):
        result = make_builder().execute(["/System"])
        assert not result.success
        assert result.failed_items == ["/System"]
        assert result.failures[0].kind == FailureKind.OUTSIDE_SCOPE
        assert result.released_size_bytes == 0

    def test_outside_locations_refused(self, base, make_file):
        stray = make_file(base / "elsewhere" / "keep.txt", 10)
        result = make_builder().execute([str(stray)])
        assert result.failed_items == [str(stray)]
        assert stray.exists()

    def test_location_root_refused(self, base):
        result = make_builder().execute([str(base / "Trash")])
        assert result.failed_items == [str(base / "Trash")]
        assert (base / "Trash").exists()

    def test_relative_path_refused(self, base):
        result = make_builder().execute(["Trash/old.zip"])
        assert result.failed_items == ["Trash/old.zip"]

    def test_missing_path(self, base):
        missing = str(base / "Trash" / "gone")
        result = make_builder().execute([missing])
        assert result.failed_items == [missing]
        assert result.failures[0].kind == FailureKind.PATH_NOT_FOUND

    def test_failure_does_not_abort_others(self, base):
        good = str(base / "Trash" / "old.zip")
        result = make_builder().execute(["/System", good])
        assert result.deleted_items == 1
        assert result.released_size_bytes == 4 * MB
        assert result.failed_items == ["/System"]

    def test_duplicates_deleted_once(self, base):
        path = str(base / "Trash" / "old.zip")
        result = make_builder().execute([path, path])
        assert result.success
        assert result.deleted_items == 1
        assert result.released_size_bytes == 4 * MB

    def test_dry_run_keeps_files(self, base):
        path = base / "Trash" / "old.zip"
        result = make_builder().execute([str(path)], dry_run=True)
        assert result.dry_run
        assert result.released_size_bytes == 4 * MB
        assert path.exists()

    def test_protected_path_refused(self, base):
        path = base / "Trash" / "old.zip"
        settings = Settings(protected_paths=[str(path)])
        result = make_builder(settings=settings).execute([str(path)])
        assert result.failed_items == [str(path)]
        assert path.exists()

    @needs_permissions
    def test_permission_denied(self, base):
        folder = base / "Trash" / "folder"
        folder.chmod(0o555)
        try:
            result = make_builder().execute([str(folder)])
        finally:
            folder.chmod(0o755)
        assert result.failed_items == [str(folder)]
        assert result.failures[0].kind == FailureKind.PERMISSION_DENIED
        assert result.released_size_bytes == 0

    def test_symlinked_parent_refused(self, base, tmp_path, make_file):
        outside = make_file(tmp_path / "outside" / "thesis.doc", 10)
        os.symlink(tmp_path / "outside", base / "Caches" / "link")
        via_link = str(base / "Caches" / "link" / "thesis.doc")
        result = make_builder().execute([via_link])
        assert result.failed_items == [via_link]
        assert result.failures[0].kind == FailureKind.OUTSIDE_SCOPE
        assert outside.exists()

    def test_parent_reference_refused(self, base, make_file):
        stray = make_file(base / "elsewhere" / "keep.txt", 10)
        sneaky = str(base / "Caches") + "/../elsewhere/keep.txt"
        result = make_builder().execute([sneaky])
        assert result.failed_items == [sneaky]
        assert result.failures[0].kind == FailureKind.OUTSIDE_SCOPE
        assert stray.exists()

    def test_symlink_item_removes_link_only(self, base, tmp_path, make_file):
        kept = make_file(tmp_path / "outside" / "keep.txt", 10)
        link = base / "Trash" / "shortcut"
        os.symlink(tmp_path / "outside", link)
        result = make_builder().execute([str(link)])
        assert result.success
        assert not os.path.lexists(link)
        assert kept.exists()

    def test_file_named_like_process_deleted(self, base, make_file):
        path = make_file(base / "Trash" / "python3", 10)
        running = RunningApps(names=frozenset({"python3"}))
        result = make_builder(running=running).execute([str(path)])
        assert result.success
        assert not path.exists()


class TestModuleFunctions:
    @pytest.fixture(autouse=True)
    def no_processes(self):
        with patch("diskpulse.cleaner.detect_running_apps", return_value=RunningApps()), patch(
            "diskpulse.cleaner.installed_app_names", return_value=frozenset()
        ):
            yield

    def test_preview_clean_plan(self, base):
        plan = preview_clean_plan(["logs"])
        assert [os.path.basename(i.path) for i in plan.items] == ["app.log"]

    def test_preview_unknown_category(self, base):
        with pytest.raises(InvalidRequestError):
            preview_clean_plan(["bogus"])

    def test_execute_clean(self, base):
        result = execute_clean([str(base / "Logs" / "app.log")])
        assert result.success
        assert result.released_size_bytes == 200 * 1024

    def test_empty_trash(self, base):
        result = empty_trash()
        assert result.success
        assert result.deleted_items == 2
        assert list((base / "Trash").iterdir()) == []

    def test_empty_trash_dry_run(self, base):
        result = empty_trash(dry_run=True)
        assert result.released_size_bytes == 4 * MB + 100
        assert (base / "Trash" / "old.zip").exists()


class TestRunningApps:
    def test_owns_bundle_contents(self):
        running = RunningApps(bundles=frozenset({"/Applications/Slack.app"}))
        assert running.owns("/Applications/Slack.app/Contents/MacOS/Slack")
        assert not running.owns("/Applications/Slacker.app")

    def test_owns_by_name(self):
        running = RunningApps(names=frozenset({"slack"}))
        assert running.owns("/home/u/.cache/Slack")
        assert running.owns("/Users/u/Library/Caches/com.tinyspeck.Slack")

    def test_ordinary_file_with_process_name(self):
        running = RunningApps(names=frozenset({"python3"}))
        assert not running.owns("/home/u/Downloads/python3")
        assert not running.owns("/home/u/.Trash/python3")

    def test_owns_app_shaped_names(self):
        running = RunningApps(names=frozenset({"slack"}))
        assert running.owns("/home/u/Downloads/Slack.app")
        assert running.owns("/home/u/.local/share/applications/slack.desktop")


class TestDeletePath:
    def test_file(self, tmp_path):
        path = tmp_path / "f"
        path.write_text("x")
        delete_path(str(path))
        assert not path.exists()

    def test_symlink_to_directory_leaves_target(self, tmp_path):
        target = tmp_path / "target"
        target.mkdir()
        (target / "keep").write_text("x")
        link = tmp_path / "link"
        os.symlink(target, link)
        delete_path(str(link))
        assert not os.path.lexists(link)
        assert (target / "keep").exists()
