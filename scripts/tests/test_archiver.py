"""Tests for archiver.py: tree archives and the configurations archive."""

import hashlib
import logging
import zipfile
from pathlib import Path

import pytest

from buildsnap import archiver as archiver_module
from buildsnap.archiver import (
    ConfigurationArchiver,
    delete_unsupported_directives,
    strip_root_prefix,
    tmp_file,
    zip_tree,
    zip_trees,
)
from buildsnap.errors import ArchiveError


def entries(archive: Path) -> dict:
    with zipfile.ZipFile(archive) as zf:
        return {name: zf.read(name).decode("utf-8") for name in zf.namelist()}


class TestZipTree:
    def test_relative_entries(self, tmp_path, write_file):
        write_file("classes/com/example/A.class", "a")
        write_file("classes/B.class", "b")
        archive = tmp_path / "out.jar"
        assert zip_tree(tmp_path / "classes", archive) is False
        assert entries(archive) == {"B.class": "b", "com/example/A.class": "a"}

    def test_unwritable_archive(self, tmp_path, write_file):
        write_file("classes/B.class", "b")
        with pytest.raises(ArchiveError):
            zip_tree(tmp_path / "classes", tmp_path / "missing" / "out.jar")

    def test_zip_trees_names_by_digest(self, tmp_path, write_file):
        write_file("classes/B.class", "b")
        target = tmp_path / "snap"
        target.mkdir()
        archives = zip_trees([tmp_path / "classes"], target)
        digest = hashlib.md5(str((tmp_path / "classes").resolve()).encode("utf-8")).hexdigest()
        assert archives == {tmp_path / "classes": target / f"{digest}-pre.jar"}

    def test_tmp_file_exists(self):
        path = tmp_file("clyze-test-", "-classes.jar")
        assert path.exists()
        assert path.name.startswith("clyze-test-")
        assert path.name.endswith("-classes.jar")


class TestStripRootPrefix:
    def test_absolute(self):
        assert strip_root_prefix("/opt/rules.pro") == "opt/rules.pro"

    def test_relative(self):
        assert strip_root_prefix("opt/rules.pro") == "opt/rules.pro"


class TestDeleteUnsupportedDirectives:
    def test_clean_file_returned_as_is(self, write_file):
        conf = write_file("rules.pro", "-keep class A\n")
        assert delete_unsupported_directives(conf) == conf

    def test_strips_and_warns(self, write_file, caplog):
        conf = write_file("rules.pro", """\
            -keep class A
            -printusage usage.txt
            -dump dump.txt
            -keep class B
        """)
        with caplog.at_level(logging.WARNING):
            stripped = delete_unsupported_directives(conf)
        assert stripped != conf
        assert stripped.read_text() == "-keep class A\n-keep class B\n"
        assert caplog.text.count("contains unsupported directive") == 2


class TestEntryName:
    def test_project_relative(self, tmp_path):
        archiver = ConfigurationArchiver(tmp_path)
        assert archiver.entry_name(tmp_path / "app" / "proguard-rules.pro") == "app/proguard-rules.pro"

    def test_gradle_cache_two_segments(self, tmp_path):
        archiver = ConfigurationArchiver(tmp_path / "proj")
        path = tmp_path / "home" / ".gradle" / "caches" / "transforms-3" / "abc" / "lib" / "proguard.txt"
        assert archiver.entry_name(path) == "lib/proguard.txt"

    def test_gradle_cache_meta_inf(self, tmp_path):
        archiver = ConfigurationArchiver(tmp_path / "proj")
        path = (tmp_path / "home" / ".gradle" / "caches" / "transforms" / "abc" / "jars"
                / "META-INF" / "proguard" / "lib.pro")
        assert archiver.entry_name(path) == "META-INF/proguard/lib.pro"

    def test_elsewhere_uses_absolute_path(self, tmp_path):
        archiver = ConfigurationArchiver(tmp_path / "proj")
        path = Path("/opt/sdk/proguard-android.txt")
        assert archiver.entry_name(path) == "opt/sdk/proguard-android.txt"

    def test_disabling_rules_excluded(self, tmp_path):
        disabling = tmp_path / "disabling-rules.txt"
        archiver = ConfigurationArchiver(tmp_path, disabling)
        assert archiver.entry_name(disabling.resolve()) is None


class TestConfigurationArchiver:
    def test_archives_in_order(self, tmp_path, write_file):
        a = write_file("app/rules.pro", "-keep class A\n")
        b = write_file("lib/rules.pro", "-keep class B\n")
        output = tmp_path / "configurations.zip"
        written = ConfigurationArchiver(tmp_path).archive([a, b], output)
        assert [e.logical_name for e in written] == ["app/rules.pro", "lib/rules.pro"]
        assert written[0].data == b"-keep class A\n"
        assert entries(output) == {"app/rules.pro": "-keep class A\n", "lib/rules.pro": "-keep class B\n"}

    def test_first_duplicate_wins(self, tmp_path, write_file, caplog):
        cache = tmp_path / "home" / ".gradle" / "caches" / "transforms"
        first = cache / "one" / "lib" / "proguard.txt"
        second = cache / "two" / "lib" / "proguard.txt"
        for path, text in ((first, "-keep class First\n"), (second, "-keep class Second\n")):
            path.parent.mkdir(parents=True)
            path.write_text(text)
        output = tmp_path / "configurations.zip"
        with caplog.at_level(logging.WARNING):
            written = ConfigurationArchiver(tmp_path / "proj").archive([first, second], output)
        assert len(written) == 1
        assert entries(output) == {"lib/proguard.txt": "-keep class First\n"}
        assert caplog.text.count("duplicate configuration entry") == 1
        assert "duplicate configuration entry: lib/proguard.txt" in caplog.text

    def test_missing_files_skipped(self, tmp_path, write_file):
        a = write_file("rules.pro", "-keep class A\n")
        output = tmp_path / "configurations.zip"
        written = ConfigurationArchiver(tmp_path).archive([tmp_path / "absent.pro", a], output)
        assert [e.logical_name for e in written] == ["rules.pro"]

    def test_directory_input_skipped(self, tmp_path, write_file):
        (tmp_path / "dir.pro").mkdir()
        a = write_file("rules.pro", "-keep class A\n")
        output = tmp_path / "configurations.zip"
        written = ConfigurationArchiver(tmp_path).archive([tmp_path / "dir.pro", a], output)
        assert [e.logical_name for e in written] == ["rules.pro"]
        assert list(entries(output)) == ["rules.pro"]

    def test_unreadable_input_skipped(self, tmp_path, write_file, monkeypatch, caplog):
        bad = write_file("bad.pro", "-keep class Bad\n")
        a = write_file("rules.pro", "-keep class A\n")

        def fail_on_bad(conf):
            if conf.name == "bad.pro":
                raise PermissionError(conf)
            return conf

        monkeypatch.setattr(archiver_module, "delete_unsupported_directives", fail_on_bad)
        output = tmp_path / "configurations.zip"
        with caplog.at_level(logging.ERROR):
            written = ConfigurationArchiver(tmp_path, strip_unsupported=True).archive([bad, a], output)
        assert [e.logical_name for e in written] == ["rules.pro"]
        assert entries(output) == {"rules.pro": "-keep class A\n"}
        assert "Could not read configuration file" in caplog.text

    def test_disabling_rules_not_archived(self, tmp_path, write_file):
        disabling = write_file("disabling-rules.txt", "-dontshrink\n")
        a = write_file("rules.pro", "-keep class A\n")
        output = tmp_path / "configurations.zip"
        ConfigurationArchiver(tmp_path, disabling).archive([disabling, a], output)
        assert list(entries(output)) == ["rules.pro"]

    def test_strip_unsupported(self, tmp_path, write_file):
        a = write_file("rules.pro", "-keep class A\n-printseeds seeds.txt\n")
        output = tmp_path / "configurations.zip"
        ConfigurationArchiver(tmp_path, strip_unsupported=True).archive([a], output)
        assert entries(output) == {"rules.pro": "-keep class A\n"}

    def test_unsupported_kept_by_default(self, tmp_path, write_file):
        a = write_file("rules.pro", "-keep class A\n-printseeds seeds.txt\n")
        output = tmp_path / "configurations.zip"
        ConfigurationArchiver(tmp_path).archive([a], output)
        assert entries(output) == {"rules.pro": "-keep class A\n-printseeds seeds.txt\n"}

    def test_unwritable_output(self, tmp_path, write_file):
        a = write_file("rules.pro", "-keep class A\n")
        with pytest.raises(ArchiveError):
            ConfigurationArchiver(tmp_path).archive([a], tmp_path / "missing" / "configurations.zip")

    def test_checks_against_reference(self, tmp_path, write_file, caplog):
        a = write_file("rules.pro", "-keep class A\n")
        reference = write_file("printed.txt", "-keep class A\n-keep class Extra\n")
        output = tmp_path / "configurations.zip"
        with caplog.at_level(logging.WARNING):
            ConfigurationArchiver(tmp_path).archive([a], output, reference)
        assert "rules not uploaded: '-keep class Extra'" in caplog.text
