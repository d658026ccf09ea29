"""Tests for build_tools.py: build tool detection and snapshot population."""

import json
import logging
import subprocess
import zipfile

import pytest

from buildsnap import build_tools
from buildsnap.build_tools import (
    BuildTool,
    detect_build_tool,
    populate_snapshot,
    select_build_tool,
)
from buildsnap.config import BundleConfig
from buildsnap.conventions import write_special_configuration
from buildsnap.errors import ArchiveError, BuildsnapError, BuildToolError
from buildsnap.models import Snapshot

POM = """\
    <project>
        <groupId>com.example</groupId>
        <artifactId>demo</artifactId>
        <version>1.0</version>
        <dependencies>
            <dependency>
                <groupId>com.google.guava</groupId>
                <artifactId>guava</artifactId>
                <version>31.1-jre</version>
            </dependency>
        </dependencies>
    </project>
"""


@pytest.fixture
def project(tmp_path):
    directory = tmp_path / "demo"
    directory.mkdir()
    return directory


class TestDetection:
    @pytest.mark.parametrize("marker,tool", [
        ("build.gradle", BuildTool.GRADLE),
        ("pom.xml", BuildTool.MAVEN),
        ("build.xml", BuildTool.ANT),
        ("BUCK", BuildTool.BUCK),
    ])
    def test_marker_files(self, project, marker, tool):
        (project / marker).write_text("")
        assert detect_build_tool(project) is tool

    def test_gradle_before_maven(self, project):
        (project / "pom.xml").write_text("")
        (project / "build.gradle").write_text("")
        assert detect_build_tool(project) is BuildTool.GRADLE

    def test_nothing_detected(self, project):
        assert detect_build_tool(project) is None

    def test_invalid_directory(self, tmp_path):
        with pytest.raises(BuildToolError):
            detect_build_tool(tmp_path / "absent")

    def test_explicit_selection(self, project):
        (project / "pom.xml").write_text("")
        assert select_build_tool(BundleConfig(project_dir=project, build_tool="buck")) is BuildTool.BUCK

    def test_unknown_name(self):
        with pytest.raises(BuildToolError, match="unknown build tool: sbt"):
            BuildTool.from_name("sbt")

    def test_undetectable(self, project):
        with pytest.raises(BuildToolError):
            select_build_tool(BundleConfig(project_dir=project))

    def test_names(self):
        assert BuildTool.names() == ["ant", "buck", "gradle", "maven"]


class TestPopulateMaven:
    def test_jars_dependencies_and_sources(self, project, fake_home, add_artifact, write_file, monkeypatch):
        monkeypatch.setenv("HOME", str(fake_home))
        guava = add_artifact("com.google.guava", "guava", "31.1-jre")
        write_file("demo/pom.xml", POM)
        write_file("demo/target/demo-1.0.jar", "")
        write_file("demo/target/other-1.0.jar", "")
        write_file("demo/src/main/java/A.java", "class A {}")

        snapshot = populate_snapshot(BuildTool.MAVEN, BundleConfig(project_dir=project), Snapshot())
        assert snapshot.files("app") == [str((project / "target" / "demo-1.0.jar").resolve())]
        assert snapshot.files("lib") == [str(guava.absolute())]
        [sources] = snapshot.files("src")
        assert sources.endswith("sources.zip")
        with zipfile.ZipFile(sources) as zf:
            assert zf.namelist() == ["main/java/A.java"]

    def test_generated_sources(self, project, fake_home, write_file, monkeypatch):
        monkeypatch.setenv("HOME", str(fake_home))
        write_file("demo/pom.xml", POM)
        write_file("demo/target/generated-sources/annotations/G.java", "class G {}")
        snapshot = populate_snapshot(BuildTool.MAVEN, BundleConfig(project_dir=project), Snapshot())
        [generated] = snapshot.files("src")
        with zipfile.ZipFile(generated) as zf:
            assert zf.namelist() == ["annotations/G.java"]


class TestPopulateAnt:
    def test_class_directory_fallback(self, project, write_file):
        write_file("demo/target/classes/A.class", "")
        config = BundleConfig(project_dir=project)
        snapshot = populate_snapshot(BuildTool.ANT, config, Snapshot())
        [code] = snapshot.files("app")
        assert code.endswith("-pre.jar")
        assert code.startswith(str((project / ".clyze-snapshot").resolve()))
        with zipfile.ZipFile(code) as zf:
            assert zf.namelist() == ["A.class"]

    def test_any_jar_name(self, project, write_file):
        write_file("demo/target/whatever.jar", "")
        snapshot = populate_snapshot(BuildTool.ANT, BundleConfig(project_dir=project), Snapshot())
        assert len(snapshot.files("app")) == 1

    def test_unarchivable_sources_skipped(self, project, write_file, monkeypatch, caplog):
        write_file("demo/target/app.jar", "")
        write_file("demo/src/A.java", "class A {}")

        def fail(src_dir, archive):
            raise ArchiveError(f"could not write archive {archive}: disk full")

        monkeypatch.setattr(build_tools, "zip_tree", fail)
        with caplog.at_level(logging.ERROR):
            snapshot = populate_snapshot(BuildTool.ANT, BundleConfig(project_dir=project), Snapshot())
        assert len(snapshot.files("app")) == 1
        assert snapshot.files("src") == []
        assert "Could not archive sources in" in caplog.text


class TestPopulateGradle:
    def test_libs_and_report(self, project, fake_home, add_artifact, write_file, monkeypatch):
        monkeypatch.setenv("HOME", str(fake_home))
        guava = add_artifact("com.google.guava", "guava", "31.1-jre")
        write_file("demo/settings.gradle", "")
        write_file("demo/build/libs/demo.jar", "")
        report = "runtimeClasspath - Runtime classpath\n+--- com.google.guava:guava:31.1-jre\n\n"
        monkeypatch.setattr(subprocess, "run",
                            lambda cmd, **kwargs: subprocess.CompletedProcess(cmd, 0, stdout=report, stderr=""))

        snapshot = populate_snapshot(BuildTool.GRADLE, BundleConfig(project_dir=project), Snapshot())
        assert snapshot.files("app") == [str((project / "build" / "libs" / "demo.jar").resolve())]
        assert snapshot.files("lib") == [str(guava.absolute())]


class TestPopulateBuck:
    @pytest.fixture
    def buck_project(self, project, write_file):
        write_file("demo/BUCK", "")
        write_file("demo/app.jar", "code")
        write_file("demo/src/com/example/App.java", "package com.example;\nclass App {}\n")
        write_file("demo/json/App.json", "{}")
        write_file("demo/rules/app.pro", "-keep class App\n")
        args = write_file("demo/buck-out/gen/proguard.args", "-include\nrules/app.pro\n")
        trace = [
            {"args": {"description": "javac -d out App.java"}},
            {"args": {"description": f"(java -jar /tools/proguard.jar @{args})"}},
        ]
        write_file("demo/buck-out/log/build.trace", json.dumps(trace))
        return project

    def test_full_bundle(self, buck_project, monkeypatch):
        monkeypatch.chdir(buck_project)
        monkeypatch.setattr(subprocess, "run", lambda args, **kwargs: subprocess.CompletedProcess(args, 0))
        config = BundleConfig(project_dir=buck_project, code_files=["app.jar"], source_dirs=["src"],
                              plugin_classpath=["/plugins/typeinfo.jar"])
        snapshot = populate_snapshot(BuildTool.BUCK, config, Snapshot())

        snapshot_dir = (buck_project / ".clyze-snapshot").resolve()
        assert snapshot.files("app") == [str(snapshot_dir / "app.jar")]
        with zipfile.ZipFile(snapshot.files("SOURCES_JAR")[0]) as zf:
            assert zf.namelist() == ["com/example/App.java"]
        with zipfile.ZipFile(snapshot.files("JCPLUGIN_METADATA")[0]) as zf:
            assert zf.namelist() == ["App.json"]
        with zipfile.ZipFile(snapshot.files("PG_ZIP")[0]) as zf:
            assert zf.namelist() == ["rules/app.pro"]
        assert snapshot.strings("jvm_platform") == ["android_25_stubs"]

    def test_explicit_configurations_replace_mined(self, buck_project, write_file, monkeypatch):
        monkeypatch.setattr(subprocess, "run", lambda args, **kwargs: subprocess.CompletedProcess(args, 0))
        write_file("demo/explicit.pro", "-keep class Explicit\n")
        config = BundleConfig(project_dir=buck_project, code_files=["app.jar"], configurations=["explicit.pro"])
        snapshot = populate_snapshot(BuildTool.BUCK, config, Snapshot())
        with zipfile.ZipFile(snapshot.files("PG_ZIP")[0]) as zf:
            assert zf.namelist() == ["explicit.pro"]

    def test_special_configuration_is_used(self, buck_project, monkeypatch, caplog):
        monkeypatch.chdir(buck_project)
        monkeypatch.setattr(subprocess, "run", lambda args, **kwargs: subprocess.CompletedProcess(args, 0))
        snapshot_dir = buck_project / ".clyze-snapshot"
        snapshot_dir.mkdir()
        special = write_special_configuration(snapshot_dir, disable_opt=True, print_config=True)
        special.output_rules_path.write_text(
            "-keep class App\n-dontshrink\n-dontoptimize\n-dontobfuscate\n"
            f"-printconfiguration {special.output_rules_path}\n")
        config = BundleConfig(project_dir=buck_project, code_files=["app.jar"], plugin_classpath=["/p.jar"],
                              configurations=["rules/app.pro", str(special.path)])
        with caplog.at_level(logging.WARNING):
            snapshot = populate_snapshot(BuildTool.BUCK, config, Snapshot())
        with zipfile.ZipFile(snapshot.files("PG_ZIP")[0]) as zf:
            assert zf.namelist() == ["rules/app.pro"]
        assert "rules not uploaded" not in caplog.text
        assert "not found in total configuration" not in caplog.text

    def test_unreadable_trace_continues(self, project, write_file, caplog):
        write_file("demo/app.jar", "code")
        config = BundleConfig(project_dir=project, code_files=["app.jar"])
        with caplog.at_level(logging.ERROR):
            snapshot = populate_snapshot(BuildTool.BUCK, config, Snapshot())
        assert "Error gathering metadata/configurations" in caplog.text
        assert snapshot.files("PG_ZIP") == []
        assert len(snapshot.files("app")) == 1

    def test_requires_code(self, project):
        with pytest.raises(BuildsnapError, match="No code was given"):
            populate_snapshot(BuildTool.BUCK, BundleConfig(project_dir=project), Snapshot())

    def test_single_code_file_only(self, project):
        config = BundleConfig(project_dir=project, code_files=["a.jar", "b.jar"])
        with pytest.raises(BuildsnapError, match="More than one"):
            populate_snapshot(BuildTool.BUCK, config, Snapshot())
