"""
Tests for archive format matching, extraction, compression and backups.
"""
import gzip
import os
import shutil
import time

import pytest

from conftest import FakeRunner, write
from shellkit.archives import (
    ArchiveTranscoder, create_backup, human_size, list_backups, match_format,
    parse_listing, restore_backup, strip_suffix, supported_suffixes, top_level_names,
)
from shellkit.errors import (
    CompressionFailed, ExtractionFailed, InputNotFound, MissingArgument,
    NotAFile, ToolNotFound, UnsupportedFormat,
)

ALL_TOOLS = {"tar", "zstd", "bunzip2", "gunzip", "xz", "uncompress", "unzip", "zip", "7z", "unrar"}


def have(*tools):
    return all(shutil.which(t) for t in tools)


def write_stdout(content):
    def effect(argv, cwd, stdout_path):
        with open(stdout_path, "w") as f:
            f.write(content)
    return effect


def create(*paths, size=10):
    def effect(argv, cwd, stdout_path):
        for p in paths:
            write(p, "x" * size)
    return effect


@pytest.fixture
def tools():
    return FakeRunner(tools=ALL_TOOLS)


class TestFormatMatching:

    @pytest.mark.parametrize("filename,expected", [
        ("bundle.tar.gz", "tar.gz"),
        ("bundle.tgz", "tar.gz"),
        ("data.gz", "gz"),
        ("x.tar.bz2", "tar.bz2"),
        ("x.tbz2", "tar.bz2"),
        ("x.bz2", "bz2"),
        ("x.tar", "tar"),
        ("x.tar.xz", "tar.xz"),
        ("x.tar.zst", "tar.zst"),
        ("old.Z", "Z"),
        ("a.zip", "zip"),
        ("a.7z", "7z"),
        ("a.rar", "rar"),
        ("dir.with.dots/file.tar.gz", "tar.gz"),
    ])
    def test_longest_suffix_wins(self, filename, expected):
        assert match_format(filename).name == expected

    @pytest.mark.parametrize("filename", ["notes.txt", "old.z", "archive", "tar.gz.txt"])
    def test_unknown_suffix(self, filename):
        with pytest.raises(UnsupportedFormat):
            match_format(filename)

    def test_compress_suffixes_exclude_extract_only(self):
        suffixes = supported_suffixes("compress")
        assert ".tar.gz" in suffixes and ".zip" in suffixes and ".7z" in suffixes
        for extract_only in (".gz", ".bz2", ".Z", ".rar", ".xz", ".zst"):
            assert extract_only not in suffixes
            assert extract_only in supported_suffixes("extract")

    def test_strip_suffix(self):
        assert strip_suffix("path/to/bundle.tar.gz") == "bundle"
        assert strip_suffix("data.txt.gz") == "data.txt"
        assert strip_suffix(".gz") == ".gz.out"


class TestExtract:

    def test_missing_argument(self, tools):
        with pytest.raises(MissingArgument):
            ArchiveTranscoder(tools).extract("")

    def test_not_a_file(self, tools, workdir):
        (workdir / "folder.zip").mkdir()
        with pytest.raises(NotAFile):
            ArchiveTranscoder(tools).extract("folder.zip")
        with pytest.raises(NotAFile):
            ArchiveTranscoder(tools).extract("absent.zip")
        assert tools.calls == []

    def test_unsupported_runs_nothing(self, tools, workdir):
        write(workdir / "notes.txt")
        with pytest.raises(UnsupportedFormat):
            ArchiveTranscoder(tools).extract("notes.txt")
        assert tools.calls == []

    def test_tool_not_found(self, workdir):
        runner = FakeRunner(tools={"tar"})
        write(workdir / "a.rar")
        with pytest.raises(ToolNotFound) as exc:
            ArchiveTranscoder(runner).extract("a.rar")
        assert exc.value.tool == "unrar"
        assert runner.calls == []

    def test_tar_zst_needs_zstd(self, workdir):
        runner = FakeRunner(tools={"tar"})
        write(workdir / "a.tar.zst")
        with pytest.raises(ToolNotFound) as exc:
            ArchiveTranscoder(runner).extract("a.tar.zst")
        assert exc.value.tool == "zstd"

    def test_tar_gz_selects_tar_and_infers_directory(self, tools, workdir):
        write(workdir / "bundle.tar.gz")
        tools.script(["tar", "-tzf"], 0, "bundle/\nbundle/a.txt\nbundle/b.txt\n")
        tools.script(["tar", "-xzf"], 0, effect=create(workdir / "bundle" / "a.txt", workdir / "bundle" / "b.txt"))

        report = ArchiveTranscoder(tools).extract("bundle.tar.gz")

        assert tools.calls == [
            ["tar", "-tzf", "bundle.tar.gz"],
            ["tar", "-xzf", "bundle.tar.gz", "-C", str(workdir)],
        ]
        assert report.format == "tar.gz"
        assert report.target_dir == os.path.join(str(workdir), "bundle")
        assert report.entries == ["a.txt", "b.txt"]
        assert report.remaining == 0

    def test_loose_entries_have_no_target(self, tools, workdir):
        write(workdir / "loose.zip")
        tools.script(["unzip", "-Z1"], 0, "f1\nf2\n")
        tools.script(["unzip", "-o"], 0, effect=create(workdir / "f1", workdir / "f2"))
        report = ArchiveTranscoder(tools).extract("loose.zip")
        assert tools.calls[1] == ["unzip", "-o", "loose.zip", "-d", str(workdir)]
        assert report.target_dir is None
        assert report.entries == ["f1", "f2"]

    def test_preview_is_limited_to_ten(self, tools, workdir):
        write(workdir / "many.tar")
        names = [f"many/file{i:02d}" for i in range(13)]
        tools.script(["tar", "-tf"], 0, "\n".join(names))
        tools.script(["tar", "-xf"], 0, effect=create(*[workdir / n for n in names]))
        report = ArchiveTranscoder(tools).extract("many.tar")
        assert report.entries == [f"file{i:02d}" for i in range(10)]
        assert report.remaining == 3

    def test_listing_failure_falls_back_to_name(self, tools, workdir):
        write(workdir / "pkg.7z")
        tools.script(["7z", "l"], 2)
        tools.script(["7z", "x"], 0, effect=create(workdir / "pkg" / "readme"))
        report = ArchiveTranscoder(tools).extract("pkg.7z")
        assert tools.calls[1] == ["7z", "x", "-y", f"-o{workdir}", "pkg.7z"]
        assert report.target_dir == os.path.join(str(workdir), "pkg")
        assert report.entries == ["readme"]

    def test_extraction_failure_carries_status(self, tools, workdir):
        write(workdir / "broken.tgz")
        tools.script(["tar", "-xzf"], 2, stderr="gzip: stdin: not in gzip format")
        with pytest.raises(ExtractionFailed) as exc:
            ArchiveTranscoder(tools).extract("broken.tgz")
        assert exc.value.status == 2
        assert "not in gzip format" in exc.value.stderr

    def test_stream_decompressor_writes_stem(self, tools, workdir):
        write(workdir / "data.txt.gz")
        tools.script(["gunzip"], 0, effect=write_stdout("hello"))
        report = ArchiveTranscoder(tools).extract("data.txt.gz")
        assert tools.calls == [["gunzip", "-c", "data.txt.gz"]]
        assert (workdir / "data.txt").read_text() == "hello"
        assert report.target_dir is None
        assert report.entries == ["data.txt"]

    @pytest.mark.parametrize("name,argv0,flag", [
        ("a.xz", "xz", "-dc"),
        ("a.zst", "zstd", "-dc"),
        ("a.bz2", "bunzip2", "-c"),
        ("a.Z", "uncompress", "-c"),
    ])
    def test_stream_commands(self, tools, workdir, name, argv0, flag):
        write(workdir / name)
        ArchiveTranscoder(tools).extract(name)
        assert tools.calls == [[argv0, flag, name]]

    def test_stream_failure_removes_partial_output(self, tools, workdir):
        write(workdir / "data.bin.bz2")
        tools.script(["bunzip2"], 1, effect=write_stdout("partial"))
        with pytest.raises(ExtractionFailed):
            ArchiveTranscoder(tools).extract("data.bin.bz2")
        assert not (workdir / "data.bin").exists()

    def test_dash_archive_names_are_not_options(self, tools, workdir):
        write(workdir / "-notes.gz")
        write(workdir / "-pkg.zip")
        transcoder = ArchiveTranscoder(tools)
        transcoder.extract("-notes.gz")
        transcoder.extract("-pkg.zip")
        assert tools.calls[0] == ["gunzip", "-c", "./-notes.gz"]
        assert tools.calls[1] == ["unzip", "-Z1", "./-pkg.zip"]
        assert tools.calls[2] == ["unzip", "-o", "./-pkg.zip", "-d", str(workdir)]

    def test_explicit_destination_is_created(self, tools, workdir):
        write(workdir / "a.rar")
        ArchiveTranscoder(tools).extract("a.rar", workdir / "out")
        assert (workdir / "out").is_dir()
        assert tools.calls[-1] == ["unrar", "x", "-o+", "a.rar", str(workdir / "out") + os.sep]


class TestCompress:

    def test_missing_arguments(self, tools):
        with pytest.raises(MissingArgument):
            ArchiveTranscoder(tools).compress("", ["a"])
        with pytest.raises(MissingArgument):
            ArchiveTranscoder(tools).compress("out.zip", [])

    def test_missing_input_creates_nothing(self, tools, workdir):
        with pytest.raises(InputNotFound) as exc:
            ArchiveTranscoder(tools).compress("out.zip", ["missing_file"])
        assert exc.value.path == "missing_file"
        assert not (workdir / "out.zip").exists()
        assert tools.calls == []

    def test_names_first_missing_input(self, tools, workdir):
        write(workdir / "present")
        with pytest.raises(InputNotFound) as exc:
            ArchiveTranscoder(tools).compress("out.tar", ["present", "gone1", "gone2"])
        assert exc.value.path == "gone1"

    @pytest.mark.parametrize("output", ["out.gz", "out.rar", "out.Z", "out.txt"])
    def test_extract_only_or_unknown_formats(self, tools, workdir, output):
        write(workdir / "f1")
        with pytest.raises(UnsupportedFormat):
            ArchiveTranscoder(tools).compress(output, ["f1"])
        assert tools.calls == []

    def test_compressor_missing(self, workdir):
        runner = FakeRunner(tools={"unzip"})
        write(workdir / "f1")
        with pytest.raises(ToolNotFound) as exc:
            ArchiveTranscoder(runner).compress("out.zip", ["f1"])
        assert exc.value.tool == "zip"

    def test_single_invocation_and_report(self, tools, workdir):
        write(workdir / "f1", "a" * 300)
        write(workdir / "docs" / "f2", "b" * 300)
        tools.script(["zip"], 0, effect=create(workdir / "out.zip", size=200))

        report = ArchiveTranscoder(tools).compress("out.zip", ["f1", "docs"])

        assert tools.calls == [["zip", "-r", "out.zip", "f1", "docs"]]
        assert report.size_bytes == 200
        assert report.size == "200B"
        assert report.ratio == 3.0

    @pytest.mark.parametrize("output,argv", [
        ("a.tar.gz", ["tar", "-czf", "a.tar.gz", "f1"]),
        ("a.tgz", ["tar", "-czf", "a.tgz", "f1"]),
        ("a.tar.bz2", ["tar", "-cjf", "a.tar.bz2", "f1"]),
        ("a.tar.xz", ["tar", "-cJf", "a.tar.xz", "f1"]),
        ("a.tar.zst", ["tar", "--zstd", "-cf", "a.tar.zst", "f1"]),
        ("a.tar", ["tar", "-cf", "a.tar", "f1"]),
        ("a.7z", ["7z", "a", "a.7z", "f1"]),
    ])
    def test_commands(self, tools, workdir, output, argv):
        write(workdir / "f1")
        tools.script([argv[0]], 0, effect=create(workdir / output))
        ArchiveTranscoder(tools).compress(output, ["f1"])
        assert tools.calls == [argv]

    def test_dash_inputs_are_not_options(self, tools, workdir):
        write(workdir / "-rf")
        tools.script(["tar"], 0, effect=create(workdir / "a.tar"))
        ArchiveTranscoder(tools).compress("a.tar", ["-rf"])
        assert tools.calls == [["tar", "-cf", "a.tar", "./-rf"]]

    def test_failure_removes_new_output(self, tools, workdir):
        write(workdir / "f1")
        tools.script(["zip"], 12, effect=create(workdir / "out.zip"))
        with pytest.raises(CompressionFailed) as exc:
            ArchiveTranscoder(tools).compress("out.zip", ["f1"])
        assert exc.value.status == 12
        assert not (workdir / "out.zip").exists()

    def test_failure_keeps_preexisting_output(self, tools, workdir):
        write(workdir / "f1")
        write(workdir / "out.zip", "old")
        tools.script(["zip"], 12)
        with pytest.raises(CompressionFailed):
            ArchiveTranscoder(tools).compress("out.zip", ["f1"])
        assert (workdir / "out.zip").read_text() == "old"


class TestHelpers:

    @pytest.mark.parametrize("num,expected", [
        (0, "0B"), (1023, "1023B"), (1024, "1.0K"), (1536, "1.5K"),
        (10 * 1024, "10K"), (5 * 1024 * 1024, "5.0M"), (3 * 1024 ** 3, "3.0G"),
        (10230, "10K"), (1048575, "1.0M"), (1024 ** 3 - 1, "1.0G"),
    ])
    def test_human_size(self, num, expected):
        assert human_size(num) == expected

    def test_top_level_names(self):
        assert top_level_names(["./pkg/", "./pkg/a", "pkg/b/c"]) == ["pkg"]
        assert top_level_names(["a", "b/", "b/c"]) == ["a", "b"]

    def test_parse_7z_listing(self):
        output = "Path = pkg\nFolder = +\n\nPath = pkg/readme\nSize = 5\n"
        assert parse_listing(match_format("x.7z"), output) == ["pkg", "pkg/readme"]


class TestBackups:

    def test_file_backup_is_timestamped_copy(self, tools, workdir, tmp_path):
        write(workdir / "notes.txt", "keep me")
        stamp = time.mktime((2025, 5, 14, 9, 30, 0, 0, 0, -1))
        record = create_backup(ArchiveTranscoder(tools), "notes.txt", tmp_path / "bak", now=stamp)
        assert record.name == "notes.txt.20250514_093000.bak"
        assert open(record.path).read() == "keep me"
        assert tools.calls == []

    def test_directory_backup_uses_tar_gz(self, tools, workdir, tmp_path):
        write(workdir / "proj" / "main.py")
        stamp = time.mktime((2025, 5, 14, 9, 30, 0, 0, 0, -1))
        target = str(tmp_path / "bak" / "proj_20250514_093000.tar.gz")
        tools.script(["tar"], 0, effect=create(target))
        record = create_backup(ArchiveTranscoder(tools), "proj", tmp_path / "bak", now=stamp)
        assert record.path == target
        assert tools.calls == [["tar", "-czf", target, "proj"]]

    def test_missing_source(self, tools, tmp_path):
        with pytest.raises(InputNotFound):
            create_backup(ArchiveTranscoder(tools), "nope", tmp_path / "bak")

    def test_list_newest_first_with_filter(self, tmp_path):
        bak = tmp_path / "bak"
        for i, name in enumerate(["a.1.bak", "b.2.bak", "a.3.bak"]):
            write(bak / name)
            os.utime(bak / name, (1000 + i, 1000 + i))
        assert [r.name for r in list_backups(bak)] == ["a.3.bak", "b.2.bak", "a.1.bak"]
        assert [r.name for r in list_backups(bak, "a.")] == ["a.3.bak", "a.1.bak"]
        assert list_backups(tmp_path / "missing") == []

    def test_restore_file_backup_drops_timestamp(self, tools, workdir, tmp_path):
        write(tmp_path / "bak" / "notes.txt.20250514_093000.bak", "old notes")
        restored = restore_backup(ArchiveTranscoder(tools), str(tmp_path / "bak"), "notes")
        assert restored == "notes.txt"
        assert (workdir / "notes.txt").read_text() == "old notes"
        assert tools.calls == []

    def test_restore_file_to_destination(self, tools, workdir, tmp_path):
        write(tmp_path / "bak" / "notes.txt.20250514_093000.bak", "old notes")
        (workdir / "keep").mkdir()
        restored = restore_backup(ArchiveTranscoder(tools), str(tmp_path / "bak"),
                                  "notes.txt.20250514_093000.bak", "keep")
        assert restored == os.path.join("keep", "notes.txt.20250514_093000.bak")
        assert (workdir / "keep" / "notes.txt.20250514_093000.bak").exists()

    def test_restore_prefers_newest_match(self, tools, workdir, tmp_path):
        bak = tmp_path / "bak"
        write(bak / "a.txt.20250101_000000.bak", "january")
        write(bak / "a.txt.20250201_000000.bak", "february")
        os.utime(bak / "a.txt.20250101_000000.bak", (1000, 1000))
        os.utime(bak / "a.txt.20250201_000000.bak", (2000, 2000))
        restore_backup(ArchiveTranscoder(tools), str(bak), "a.txt")
        assert (workdir / "a.txt").read_text() == "february"

    def test_restore_directory_backup_extracts(self, tools, workdir, tmp_path):
        archive = write(tmp_path / "bak" / "proj_20250514_093000.tar.gz")
        tools.script(["tar", "-tzf"], 0, stdout="proj/\nproj/main.py\n")
        tools.script(["tar", "-xzf"], 0, effect=create(workdir / "proj" / "main.py"))
        restored = restore_backup(ArchiveTranscoder(tools), str(tmp_path / "bak"), "proj_")
        assert restored == os.path.join(str(workdir), "proj")
        assert tools.calls[-1] == ["tar", "-xzf", archive, "-C", str(workdir)]

    def test_restore_unknown_backup(self, tools, tmp_path):
        (tmp_path / "bak").mkdir()
        with pytest.raises(InputNotFound):
            restore_backup(ArchiveTranscoder(tools), str(tmp_path / "bak"), "nothing")
        with pytest.raises(InputNotFound):
            restore_backup(ArchiveTranscoder(tools), str(tmp_path / "absent"), "nothing")
        with pytest.raises(MissingArgument):
            restore_backup(ArchiveTranscoder(tools), str(tmp_path / "bak"), "")


@pytest.mark.skipif(not have("tar", "gzip"), reason="tar/gzip not installed")
def test_tar_gz_round_trip(workdir):
    write(workdir / "f1", "first file\n")
    write(workdir / "f2", "second file\n" * 50)
    transcoder = ArchiveTranscoder()

    report = transcoder.compress("a.tar.gz", ["f1", "f2"])
    assert report.size_bytes == os.path.getsize("a.tar.gz")

    os.rename("f1", "f1.orig")
    os.rename("f2", "f2.orig")
    extracted = transcoder.extract("a.tar.gz")

    assert sorted(extracted.entries) == ["f1", "f2"]
    assert open("f1", "rb").read() == open("f1.orig", "rb").read()
    assert open("f2", "rb").read() == open("f2.orig", "rb").read()


@pytest.mark.skipif(not have("zip", "unzip"), reason="zip/unzip not installed")
def test_zip_round_trip_into_directory(workdir):
    write(workdir / "docs" / "readme.md", "# docs\n")
    transcoder = ArchiveTranscoder()
    transcoder.compress("docs.zip", ["docs"])
    extracted = transcoder.extract("docs.zip", workdir / "out")
    assert extracted.target_dir == os.path.join(str(workdir / "out"), "docs")
    assert (workdir / "out" / "docs" / "readme.md").read_text() == "# docs\n"


@pytest.mark.skipif(not have("gunzip"), reason="gzip not installed")
def test_gzip_file_with_leading_dash(workdir):
    with gzip.open(str(workdir / "-notes.gz"), "wb") as f:
        f.write(b"remember the milk\n")
    report = ArchiveTranscoder().extract("-notes.gz")
    assert report.entries == ["-notes"]
    assert (workdir / "-notes").read_text() == "remember the milk\n"
