"""Unit tests for ProjectFileWriter."""

import pytest

from codestream.exceptions import FileWriteError
from codestream.storage.file_writer import ProjectFileWriter


class TestNormalizePath:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("App.js", "src/App.js"),
            ("src/App.js", "src/App.js"),
            ("./pages/Home.js", "src/pages/Home.js"),
            ("  components\\Nav.js ", "src/components/Nav.js"),
            ("srcfiles/a.txt", "src/srcfiles/a.txt"),
        ],
    )
    def test_prefixed(self, path, expected):
        assert ProjectFileWriter("/project").normalize_path(path) == expected

    def test_empty_prefix(self):
        assert ProjectFileWriter("/project", path_prefix="").normalize_path("a/b.txt") == "a/b.txt"

    @pytest.mark.parametrize("path", ["", "   ", "/etc/passwd", "../outside.txt", "src/../../x"])
    def test_rejected(self, path):
        with pytest.raises(FileWriteError):
            ProjectFileWriter("/project").normalize_path(path)


class TestWrite:
    @pytest.mark.asyncio
    async def test_creates_parent_directories(self, tmp_path):
        writer = ProjectFileWriter(tmp_path)

        written = await writer.write("pages/Home.js", "export default 1;\n")

        assert written == "src/pages/Home.js"
        assert (tmp_path / "src" / "pages" / "Home.js").read_text() == "export default 1;\n"

    @pytest.mark.asyncio
    async def test_overwrites_existing_file(self, tmp_path):
        writer = ProjectFileWriter(tmp_path)
        await writer.write("a.txt", "old")

        await writer.write("a.txt", "new")

        assert (tmp_path / "src" / "a.txt").read_text() == "new"

    @pytest.mark.asyncio
    async def test_os_error_wrapped(self, tmp_path):
        """A path blocked by an existing file surfaces as FileWriteError."""
        (tmp_path / "src").write_text("not a directory")
        writer = ProjectFileWriter(tmp_path)

        with pytest.raises(FileWriteError) as exc_info:
            await writer.write("a.txt", "x")

        assert exc_info.value.path == "src/a.txt"
