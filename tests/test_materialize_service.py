"""
Tests for writing generated files into the scaffold and setting the page title.
"""

import os
from pathlib import Path

import pytest

from robosite.core.exceptions import GenerationError
from robosite.services.materialize_service import (
    DEFAULT_SITE_TITLE,
    materialize,
    normalize_generated_path,
    update_site_title,
    write_generated_files,
)


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    project = tmp_path / "work" / "project"
    (project / "src").mkdir(parents=True)
    (project / "index.html").write_text(
        "<html><head><title>__SITE_TITLE__</title></head>"
        "<body><!-- __SITE_TITLE__ --></body></html>",
        encoding="utf-8",
    )
    return project


def _all_files(root: Path):
    return sorted(p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file())


class TestNormalizeGeneratedPath:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("src/App.jsx", "src/App.jsx"),
            ("  src/App.jsx  ", "src/App.jsx"),
            ("src\\components\\Hero.jsx", "src/components/Hero.jsx"),
            ("src/../src/App.jsx", "src/App.jsx"),
            ("./public/logo.svg", "public/logo.svg"),
            ("../../etc/passwd", None),
            ("src/../../outside.js", None),
            ("/abs/path.js", None),
            ("C:/Windows/evil.js", None),
            ("", None),
            (".", None),
            (None, None),
            (42, None),
        ],
    )
    def test_cases(self, raw, expected):
        assert normalize_generated_path(raw) == expected


class TestWriteGeneratedFiles:
    def test_only_allowed_entries_are_written(self, project_dir: Path):
        files = [
            {"path": "../../etc/passwd", "content": "x"},
            {"path": "/abs.js", "content": "x"},
            {"path": "src/App.jsx", "content": "A"},
            {"path": "public/logo.svg", "content": "<svg/>"},
            {"path": "package.json", "content": "{}"},
            {"path": "vite.config.js", "content": "export default {}"},
            {"path": "src/Empty.jsx", "content": "   "},
            {"path": "src/Null.jsx", "content": None},
            {"content": "no path"},
            "not an object",
        ]

        written = write_generated_files(project_dir, files)

        assert written == ["src/App.jsx", "public/logo.svg"]
        assert (project_dir / "src" / "App.jsx").read_text(encoding="utf-8") == "A"
        assert (project_dir / "public" / "logo.svg").read_text(encoding="utf-8") == "<svg/>"
        assert _all_files(project_dir) == ["index.html", "public/logo.svg", "src/App.jsx"]
        assert _all_files(project_dir.parent) == [
            "project/index.html",
            "project/public/logo.svg",
            "project/src/App.jsx",
        ]

    def test_nested_directories_created(self, project_dir: Path):
        written = write_generated_files(project_dir, [{"path": "src/components/ui/Button.jsx", "content": "b"}])
        assert written == ["src/components/ui/Button.jsx"]
        assert (project_dir / "src" / "components" / "ui" / "Button.jsx").exists()

    def test_later_entry_overwrites_earlier(self, project_dir: Path):
        write_generated_files(project_dir, [
            {"path": "src/App.jsx", "content": "first"},
            {"path": "src/App.jsx", "content": "second"},
        ])
        assert (project_dir / "src" / "App.jsx").read_text(encoding="utf-8") == "second"

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
    def test_symlinked_namespace_cannot_escape(self, project_dir: Path, tmp_path: Path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (project_dir / "public").symlink_to(outside, target_is_directory=True)

        written = write_generated_files(project_dir, [{"path": "public/evil.js", "content": "x"}])

        assert written == []
        assert list(outside.iterdir()) == []

    @pytest.mark.parametrize(
        "entries",
        [
            [{"path": "src/assets/", "content": "oops"}, {"path": "src/assets/logo.svg", "content": "<svg/>"}],
            [{"path": "src/assets/logo.svg", "content": "<svg/>"}, {"path": "src/assets", "content": "oops"}],
        ],
    )
    def test_file_directory_collision_is_skipped(self, project_dir: Path, entries):
        files = entries + [{"path": "src/App.jsx", "content": "A"}]
        written = write_generated_files(project_dir, files)
        assert len(written) == 2
        assert written[-1] == "src/App.jsx"

    def test_non_list_rejected(self, project_dir: Path):
        with pytest.raises(GenerationError, match="missing the files array"):
            write_generated_files(project_dir, {"path": "src/App.jsx"})


class TestSiteTitle:
    def test_first_placeholder_replaced_and_escaped(self, project_dir: Path):
        update_site_title(project_dir, "Tom & Jerry <Bakery>")
        page = (project_dir / "index.html").read_text(encoding="utf-8")
        assert "<title>Tom &amp; Jerry &lt;Bakery&gt;</title>" in page
        # only the first occurrence
        assert "<!-- __SITE_TITLE__ -->" in page

    def test_missing_title_leaves_page_untouched(self, project_dir: Path):
        before = (project_dir / "index.html").read_text(encoding="utf-8")
        update_site_title(project_dir, None)
        assert (project_dir / "index.html").read_text(encoding="utf-8") == before

    def test_materialize_falls_back_to_client_id(self, project_dir: Path):
        written = materialize(project_dir, [{"path": "src/App.jsx", "content": "A"}], None, fallback_title="acme-corp")
        assert written == ["src/App.jsx"]
        assert "<title>acme-corp</title>" in (project_dir / "index.html").read_text(encoding="utf-8")

    def test_materialize_default_title(self, project_dir: Path):
        materialize(project_dir, [], None)
        assert f"<title>{DEFAULT_SITE_TITLE}</title>" in (project_dir / "index.html").read_text(encoding="utf-8")
