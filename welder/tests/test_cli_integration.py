"""
Integration tests for the welder CLI.
Tests command-line interface functionality and argument parsing.
"""

import os
import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch
from typer.testing import CliRunner
from PIL import Image

from .. import __version__
from ..cli import app


class TestCLIIntegration:
    """Test CLI integration and command functionality."""

    def setup_method(self):
        """Set up test environment before each test."""
        self.runner = CliRunner()
        self.temp_dir = Path(tempfile.mkdtemp())
        self.env_patch = patch.dict(os.environ)
        self.env_patch.start()
        for key in [k for k in os.environ if k.startswith("WELDER_")]:
            del os.environ[key]

    def teardown_method(self):
        """Clean up test environment after each test."""
        self.env_patch.stop()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    @staticmethod
    def text(result) -> str:
        """Output with Rich line wrapping collapsed."""
        return " ".join(result.stdout.split())

    def invoke(self, *args, **kwargs):
        return self.runner.invoke(app, ["-C", str(self.temp_dir), *args], **kwargs)

    def create_project(self, extra: str = "") -> Path:
        """Create a configured project with two source sprites."""
        src = self.temp_dir / "src"
        src.mkdir(exist_ok=True)
        Image.new('RGBA', (8, 8), (255, 0, 0, 255)).save(src / "a.png")
        Image.new('RGBA', (8, 4), (0, 0, 255, 255)).save(src / "b.png")

        config_path = self.temp_dir / "welder.toml"
        config_path.write_text(
            '[pack]\nname = "Test Pack"\nsemver = "0.2.0"\n\n'
            '[publish]\ntarget = "me/test-pack"\n' + extra
        )
        return config_path

    def test_cli_help(self):
        """Test that CLI help command works."""
        result = self.runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "ship-ready asset packs" in self.text(result)

    def test_version(self):
        result = self.runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in self.text(result)

    def test_build_command_help(self):
        result = self.runner.invoke(app, ["build", "--help"])
        assert result.exit_code == 0
        assert "--dry-run" in self.text(result)

    def test_init_scaffolds_project(self):
        result = self.invoke("init", "--name", "Tiny Dungeon", "--author", "Jo")

        assert result.exit_code == 0
        config_text = (self.temp_dir / "welder.toml").read_text()
        assert 'name = "Tiny Dungeon"' in config_text
        assert 'slug = "tiny-dungeon"' in config_text
        assert (self.temp_dir / "src").is_dir()
        assert (self.temp_dir / "dist").is_dir()

        # The scaffolded file is a valid configuration
        result = self.invoke("build", "--dry-run")
        assert result.exit_code == 0

    def test_init_refuses_to_overwrite(self):
        self.create_project()

        result = self.invoke("init")
        assert result.exit_code == 1
        assert "already exists" in self.text(result)

        result = self.invoke("init", "--yes")
        assert result.exit_code == 0

    def test_doctor(self):
        self.create_project()

        result = self.invoke("doctor")
        assert result.exit_code == 0
        assert "Configuration" in self.text(result)

    def test_doctor_reports_missing_input(self):
        self.create_project()
        shutil.rmtree(self.temp_dir / "src")

        result = self.invoke("doctor")
        assert result.exit_code == 1

    def test_build(self):
        self.create_project()

        result = self.invoke("build", "--res", "1,2")

        assert result.exit_code == 0
        assert "Wrote 4 files" in self.text(result)
        assert (self.temp_dir / "dist" / "exports" / "2x" / "b.png").exists()

    def test_build_dry_run(self):
        self.create_project()

        result = self.invoke("build", "--dry-run")

        assert result.exit_code == 0
        assert "DRY RUN: Would write 6 files" in self.text(result)
        assert not (self.temp_dir / "dist").exists()

    def test_build_clean(self):
        self.create_project()
        stale = self.temp_dir / "dist" / "exports" / "old.png"
        stale.parent.mkdir(parents=True)
        stale.write_bytes(b"x")

        result = self.invoke("build", "--clean")

        assert result.exit_code == 0
        assert "Removed 1 stale files" in self.text(result)
        assert not stale.exists()

    def test_build_invalid_resolutions(self):
        self.create_project()

        result = self.invoke("build", "--res", "1,zero")
        assert result.exit_code == 1

    def test_build_with_profile(self):
        self.create_project("\n[profiles.hd.build]\nresolutions = [8]\n")

        result = self.invoke("build", "--profile", "hd")

        assert result.exit_code == 0
        assert (self.temp_dir / "dist" / "exports" / "8x" / "a.png").exists()
        assert not (self.temp_dir / "dist" / "exports" / "1x").exists()

    def test_unknown_profile(self):
        self.create_project()

        result = self.invoke("build", "--profile", "nope")
        assert result.exit_code == 1
        assert "unknown profile" in self.text(result)

    def test_invalid_config(self):
        self.create_project("\n[grid]\ncolumns = 0\n")

        result = self.invoke("build")
        assert result.exit_code == 1
        assert "grid.columns" in self.text(result)

    def test_build_missing_input(self):
        (self.temp_dir / "welder.toml").write_text('[paths]\ninput = "art"\n')

        result = self.invoke("build")
        assert result.exit_code == 1
        assert "Build failed" in self.text(result)

    def test_preview(self):
        self.create_project()

        result = self.invoke("preview", "--style", "grid")

        assert result.exit_code == 0
        assert (self.temp_dir / "dist" / "previews" / "grid.png").exists()
        assert not (self.temp_dir / "dist" / "previews" / "sheet.png").exists()

    def test_preview_dry_run(self):
        self.create_project()

        result = self.invoke("preview", "--dry-run")

        assert result.exit_code == 0
        assert "DRY RUN" in self.text(result)
        assert not (self.temp_dir / "dist").exists()

    def test_preview_invalid_style(self):
        self.create_project()

        result = self.invoke("preview", "--style", "mosaic")
        assert result.exit_code == 1
        assert "Invalid style" in self.text(result)

    def test_package(self):
        self.create_project()
        self.invoke("build")

        result = self.invoke("package")

        assert result.exit_code == 0
        assert (self.temp_dir / "dist" / "package" / "test-pack-0.2.0.zip").exists()

    def test_package_without_build(self):
        self.create_project()

        result = self.invoke("package")
        assert result.exit_code == 1
        assert "Packaging failed" in self.text(result)

    def test_publish_dry_run(self):
        self.create_project()

        result = self.invoke("publish", "--dry-run", "--channel", "beta")

        assert result.exit_code == 0
        assert "Would run: butler push" in self.text(result)
        assert "me/test-pack:beta" in self.text(result)

    def test_publish_declined(self):
        self.create_project()

        result = self.invoke("publish", input="n\n")
        assert result.exit_code == 1
        assert "Aborted" in self.text(result)

    @patch('welder.publish.find_butler', return_value=None)
    def test_publish_without_butler(self, _find):
        self.create_project()
        self.invoke("build")

        result = self.invoke("publish", "--yes")
        assert result.exit_code == 1
        assert "butler not found" in self.text(result)
