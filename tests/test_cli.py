"""Tests for the krems-publisher command line."""

import yaml
from typer.testing import CliRunner

from krems_publisher.cli import app

runner = CliRunner()


def invoke(root, *args):
    return runner.invoke(app, ["--root", str(root), *args])


class TestSettingsCommands:
    """Tests for `settings show` and `settings set`."""

    def test_set_persists_and_validates(self, tmp_path):
        result = invoke(tmp_path, "settings", "set", "repository-url", "git@github.com:jane/site.git")

        assert result.exit_code == 0
        assert "URL format is valid." in result.output
        data = yaml.safe_load((tmp_path / ".obsidian" / "plugins" / "krems-publisher" / "data.yaml").read_text())
        assert data["repository_url"] == "git@github.com:jane/site.git"

    def test_invalid_value_is_saved_with_warning(self, tmp_path):
        result = invoke(tmp_path, "settings", "set", "port", "80")

        assert result.exit_code == 0
        assert "Invalid port" in result.output

    def test_unknown_key_fails(self, tmp_path):
        result = invoke(tmp_path, "settings", "set", "colour", "blue")
        assert result.exit_code == 1

    def test_show_masks_token(self, tmp_path):
        invoke(tmp_path, "settings", "set", "token", "ghp_hidden")

        result = invoke(tmp_path, "settings", "show")

        assert result.exit_code == 0
        assert "ghp_hidden" not in result.output
        assert "token: <redacted>" in result.output


class TestActionCommands:
    """Action commands exit non-zero when the plugin reports an error."""

    def test_publish_without_settings(self, tmp_path):
        result = invoke(tmp_path, "publish")
        assert result.exit_code == 1

    def test_clone_without_settings(self, tmp_path):
        result = invoke(tmp_path, "clone")
        assert result.exit_code == 1

    def test_broken_settings_file(self, tmp_path):
        settings_file = tmp_path / "broken.yaml"
        settings_file.write_text("- not\n- a mapping\n")

        result = runner.invoke(app, ["--root", str(tmp_path), "--settings", str(settings_file), "publish"])

        assert result.exit_code == 1
