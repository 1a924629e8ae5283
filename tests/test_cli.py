"""Tests for the command-line interface."""

import json

import pytest
import yaml
from click.testing import CliRunner

from imagedb.cli import cli
from imagedb.config import ImageDbConfig
from imagedb.core import storage


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "imagedb.yml"
    path.write_text(yaml.safe_dump(ImageDbConfig(relative_base=str(tmp_path)).to_dict()))
    return path


@pytest.fixture
def invoke(runner, config_file):
    def _invoke(*args, **kwargs):
        return runner.invoke(cli, ["--config", str(config_file), *map(str, args)], **kwargs)
    return _invoke


@pytest.fixture
def initialized(invoke, tmp_path):
    result = invoke("init")
    assert result.exit_code == 0, result.output
    return tmp_path


class TestBasics:
    """Test help, version and init."""

    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "insert-dir" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_init(self, invoke, tmp_path):
        result = invoke("init")

        assert result.exit_code == 0
        assert "Initialized" in result.output
        assert (tmp_path / "images").is_dir()
        assert (tmp_path / "images.dat").exists()
        assert (tmp_path / "used.dat").exists()

    def test_invalid_config(self, invoke, config_file):
        data = yaml.safe_load(config_file.read_text())
        data["name_format"] = "no-number"
        config_file.write_text(yaml.safe_dump(data))

        result = invoke("show-used")
        assert result.exit_code == 1
        assert "name_format" in result.output


class TestImages:
    """Test add, lookup and remove."""

    def test_add_and_lookup(self, invoke, initialized, make_image):
        source = make_image(initialized / "photo.png", "hgrad")
        query = make_image(initialized / "query.png", "hgrad")

        result = invoke("add", source)
        assert result.exit_code == 0
        assert "image1.png" in result.output

        result = invoke("lookup", query, 2)
        assert result.exit_code == 0
        assert "image1.png" in result.output

    def test_lookup_reports_closest(self, invoke, initialized, make_image):
        invoke("add", make_image(initialized / "photo.png", "hgrad"))

        result = invoke("lookup", make_image(initialized / "query.png", "vgrad"))

        assert "no images within the tolerance" in result.output
        assert "Distance: 8" in result.output

    def test_lookup_empty_tree(self, invoke, initialized, make_image):
        result = invoke("lookup", make_image(initialized / "query.png", "vgrad"), 3)
        assert "The tree is empty." in result.output

    def test_add_missing_file(self, invoke, initialized):
        result = invoke("add", initialized / "missing.png")
        assert result.exit_code == 1
        assert "File doesn't exist" in result.output

    def test_remove(self, invoke, initialized, make_image):
        invoke("add", make_image(initialized / "photo.png", "hgrad"))
        stored = initialized / "images" / "image1.png"

        result = invoke("remove", stored)
        assert "Removed file" in result.output

        result = invoke("remove", stored)
        assert "File was not present in database." in result.output

    def test_index(self, invoke, initialized, make_image):
        make_image(initialized / "batch" / "a.png", "hgrad")
        make_image(initialized / "batch" / "b.png", "vgrad")

        result = invoke("index", initialized / "batch")

        assert result.exit_code == 0
        assert "Indexed 2 files" in result.output
        assert len(storage.load_tree(initialized / "images.dat")) == 2


class TestInsert:
    """Test interactive insertion."""

    def test_insert_confirmed(self, invoke, initialized, make_image):
        invoke("add", make_image(initialized / "a.png", "hgrad"))
        query = make_image(initialized / "b.png", "vgrad")

        result = invoke("insert", query, input="y\n")

        assert result.exit_code == 0
        assert "Closest distance: 8" in result.output
        assert not query.exists()

    def test_insert_declined(self, invoke, initialized, make_image):
        invoke("add", make_image(initialized / "a.png", "hgrad"))
        query = make_image(initialized / "b.png", "vgrad")

        invoke("insert", query, input="n\n")
        assert query.exists()

    def test_insert_dir(self, invoke, initialized, make_image):
        invoke("add", make_image(initialized / "seed.png", "hgrad"))
        make_image(initialized / "batch" / "copy.png", "hgrad")
        make_image(initialized / "batch" / "other.png", "vgrad")

        result = invoke("insert-dir", initialized / "batch", 8, 0)

        assert result.exit_code == 0
        assert (initialized / "batch" / "copy.png").exists()
        assert not (initialized / "batch" / "other.png").exists()
        assert len(storage.load_tree(initialized / "images.dat")) == 2

    def test_insert_dir_bad_auto_deny(self, invoke, initialized):
        (initialized / "batch").mkdir()
        result = invoke("insert-dir", initialized / "batch", 2, 5)

        assert result.exit_code == 1
        assert "Auto-deny must be less than tolerance." in result.output


class TestUsage:
    """Test usage commands."""

    def test_use_and_show(self, invoke, initialized, make_image):
        invoke("add", make_image(initialized / "a.png", "hgrad"))
        stored = initialized / "images" / "image1.png"

        assert "Marked image1.png as used." in invoke("use", stored).output
        assert "File has already been used." in invoke("use", stored).output
        assert "image1.png" in invoke("show-used").output

        assert "Removed file from used." in invoke("remove-use", stored).output
        assert "No files are used." in invoke("show-used").output

    def test_choose(self, invoke, initialized, make_image):
        assert "There are no unused images." in invoke("choose").output

        invoke("add", make_image(initialized / "a.png", "hgrad"))
        result = invoke("choose")
        assert "Chosen image:" in result.output
        assert "image1.png" in result.output
        assert storage.load_usage(initialized / "used.dat") == {"image1.png"}

    def test_use_all(self, invoke, initialized, make_image):
        make_image(initialized / "batch" / "a.png", "hgrad")
        make_image(initialized / "batch" / "b.png", "vgrad")

        result = invoke("use-all", initialized / "batch")
        assert "Marked 2 of 2 files as used" in result.output


class TestBackupAndJson:
    """Test backup and show-json."""

    def test_backup(self, invoke, initialized):
        result = invoke("backup", "db")
        assert result.exit_code == 0
        assert (initialized / "images.dat.bak").exists()

        invoke("backup", "used")
        assert json.loads((initialized / "used.dat.bak").read_text()) == []

    def test_backup_invalid_choice(self, invoke, initialized):
        assert invoke("backup", "all").exit_code == 2

    def test_show_json(self, invoke, initialized, make_image):
        invoke("add", make_image(initialized / "a.png", "hgrad"))

        result = invoke("show-json")
        text = result.output[result.output.index("{"):]
        assert json.loads(text)["root"]["path"] == "image1.png"


class TestConfigCommands:
    """Test config show and set."""

    def test_config_show(self, invoke):
        result = invoke("config", "show")
        assert result.exit_code == 0
        assert "image_folder" in result.output

    def test_config_set(self, invoke, config_file):
        result = invoke("config", "set", "image_folder", "pictures")

        assert result.exit_code == 0
        assert yaml.safe_load(config_file.read_text())["image_folder"] == "pictures"

    def test_config_set_unknown(self, invoke):
        result = invoke("config", "set", "colour", "blue")
        assert result.exit_code == 1

    def test_config_set_invalid(self, invoke, config_file):
        result = invoke("config", "set", "name_format", "plain")

        assert result.exit_code == 1
        assert yaml.safe_load(config_file.read_text())["name_format"] == "image{num}{ext}"

    def test_config_set_keeps_env_overrides_out_of_file(self, invoke, config_file, monkeypatch):
        monkeypatch.setenv("IMAGEDB_DATABASE", "scratch.dat")

        result = invoke("config", "set", "show_json", "true")

        assert result.exit_code == 0
        saved = yaml.safe_load(config_file.read_text())
        assert saved["database"] == "images.dat"
        assert saved["show_json"] is True

    def test_init_saves_file_values_only(self, runner, tmp_path, monkeypatch):
        monkeypatch.setenv("IMAGEDB_RELATIVE_BASE", str(tmp_path))
        config_file = tmp_path / "fresh.yml"

        result = runner.invoke(cli, ["--config", str(config_file), "--show-json", "init"])

        assert result.exit_code == 0, result.output
        saved = yaml.safe_load(config_file.read_text())
        assert saved["show_json"] is False
        assert saved["relative_base"] is None
        assert (tmp_path / "images.dat.json").exists()
