import pytest

from kiln.config import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_CONFIG_YAML,
    load_config,
    load_config_from_str,
    write_default_config,
)
from kiln.errors import ConfigError

PROFILES = """
default:
  paths: {source: site/, target: public/, clean_urls: false}
  context: {title: Dev, author: Ray}
  procs:
    canonicalize: {root: "http://localhost:1337/"}
    js_bundle: {minify: false}
production:
  paths: {target: dist/, clean_urls: true}
  context: {title: Prod}
  procs:
    canonicalize: {root: "https://www.example.com/"}
"""


def test_default_profile_resolves_paths_against_config_dir(tmp_path):
    site = load_config_from_str(PROFILES, tmp_path).resolve()

    assert site.profile_name == "default"
    assert site.project_root == tmp_path
    assert site.source_dir == (tmp_path / "site").resolve()
    assert site.target_dir == (tmp_path / "public").resolve()
    assert site.clean_urls is False
    assert site.context == {"title": "Dev", "author": "Ray"}


def test_selected_profile_is_merged_over_default(tmp_path):
    site = load_config_from_str(PROFILES, tmp_path).resolve("production")

    assert site.source_dir == (tmp_path / "site").resolve()
    assert site.target_dir == (tmp_path / "dist").resolve()
    assert site.clean_urls is True
    assert site.context == {"title": "Prod", "author": "Ray"}
    assert site.procs == {
        "canonicalize": {"root": "https://www.example.com/"},
        "js_bundle": {"minify": False},
    }


def test_procs_keep_file_order(tmp_path):
    config = load_config_from_str(PROFILES, tmp_path)
    assert list(config.profile().procs) == ["canonicalize", "js_bundle"]


def test_missing_profiles(tmp_path):
    config = load_config_from_str(PROFILES, tmp_path)
    with pytest.raises(ConfigError, match="missing selected profile: staging"):
        config.resolve("staging")

    no_default = load_config_from_str("production:\n  paths: {source: s, target: t}\n", tmp_path)
    with pytest.raises(ConfigError, match="missing default profile: default"):
        no_default.resolve("production")


@pytest.mark.parametrize(
    ("paths", "message"),
    [("{target: public/}", "missing paths.source"), ("{source: site/}", "missing paths.target")],
)
def test_missing_paths(tmp_path, paths, message):
    config = load_config_from_str(f"default:\n  paths: {paths}\n", tmp_path)
    with pytest.raises(ConfigError, match=message):
        config.resolve()


@pytest.mark.parametrize(
    "text",
    ["default: [unclosed", "- just\n- a list\n", "default:\n  procs: [markdown]\n"],
)
def test_malformed_configuration(tmp_path, text):
    with pytest.raises(ConfigError):
        load_config_from_str(text, tmp_path)


def test_kits_are_parsed(tmp_path):
    text = PROFILES + "kits:\n  base: {path: vendor/base}\n  theme: {path: ../theme, dest: /}\n"
    config = load_config_from_str(text, tmp_path)

    assert set(config.profiles) == {"default", "production"}
    assert config.kits["base"].dest == "/vendor/kits/base"
    assert config.kits["theme"].dest == "/"
    assert [kit.name for kit in config.resolve().kits] == ["base", "theme"]


def test_kit_without_path_is_rejected(tmp_path):
    with pytest.raises(ConfigError, match="must set a local `path`"):
        load_config_from_str(PROFILES + "kits:\n  base: {dest: /x}\n", tmp_path)


def test_default_config_is_valid(tmp_path):
    site = load_config_from_str(DEFAULT_CONFIG_YAML, tmp_path).resolve()
    assert site.clean_urls is True
    assert "pattern" in site.procs
    assert site.procs["image"] == {"max_width": 1920, "max_height": 1920}

    production = load_config_from_str(DEFAULT_CONFIG_YAML, tmp_path).resolve("production")
    assert production.procs["canonicalize"] == {"root": "https://www.example.com/"}


def test_write_default_config_refuses_to_overwrite(tmp_path):
    path = write_default_config(tmp_path)
    assert path == tmp_path / DEFAULT_CONFIG_FILE
    assert path.read_text() == DEFAULT_CONFIG_YAML

    with pytest.raises(ConfigError, match="already exists"):
        write_default_config(tmp_path)


def test_load_config_from_file(tmp_path):
    (tmp_path / DEFAULT_CONFIG_FILE).write_text(PROFILES)
    config = load_config(tmp_path / DEFAULT_CONFIG_FILE)
    assert config.config_dir == tmp_path.resolve()

    with pytest.raises(ConfigError, match="cannot read"):
        load_config(tmp_path / "missing.yaml")
