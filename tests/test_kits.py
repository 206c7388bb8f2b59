import pytest

from kiln.errors import ConfigError
from kiln.kits import (
    KitConfig,
    LocalKitProvider,
    ResolvedKit,
    collect_kit_assets,
    pre_canonicalize,
)
from kiln.protocols import KitProvider


def test_relative_css_urls_are_mounted():
    css = b'@font-face { src: url("../fonts/font.ttf"); }'
    result = pre_canonicalize("vendor/kits/base/styles/main.css", css)
    assert result == b'@font-face { src: url("/vendor/kits/base/fonts/font.ttf"); }'


def test_kit_mounted_at_site_root():
    kit = ResolvedKit("theme", root=None, dest="/")
    mounted = kit.mounted_path("styles/main.css")
    assert mounted == "styles/main.css"

    result = pre_canonicalize(mounted, b"a { background: url(images/bg.png); }")
    assert result == b"a { background: url(/styles/images/bg.png); }"


def test_html_links_and_absolute_urls():
    html = b'<a href="docs/intro.html">Intro</a><a href="https://example.com">x</a>'
    result = pre_canonicalize("kits/ui/index.html", html)
    assert result == (
        b'<a href="/kits/ui/docs/intro.html">Intro</a><a href="https://example.com">x</a>'
    )


def test_scss_is_rewritten_and_other_types_are_not():
    scss = b"$bg: url('img/a.png');"
    assert pre_canonicalize("kits/ui/site.scss", scss) == b"$bg: url('/kits/ui/img/a.png');"

    script = b'fetch(url("data.json"));'
    assert pre_canonicalize("kits/ui/app.js", script) == script

    binary = b"\x89PNG\r\n\x1a\n"
    assert pre_canonicalize("kits/ui/styles.css", binary) == binary


def test_kit_config_defaults():
    kit = KitConfig.from_dict("base", {"path": "vendor/base"})
    assert kit.dest == "/vendor/kits/base"
    with pytest.raises(ConfigError):
        KitConfig.from_dict("base", None)


def test_local_provider_resolves_kit_directory(tmp_path):
    (tmp_path / "vendor" / "base" / "kit" / "css").mkdir(parents=True)
    (tmp_path / "vendor" / "base" / "kit" / "css" / "a.css").write_text("a { background: url(b.png); }")
    (tmp_path / "vendor" / "base" / "kit" / "b.png").write_bytes(b"\x89PNG")

    provider = LocalKitProvider([KitConfig("base", "vendor/base", "/kits/base/")], tmp_path)
    assert isinstance(provider, KitProvider)

    [kit] = provider.resolve()
    assert kit.root == (tmp_path / "vendor" / "base" / "kit").resolve()
    assert kit.mount_prefix == "kits/base"
    assert collect_kit_assets(kit) == [
        ("kits/base/b.png", b"\x89PNG"),
        ("kits/base/css/a.css", b"a { background: url(/kits/base/css/b.png); }"),
    ]


def test_local_provider_requires_kit_subdirectory(tmp_path):
    (tmp_path / "vendor" / "base").mkdir(parents=True)
    provider = LocalKitProvider([KitConfig("base", "vendor/base", "/kits/base")], tmp_path)
    with pytest.raises(ConfigError, match="has no `kit/` directory"):
        provider.resolve()

    missing = LocalKitProvider([KitConfig("gone", "vendor/gone", "/kits/gone")], tmp_path)
    with pytest.raises(ConfigError, match="directory not found"):
        missing.resolve()
