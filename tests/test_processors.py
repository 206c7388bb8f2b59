import io
import subprocess

import pytest
from PIL import Image

from kiln.asset import Asset
from kiln.asset_processors import (
    CanonicalizeProcessor,
    FaviconProcessor,
    ImageResizeProcessor,
    JsBundleProcessor,
    MarkdownProcessor,
    MinifyHtmlProcessor,
    MinifyJsProcessor,
    ProcessorConfig,
    ProcessorKind,
    ScssProcessor,
    TemplateProcessor,
    create_processor,
)
from kiln.context import SOURCE_ROOT_KEY, Context
from kiln.errors import CompilationError, MalformedError
from kiln.html_utils import canonicalize_css, canonicalize_html, canonicalize_url
from kiln.media_types import CSS, HTML, ICO, JAVASCRIPT, MARKDOWN, PNG
from kiln.renderers import generate_heading_id


def _png(width, height, color=(255, 0, 0)):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def _fake_tool(calls, stdout="", returncode=0, stderr=""):
    def fake_run(cmd, **kwargs):
        calls.append((cmd, kwargs))
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)

    return fake_run


# --- Template Tests ---


def test_template_merges_frontmatter_into_context():
    context = Context(site="Kiln")
    asset = Asset("page.html", b"title: Hi\n***\n<h1>~{ title }</h1> ~{ site }")
    TemplateProcessor().process(context, asset)

    assert asset.as_text() == "<h1>Hi</h1> Kiln"
    assert context["title"] == "Hi"


def test_template_skips_binary_and_empty_assets():
    image = Asset("x.png", _png(2, 2))
    original = image.as_bytes()
    TemplateProcessor().process(Context(), image)
    assert image.as_bytes() == original

    empty = Asset("empty.html", b"")
    TemplateProcessor().process(Context(), empty)
    assert empty.is_empty


# --- Markdown Tests ---


def test_markdown_renders_html_with_heading_ids():
    asset = Asset("post.md", b"# Hello World\n\n## Hello World\n\nSome *text*.")
    MarkdownProcessor().process(Context(), asset)

    html = asset.as_text()
    assert asset.media_type == HTML
    assert '<h1 id="hello-world">Hello World</h1>' in html
    assert '<h2 id="hello-world-1">Hello World</h2>' in html
    assert "<em>text</em>" in html


def test_markdown_highlights_code_and_keeps_raw_html():
    source = "<div class=\"note\">raw</div>\n\n```python\nprint('hi')\n```\n"
    asset = Asset("code.md", source.encode())
    MarkdownProcessor().process(Context(), asset)

    html = asset.as_text()
    assert '<div class="note">raw</div>' in html
    assert 'class="highlight"' in html


def test_markdown_unknown_language_falls_back_to_plain_code():
    asset = Asset("code.md", b"```notalanguage\na < b\n```\n")
    MarkdownProcessor().process(Context(), asset)
    assert '<code class="language-notalanguage">a &lt; b' in asset.as_text()


def test_markdown_skips_other_types():
    asset = Asset("page.html", b"# not markdown")
    MarkdownProcessor().process(Context(), asset)
    assert asset.as_text() == "# not markdown"
    assert asset.media_type == HTML


def test_generate_heading_id():
    assert generate_heading_id("Getting <em>Started</em>!") == "getting-started"
    assert generate_heading_id("  Spaces -- and  dashes ") == "spaces-and-dashes"


# --- Canonicalize Tests ---


@pytest.mark.parametrize(
    ("url", "asset_path", "expected"),
    [
        ("../styles.css", "/path/to/file.html", "https://example.com/path/styles.css"),
        ("styles.css", "/path/to/file.html", "https://example.com/path/to/styles.css"),
        ("/about", "blog/post.html", "https://example.com/about"),
        ("img/a.png", "index.html", "https://example.com/img/a.png"),
        ("https://other.com/x", "index.html", "https://other.com/x"),
        ("//cdn.example.com/lib.js", "index.html", "//cdn.example.com/lib.js"),
        ("mailto:me@example.com", "index.html", "mailto:me@example.com"),
        ("tel:+15555555", "index.html", "tel:+15555555"),
        ("#top", "index.html", "#top"),
        ("data:image/png;base64,xx", "index.html", "data:image/png;base64,xx"),
        ("javascript:void(0)", "index.html", "javascript:void(0)"),
        ("", "index.html", ""),
    ],
)
def test_canonicalize_url(url, asset_path, expected):
    assert canonicalize_url(url, asset_path, "https://example.com") == expected


def test_canonicalize_html_rewrites_attributes():
    html = (
        '<a href="../about.html">About</a>'
        "<img src='/img/a.png'>"
        '<a href="https://x.com">x</a>'
        '<div data-src="keep.png"></div>'
    )
    result = canonicalize_html(html, "blog/post.html", "https://example.com/")

    assert 'href="https://example.com/about.html"' in result
    assert "src='https://example.com/img/a.png'" in result
    assert 'href="https://x.com"' in result
    assert 'data-src="keep.png"' in result


def test_canonicalize_html_rewrites_inline_style_urls():
    html = "<div style=\"background: url('bg.png')\"></div>"
    result = canonicalize_html(html, "index.html", "https://example.com/")
    assert "url('https://example.com/bg.png')" in result


def test_canonicalize_html_leaves_script_bodies_alone():
    html = '<script src="app.js">el.src="x.js";</script>'
    result = canonicalize_html(html, "index.html", "https://example.com/")
    assert result == '<script src="https://example.com/app.js">el.src="x.js";</script>'


def test_canonicalize_css():
    css = 'body { background: url(img/bg.png); } @font-face { src: url("/f.woff"); }'
    result = canonicalize_css(css, "css/site.css", "https://example.com/")
    assert "url(https://example.com/css/img/bg.png)" in result
    assert 'url("https://example.com/f.woff")' in result


def test_canonicalize_processor_only_touches_html():
    processor = CanonicalizeProcessor("https://example.com/")
    page = Asset("index.html", b'<a href="about.html">About</a>')
    processor.process(Context(), page)
    assert page.as_text() == '<a href="https://example.com/about.html">About</a>'

    stylesheet = Asset("site.css", b"a { background: url(bg.png); }")
    processor.process(Context(), stylesheet)
    assert stylesheet.as_text() == "a { background: url(bg.png); }"


# --- Minify Tests ---


def test_minify_js_strips_comments_and_whitespace():
    source = "function  hello ( name ) {\n  // greet\n  return name;\n}\n"
    asset = Asset("app.js", source.encode())
    MinifyJsProcessor().process(Context(), asset)

    result = asset.as_text()
    assert "// greet" not in result
    assert len(result) < len(source)
    assert "return name" in result


def test_minify_js_skips_min_files():
    source = "var  a = 1;  // keep\n"
    asset = Asset("vendor/lib.min.js", source.encode())
    MinifyJsProcessor().process(Context(), asset)
    assert asset.as_text() == source


def test_minify_html_shrinks_markup():
    source = "<html>\n  <body>\n    <p>  Hello  </p>\n  </body>\n</html>\n"
    asset = Asset("index.html", source.encode())
    MinifyHtmlProcessor().process(Context(), asset)

    result = asset.as_text()
    assert "Hello" in result
    assert len(result) < len(source)


def test_minifiers_skip_empty_assets():
    for processor, path in ((MinifyHtmlProcessor(), "a.html"), (MinifyJsProcessor(), "a.js")):
        asset = Asset(path, b"")
        processor.process(Context(), asset)
        assert asset.is_empty


# --- Image Tests ---


def test_image_resize_downscales_and_keeps_format():
    asset = Asset("photos/wide.png", _png(400, 200))
    ImageResizeProcessor(max_width=100, max_height=100).process(Context(), asset)

    with Image.open(io.BytesIO(asset.as_bytes())) as img:
        assert img.size == (100, 50)
        assert img.format == "PNG"
    assert asset.media_type == PNG


def test_image_resize_leaves_small_images_untouched():
    original = _png(50, 50)
    asset = Asset("small.png", original)
    ImageResizeProcessor(max_width=100, max_height=100).process(Context(), asset)
    assert asset.as_bytes() == original


def test_image_resize_rejects_corrupt_images():
    asset = Asset("broken.png", b"\x89PNG\r\n\x1a\nnot really")
    with pytest.raises(MalformedError):
        ImageResizeProcessor(max_width=1, max_height=1).process(Context(), asset)


def test_favicon_is_converted_to_ico():
    asset = Asset("favicon.png", _png(64, 64))
    FaviconProcessor().process(Context(), asset)

    assert asset.media_type == ICO
    with Image.open(io.BytesIO(asset.as_bytes())) as img:
        assert img.format == "ICO"
        assert img.size == (32, 32)


def test_favicon_ignores_other_pngs():
    original = _png(64, 64)
    asset = Asset("logo.png", original)
    FaviconProcessor().process(Context(), asset)
    assert asset.media_type == PNG
    assert asset.as_bytes() == original


# --- External Tool Tests ---


def test_scss_compiles_with_sass(tmp_path, monkeypatch):
    (tmp_path / "styles").mkdir()
    calls = []
    monkeypatch.setattr("kiln.asset_processors.find_executable", lambda name, root: f"/bin/{name}")
    monkeypatch.setattr(subprocess, "run", _fake_tool(calls, stdout="a{color:red}"))

    context = Context({SOURCE_ROOT_KEY: str(tmp_path)})
    asset = Asset("styles/site.scss", b"$c: red; a { color: $c; }")
    ScssProcessor().process(context, asset)

    assert asset.media_type == CSS
    assert asset.as_text() == "a{color:red}"
    cmd, kwargs = calls[0]
    assert cmd[:3] == ["/bin/sass", "--stdin", "--no-source-map"]
    assert f"--load-path={tmp_path / 'styles'}" in cmd
    assert kwargs["input"] == "$c: red; a { color: $c; }"
    assert kwargs["cwd"] == tmp_path / "styles"


def test_scss_without_sass_is_a_compilation_error(monkeypatch):
    monkeypatch.setattr("kiln.asset_processors.find_executable", lambda name, root: None)
    with pytest.raises(CompilationError, match="sass executable not found"):
        ScssProcessor().process(Context(), Asset("site.scss", b"a {}"))


def test_scss_failure_reports_stderr(monkeypatch):
    monkeypatch.setattr("kiln.asset_processors.find_executable", lambda name, root: "/bin/sass")
    monkeypatch.setattr(subprocess, "run", _fake_tool([], returncode=65, stderr="Error: bad\n"))
    with pytest.raises(CompilationError, match="sass failed: Error: bad"):
        ScssProcessor().process(Context(), Asset("site.scss", b"a {"))


def test_js_bundle_runs_esbuild(monkeypatch):
    calls = []
    monkeypatch.setattr("kiln.asset_processors.find_executable", lambda name, root: "/bin/esbuild")
    monkeypatch.setattr(subprocess, "run", _fake_tool(calls, stdout="(()=>{})();\n"))

    asset = Asset("js/main.js", b"import './dep.js';")
    JsBundleProcessor(minify=True).process(Context(), asset)

    assert asset.as_text() == "(()=>{})();\n"
    cmd, kwargs = calls[0]
    assert cmd == [
        "/bin/esbuild",
        "--bundle",
        "--sourcefile=main.js",
        "--log-level=error",
        "--minify",
    ]
    assert kwargs["cwd"] is None


def test_external_tools_skip_other_types(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("tool should not run")

    monkeypatch.setattr(subprocess, "run", fail)
    asset = Asset("page.html", b"<p>x</p>")
    ScssProcessor().process(Context(), asset)
    JsBundleProcessor().process(Context(), asset)
    assert asset.as_text() == "<p>x</p>"


# --- Factory Tests ---


def test_create_processor_for_each_kind():
    config = ProcessorConfig.from_dict({"root": "https://example.com/", "minify": True})
    expected = {
        ProcessorKind.TEMPLATE: TemplateProcessor,
        ProcessorKind.MARKDOWN: MarkdownProcessor,
        ProcessorKind.SCSS: ScssProcessor,
        ProcessorKind.JS_BUNDLE: JsBundleProcessor,
        ProcessorKind.IMAGE: ImageResizeProcessor,
        ProcessorKind.FAVICON: FaviconProcessor,
        ProcessorKind.CANONICALIZE: CanonicalizeProcessor,
        ProcessorKind.MINIFY_HTML: MinifyHtmlProcessor,
        ProcessorKind.MINIFY_JS: MinifyJsProcessor,
    }
    for kind, cls in expected.items():
        assert isinstance(create_processor(kind, config), cls)
    assert create_processor(ProcessorKind.PATTERN, config) is None
    assert create_processor(ProcessorKind.JS_BUNDLE, config).minify is True
    assert create_processor(ProcessorKind.CANONICALIZE, config).root == "https://example.com/"


def test_processor_config_defaults_and_coercion():
    config = ProcessorConfig.from_dict({"max_width": "800"})
    assert config.max_width == 800
    assert config.max_height == 1920
    assert config.canonical_root == "http://localhost/"
    assert ProcessorKind.from_name("bogus") is None
    assert ProcessorKind.from_name("minify_js") is ProcessorKind.MINIFY_JS


def test_markdown_media_type_is_text():
    assert Asset("x.md", b"#").media_type == MARKDOWN
    assert JAVASCRIPT.extension == "js"
