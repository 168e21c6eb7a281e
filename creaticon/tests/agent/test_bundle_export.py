import io
import zipfile

from creaticon.agent.artifacts import (
    BundleArtifact,
    ComponentArtifact,
    IconArtifact,
    SavedArtifactSet,
    StylesheetArtifact,
)
from creaticon.agent.bundle_export import build_export_zip, collect_export_files


def _icon(name, index=0):
    return IconArtifact(id=f"icon-{index}", semantic_name=name, raw_markup='<svg viewBox="0 0 24 24"></svg>')


def test_icon_pack_export_gets_gallery_styles_and_svg_files():
    entry = SavedArtifactSet(
        id="e1",
        name="Nav Icons",
        kind="icon-pack",
        artifacts=[_icon("Home", 0), _icon("home", 1), _icon("Search!", 2), StylesheetArtifact(css="svg{}")],
    )

    files = collect_export_files(entry)

    assert sorted(files) == [
        "README.md",
        "icons/home-2.svg",
        "icons/home.svg",
        "icons/search.svg",
        "index.html",
        "styles.css",
    ]
    assert 'xmlns="http://www.w3.org/2000/svg"' in files["icons/home.svg"]
    assert "<figcaption>Search!</figcaption>" in files["index.html"]
    assert "3 SVG icons" in files["README.md"]


def test_gallery_escapes_generated_names():
    icon = IconArtifact(
        id="icon-0",
        semantic_name="<script>alert(1)</script>",
        category='nav"><b',
        raw_markup='<svg viewBox="0 0 24 24"></svg>',
    )
    entry = SavedArtifactSet(id="e4", name="A & B", kind="icon-pack", artifacts=[icon])

    gallery = collect_export_files(entry)["index.html"]

    assert "<script>" not in gallery
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in gallery
    assert 'data-category="nav&quot;&gt;&lt;b"' in gallery
    assert "<title>A &amp; B</title>" in gallery


def test_bundle_export_keeps_html_css_and_js():
    bundle = BundleArtifact(html="<main>hi</main>", css="main{}", js="console.log(1)", icons=[_icon("menu")])
    entry = SavedArtifactSet(id="e2", name="Landing", kind="ui-bundle", artifacts=[bundle])

    files = collect_export_files(entry)

    assert files["index.html"] == "<main>hi</main>"
    assert files["styles.css"] == "main{}"
    assert files["script.js"] == "console.log(1)"
    assert "icons/menu.svg" in files


def test_component_export_writes_tsx_file():
    component = ComponentArtifact(name="Badge", source_code="export default function Badge() { return null; }")
    entry = SavedArtifactSet(id="e3", name="Badge", kind="component", artifacts=[component])

    files = collect_export_files(entry)

    assert files["Badge.tsx"] == component.source_code
    assert "index.html" not in files
    assert "- Badge.tsx - React component" in files["README.md"]


def test_zip_contains_every_collected_file():
    entry = SavedArtifactSet(id="e4", name="Icons", kind="icon-pack", artifacts=[_icon("home")])

    archive = zipfile.ZipFile(io.BytesIO(build_export_zip(entry)))

    assert sorted(archive.namelist()) == sorted(collect_export_files(entry))
    assert archive.read("icons/home.svg").decode().startswith("<svg xmlns=")
