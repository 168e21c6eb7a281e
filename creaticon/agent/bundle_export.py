import html
import io
import re
import textwrap
import zipfile

from creaticon.agent.artifacts import (
    BundleArtifact,
    ComponentArtifact,
    IconArtifact,
    SavedArtifactSet,
    StylesheetArtifact,
    utc_now,
)


def _slug(value: str) -> str:
    slug = re.sub(r"[^a-z0-9_-]+", "-", (value or "").lower()).strip("-")
    return slug or "icon"


def _icon_files(icons: list[IconArtifact]) -> dict[str, str]:
    files: dict[str, str] = {}
    for icon in icons:
        base = _slug(icon.semantic_name)
        path = f"icons/{base}.svg"
        suffix = 2
        while path in files:
            path = f"icons/{base}-{suffix}.svg"
            suffix += 1
        markup = icon.raw_markup
        if "xmlns=" not in markup:
            markup = markup.replace("<svg", '<svg xmlns="http://www.w3.org/2000/svg"', 1)
        files[path] = markup
    return files


def _icon_gallery(title: str, icons: list[IconArtifact]) -> str:
    cells = "\n".join(
        f'    <figure class="icon" data-category="{html.escape(icon.category)}">{icon.raw_markup}'
        f"<figcaption>{html.escape(icon.semantic_name)}</figcaption></figure>"
        for icon in icons
    )
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n<head>\n  <meta charset="utf-8">\n'
        f"  <title>{html.escape(title)}</title>\n"
        '  <link rel="stylesheet" href="styles.css">\n</head>\n<body>\n'
        f'  <main class="icon-grid">\n{cells}\n  </main>\n</body>\n</html>\n'
    )


def _readme(entry: SavedArtifactSet, files: dict[str, str]) -> str:
    icon_count = sum(1 for path in files if path.startswith("icons/"))
    listing = [
        line
        for path, line in (
            ("index.html", "- index.html - Main HTML file"),
            ("styles.css", "- styles.css - CSS styles"),
            ("script.js", "- script.js - JavaScript functionality"),
        )
        if path in files
    ]
    listing += [f"- {path} - React component" for path in files if path.endswith(".tsx")]
    if icon_count:
        listing.append(f"- icons/ - {icon_count} SVG icons")
    return textwrap.dedent(
        """
        # {name}

        {description}

        ## Files included
        {listing}

        ## Usage
        1. Open index.html in your browser.
        2. Customize the CSS and JavaScript as needed.
        3. Use the SVG icons in your own projects.

        Generated on: {generated}
        """
    ).strip().format(
        name=entry.name,
        description=entry.description or f"Generated {entry.kind}.",
        listing="\n".join(listing) or "- (no files)",
        generated=utc_now().isoformat(),
    ) + "\n"


def collect_export_files(entry: SavedArtifactSet) -> dict[str, str]:
    page = ""
    css: list[str] = []
    js: list[str] = []
    icons: list[IconArtifact] = []
    files: dict[str, str] = {}

    for artifact in entry.artifacts:
        if isinstance(artifact, BundleArtifact):
            page = page or artifact.html
            if artifact.css:
                css.append(artifact.css)
            if artifact.js:
                js.append(artifact.js)
            icons.extend(artifact.icons)
        elif isinstance(artifact, IconArtifact):
            icons.append(artifact)
        elif isinstance(artifact, StylesheetArtifact):
            css.append(artifact.css)
        elif isinstance(artifact, ComponentArtifact):
            files[f"{artifact.name}.tsx"] = artifact.source_code

    if not page and icons and entry.kind == "icon-pack":
        page = _icon_gallery(entry.name, icons)
    if page:
        files["index.html"] = page
    if css:
        files["styles.css"] = "\n\n".join(css)
    if js:
        files["script.js"] = "\n\n".join(js)
    files.update(_icon_files(icons))
    files["README.md"] = _readme(entry, files)
    return files


def build_export_zip(entry: SavedArtifactSet) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
        for path, content in collect_export_files(entry).items():
            zf.writestr(path, content)
    buffer.seek(0)
    return buffer.getvalue()
