"""
Turns loosely structured generated markup into typed artifacts.

Extraction is pure: each call builds its own parse tree, nothing is cached and
nothing outside the arguments influences the result. The stdlib `html.parser`
backend is used so results do not depend on which optional parsers happen to
be installed.
"""
import copy
import re

from bs4 import BeautifulSoup, Tag

from creaticon.agent.artifacts import (
    Artifact,
    BundleArtifact,
    ComponentArtifact,
    IconArtifact,
    PropField,
    StylesheetArtifact,
    TargetKind,
)
from creaticon.agent.llm_client import normalize_output

FALLBACK_ICON_NAMES = [
    "home", "user", "settings", "search", "menu", "close", "arrow", "heart",
    "star", "share", "download", "upload", "edit", "delete", "add", "check",
]
DEFAULT_ICON_SIZE = 24
NAME_ATTRIBUTES = ("data-name", "name", "aria-label")
MAX_ENCLOSING_TEXT = 20

# (category, tag names, class tokens), checked in this order against all ancestors.
CATEGORY_RULES: list[tuple[str, frozenset[str], frozenset[str]]] = [
    ("navigation", frozenset({"nav", "header", "footer"}), frozenset({"navigation", "menu"})),
    ("form", frozenset({"form"}), frozenset({"form", "input"})),
    ("social", frozenset(), frozenset({"social", "contact"})),
    ("action", frozenset({"button"}), frozenset({"button"})),
]

# html.parser lower-cases names; SVG is case-sensitive.
_SVG_CASE = {
    name.lower(): name
    for name in (
        "viewBox", "preserveAspectRatio", "gradientUnits", "gradientTransform",
        "patternUnits", "patternContentUnits", "patternTransform", "clipPathUnits",
        "maskUnits", "maskContentUnits", "markerWidth", "markerHeight", "markerUnits",
        "refX", "refY", "stdDeviation", "textLength", "lengthAdjust", "pathLength",
        "spreadMethod", "startOffset", "baseFrequency", "numOctaves", "filterUnits",
        "primitiveUnits", "kernelMatrix", "tableValues", "xChannelSelector",
        "yChannelSelector", "attributeName", "repeatCount", "keyTimes", "keySplines",
        "calcMode",
        "linearGradient", "radialGradient", "clipPath", "textPath", "foreignObject",
        "feGaussianBlur", "feOffset", "feBlend", "feColorMatrix", "feComposite",
        "feFlood", "feMerge", "feMergeNode", "feDropShadow", "feMorphology",
        "feTurbulence", "feDisplacementMap", "animateTransform", "animateMotion",
    )
}


def _parse_int(value: str) -> int:
    match = re.match(r"\s*([+-]?\d+)", value or "")
    return int(match.group(1)) if match else 0


def _bounding_size(svg: Tag) -> int:
    view_box = svg.get("viewbox")
    if not view_box:
        return DEFAULT_ICON_SIZE
    parts = re.split(r"[\s,]+", str(view_box).strip())
    width = _parse_int(parts[2]) if len(parts) > 2 else 0
    height = _parse_int(parts[3]) if len(parts) > 3 else 0
    return max(width or DEFAULT_ICON_SIZE, height or DEFAULT_ICON_SIZE)


def _class_tokens(element: Tag) -> list[str]:
    classes = element.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return list(classes)


def _semantic_name(svg: Tag, index: int) -> str:
    for attr in NAME_ATTRIBUTES:
        value = svg.get(attr)
        if value and str(value).strip():
            return str(value).strip()

    parent = svg.parent
    if isinstance(parent, Tag) and parent.name != "[document]":
        nearby_text = parent.get_text().strip()
        if nearby_text and len(nearby_text) < MAX_ENCLOSING_TEXT:
            return re.sub(r"\s+", "-", nearby_text.lower())

    for token in _class_tokens(svg):
        if "icon-" in token:
            fragment = token.split("icon-", 1)[1]
            if fragment:
                return fragment

    return FALLBACK_ICON_NAMES[index % len(FALLBACK_ICON_NAMES)]


def _category(svg: Tag) -> str:
    lineage = [svg, *(p for p in svg.parents if isinstance(p, Tag) and p.name != "[document]")]
    for category, tag_names, class_names in CATEGORY_RULES:
        for element in lineage:
            if element.name in tag_names or class_names.intersection(_class_tokens(element)):
                return category
    return "general"


def _serialize_svg(svg: Tag) -> str:
    clone = copy.copy(svg)
    for element in [clone, *clone.find_all(True)]:
        element.name = _SVG_CASE.get(element.name, element.name)
        element.attrs = {_SVG_CASE.get(key, key): value for key, value in element.attrs.items()}
    return str(clone)


def _extract_icons(soup: BeautifulSoup) -> list[IconArtifact]:
    icons: list[IconArtifact] = []
    for index, svg in enumerate(soup.find_all("svg")):
        icons.append(
            IconArtifact(
                id=f"icon-{index}",
                semantic_name=_semantic_name(svg, index),
                raw_markup=_serialize_svg(svg),
                bounding_size=_bounding_size(svg),
                category=_category(svg),
            )
        )
    return icons


def _collect_text(soup: BeautifulSoup, tag_name: str, *, inline_only: bool = False) -> str:
    chunks = []
    for element in soup.find_all(tag_name):
        if inline_only and element.get("src"):
            continue
        text = element.get_text()
        if text.strip():
            chunks.append(text.strip())
    return "\n".join(chunks)


def extract_icon_pack(raw_markup: str) -> list[Artifact]:
    soup = BeautifulSoup(raw_markup or "", "html.parser")
    artifacts: list[Artifact] = list(_extract_icons(soup))
    css = _collect_text(soup, "style")
    if css:
        artifacts.append(StylesheetArtifact(css=css))
    return artifacts


def extract_bundle(raw_markup: str) -> BundleArtifact:
    soup = BeautifulSoup(raw_markup or "", "html.parser")
    css = _collect_text(soup, "style")
    js = _collect_text(soup, "script", inline_only=True)
    icons = _extract_icons(soup)

    stripped = copy.copy(soup)
    for element in stripped.find_all(["style", "script"]):
        element.decompose()
    return BundleArtifact(html=str(stripped).strip(), css=css, js=js, icons=icons)


_COMPONENT_NAME_PATTERNS = [
    re.compile(r"export\s+default\s+function\s+([A-Z]\w*)"),
    re.compile(r"function\s+([A-Z]\w*)"),
    re.compile(r"const\s+([A-Z]\w*)\s*(?::[^=]+)?="),
    re.compile(r"class\s+([A-Z]\w*)"),
]
_PROPS_BLOCK = re.compile(
    r"(?:interface\s+(\w*)Props\s*(?:extends[^{]*)?|type\s+(\w*)Props\s*=\s*)\{([^{}]*)\}",
    re.DOTALL,
)
_PROP_LINE = re.compile(r"^\s*(?:readonly\s+)?([A-Za-z_$][\w$]*)(\?)?\s*:\s*(.+?)\s*$")
_IMPORT_SOURCE = re.compile(r"""import\s+(?:[^'";]+?\s+from\s+)?['"]([^'"]+)['"]""")


def _component_name(source: str) -> str:
    for pattern in _COMPONENT_NAME_PATTERNS:
        match = pattern.search(source)
        if match:
            return match.group(1)
    return "Component"


def _props_schema(source: str, name: str) -> list[PropField]:
    blocks = list(_PROPS_BLOCK.finditer(source))
    if not blocks:
        return []
    # Prefer the props type named after the component.
    block = next((b for b in blocks if (b.group(1) or b.group(2)) == name), blocks[0])
    fields: list[PropField] = []
    for entry in re.split(r"[;\n]", block.group(3)):
        entry = entry.strip().rstrip(",")
        match = _PROP_LINE.match(entry)
        if not match:
            continue
        fields.append(
            PropField(name=match.group(1), type=match.group(3).strip(), required=match.group(2) is None)
        )
    return fields


def _dependencies(source: str) -> list[str]:
    seen: list[str] = []
    for match in _IMPORT_SOURCE.finditer(source):
        module = match.group(1)
        if module.startswith((".", "/")) or module in seen:
            continue
        seen.append(module)
    return seen


def extract_component(raw_markup: str) -> ComponentArtifact:
    source = normalize_output(raw_markup, "component")
    name = _component_name(source)
    return ComponentArtifact(
        name=name,
        props_schema=_props_schema(source, name),
        source_code=source,
        dependencies=_dependencies(source),
    )


def extract(raw_markup: str, target_kind: TargetKind) -> list[Artifact]:
    """Extract typed artifacts from generated output. Zero matches is an empty result, not an error."""
    if target_kind == "icon-pack":
        return extract_icon_pack(raw_markup)
    if target_kind == "ui-bundle":
        return [extract_bundle(raw_markup)]
    if target_kind == "component":
        return [extract_component(raw_markup)]
    raise ValueError(f"Unsupported target kind: {target_kind}")
