STRUCTURE_PROMPT = """
Based on this analysis, outline the structure of the {kind} before any markup or code is written.

Analysis: {analysis}
Original request: "{description}"

Return ONLY a JSON object:
{{
  "sections": ["..."],
  "elements": ["..."],
  "naming": ["..."],
  "notes": "..."
}}
For an icon-pack, `elements` lists each icon's semantic name. For a component, include the props interface in `notes`.
"""

PRIMARY_PROMPT = """
Produce the complete {kind} described below.

Original request: "{description}"
Analysis: {analysis}
Structure: {structure}
"""

STYLING_PROMPT = """
Apply a {style_preference} visual style to the output below.
Colors: {color_scheme}

Keep every element, name and export intact. Improve spacing, palette, hover states and responsiveness.
Return the full, restyled output only.

Output:
{previous}
"""

OPTIMIZE_PROMPT = """
Optimize the output below for size, accessibility and best practices without changing what it renders.
- Remove dead markup, duplicated styles and unused code.
- Keep every icon's `data-name` and every export.
Return the full, optimized output only.

Output:
{previous}
"""

VARIANTS_PROMPT = """
Create one variant of the output below for each strategy listed.
Keep the same names, props and exports in each variant, and use the strategy name as the variant name.

{strategies}

Return ONLY a JSON object: {{"variants": [{{"name": "...", "content": "..."}}]}}

Output:
{previous}
"""

VARIANT_STRATEGY_REQUIREMENTS = {
    "Dark Theme": (
        "Use dark backgrounds with light text",
        "Keep contrast ratios accessible",
        "Add dark mode hover and focus states",
    ),
    "Mobile-First": (
        "Design for small screens first and scale up with breakpoints",
        "Use touch targets of at least 44px",
        "Stack layouts vertically on narrow viewports",
    ),
    "Minimal": (
        "Remove decorative elements and reduce the color palette",
        "Use generous whitespace and simple typography",
        "Keep only the essential functionality",
    ),
    "Animated": (
        "Add subtle entrance and hover transitions",
        "Keep animations under 300ms",
        "Respect prefers-reduced-motion",
    ),
    "High Contrast": (
        "Meet WCAG AAA contrast ratios",
        "Use thick, clearly visible focus outlines",
        "Never rely on color alone to convey state",
    ),
}

VARIANT_PACKS = {
    "essential": ("Dark Theme", "Mobile-First"),
    "accessibility": ("High Contrast", "Dark Theme"),
    "mobile": ("Mobile-First", "Minimal"),
    "design": ("Dark Theme", "Minimal", "Animated"),
    "complete": ("Dark Theme", "Mobile-First", "Minimal", "Animated", "High Contrast"),
}

FEEDBACK_SUFFIX = """

User feedback for this step:
{feedback}
"""

ANALYSIS_CONFIRMATION_PROMPT = (
    "Review the analysis above. Resume with feedback for `analyze_request` to confirm it "
    "or to describe what should change."
)
