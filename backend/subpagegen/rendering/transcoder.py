"""
Generated HTML -> standalone TSX subpage component.

Regex based on purpose: the input is markup produced by the generation
engine, whose shape is constrained (optional code fence, full document or
fragment, inline Tailwind classes). Arbitrary hand-written HTML is handled
best-effort only. Every step degrades to a usable result instead of raising.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict


COMPONENT_SUFFIX = "Subpage"

DEFAULT_TITLE_TEMPLATE = "IT-Dienstleistungen in {city} | {domain}"
DEFAULT_DESCRIPTION_TEMPLATE = (
    "Entdecken Sie die innovativen IT-Lösungen in {city}. Steigern Sie die Effizienz Ihres "
    "Unternehmens durch maßgeschneiderte Softwareentwicklungen und IT-Beratung."
)

OBJECT_PLACEHOLDER = "[object Object]"

_CODE_FENCE_RE = re.compile(r"\n?```[A-Za-z0-9_+-]*[ \t]*\n?")
_BODY_RE = re.compile(r"<body\b[^>]*>([\s\S]*?)</body\s*>", flags=re.IGNORECASE)

_DOCTYPE_RE = re.compile(r"<!DOCTYPE[^>]*>", flags=re.IGNORECASE)
_HTML_OPEN_RE = re.compile(r"<html\b[^>]*>", flags=re.IGNORECASE)
_HTML_CLOSE_RE = re.compile(r"</html\s*>", flags=re.IGNORECASE)
_HEAD_BLOCK_RE = re.compile(r"<head\b[^>]*>[\s\S]*?</head\s*>", flags=re.IGNORECASE)
_BODY_OPEN_RE = re.compile(r"<body\b[^>]*>", flags=re.IGNORECASE)
_BODY_CLOSE_RE = re.compile(r"</body\s*>", flags=re.IGNORECASE)

# An opening tag; quoted attribute values may contain '>'.
_OPEN_TAG_RE = re.compile(r"""<[A-Za-z][^<>"']*(?:(?:"[^"]*"|'[^']*')[^<>"']*)*>""")

_ATTRIBUTE_RENAMES: Dict[str, str] = {
    "class": "className",
    "for": "htmlFor",
    "tabindex": "tabIndex",
    "readonly": "readOnly",
    "maxlength": "maxLength",
    "colspan": "colSpan",
    "rowspan": "rowSpan",
    "srcset": "srcSet",
    "crossorigin": "crossOrigin",
    "autocomplete": "autoComplete",
    "http-equiv": "httpEquiv",
    "charset": "charSet",
}
_ATTRIBUTE_RE = re.compile(
    r"(?<=\s)(" + "|".join(re.escape(name) for name in _ATTRIBUTE_RENAMES) + r")(?=\s*=)",
    flags=re.IGNORECASE,
)
_QUOTED_VALUE_RE = re.compile(r"""("[^"]*"|'[^']*')""")

VOID_ELEMENTS = ("meta", "link", "input", "img", "br", "hr")
_VOID_TAG_RE = re.compile(
    r"""<(""" + "|".join(VOID_ELEMENTS) + r""")\b((?:[^<>"'/]|/(?!\s*>)|"[^"]*"|'[^']*')*?)\s*/?\s*>""",
    flags=re.IGNORECASE,
)

_TITLE_RE = re.compile(r"<title[^>]*>([\s\S]*?)</title>", flags=re.IGNORECASE)
_DESCRIPTION_RES = (
    re.compile(
        r"""<meta[^>]*name=['"]description['"][^>]*content=['"]([^'"]*)['"][^>]*>""",
        flags=re.IGNORECASE,
    ),
    re.compile(
        r"""<meta[^>]*content=['"]([^'"]*)['"][^>]*name=['"]description['"][^>]*>""",
        flags=re.IGNORECASE,
    ),
)

_PROTOCOL_RE = re.compile(r"^https?://", flags=re.IGNORECASE)


@dataclass(frozen=True)
class TranscodedComponent:
    component_name: str
    title: str
    description: str
    fragment: str
    source: str


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def strip_code_fences(markup: str) -> str:
    if "```" not in markup:
        return markup
    return _CODE_FENCE_RE.sub("", markup).strip()


def extract_body(markup: str) -> str:
    """Inner contents of <body>, or the document minus its wrapper elements."""
    m = _BODY_RE.search(markup)
    if m:
        return m.group(1)

    out = _DOCTYPE_RE.sub("", markup, count=1)
    out = _HTML_OPEN_RE.sub("", out, count=1)
    out = _HTML_CLOSE_RE.sub("", out, count=1)
    out = _HEAD_BLOCK_RE.sub("", out, count=1)
    out = _BODY_OPEN_RE.sub("", out, count=1)
    out = _BODY_CLOSE_RE.sub("", out, count=1)
    return out.strip()


def _rename_attributes_in_tag(m: re.Match) -> str:
    # Odd parts are quoted attribute values and stay untouched.
    parts = _QUOTED_VALUE_RE.split(m.group(0))
    for i in range(0, len(parts), 2):
        parts[i] = _ATTRIBUTE_RE.sub(lambda a: _ATTRIBUTE_RENAMES[a.group(1).lower()], parts[i])
    return "".join(parts)


def rename_attributes(markup: str) -> str:
    return _OPEN_TAG_RE.sub(_rename_attributes_in_tag, markup)


def self_close_void_elements(markup: str) -> str:
    """<img src="x"> -> <img src="x" />, <br> -> <br />"""
    return _VOID_TAG_RE.sub(lambda m: f"<{m.group(1)}{m.group(2).rstrip()} />", markup)


def escape_template_literal(markup: str) -> str:
    return markup.replace("`", "\\`").replace("${", "\\${")


def component_name_for(city_name: str) -> str:
    base = re.sub(r"\s+", "", city_name or "")
    base = re.sub(r"[^A-Za-z0-9]", "", base)
    if not base:
        base = "Location"
    elif base[0].isdigit():
        base = f"City{base}"
    return f"{base}{COMPONENT_SUFFIX}"


def component_filename(city_name: str) -> str:
    slug = re.sub(r"\s+", "-", (city_name or "").strip().lower()) or "city"
    return f"{slug}-subpage.tsx"


def display_domain(domain: str) -> str:
    return _PROTOCOL_RE.sub("", (domain or "").strip())


def _js_string(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\r", "")
        .replace("\n", "\\n")
    )


def extract_metadata(markup: str, city_name: str, domain: str) -> tuple[str, str]:
    """
    Best-effort <title> and meta description lookup; defaults are templated
    with the city and the protocol-less domain.
    """
    title = DEFAULT_TITLE_TEMPLATE.format(city=city_name, domain=display_domain(domain))
    description = DEFAULT_DESCRIPTION_TEMPLATE.format(city=city_name, domain=display_domain(domain))

    m = _TITLE_RE.search(markup)
    if m and m.group(1).strip():
        title = m.group(1).strip()

    for pattern in _DESCRIPTION_RES:
        m = pattern.search(markup)
        if m and m.group(1).strip():
            description = m.group(1).strip()
            break

    return title, description


def _render_source(component_name: str, city_name: str, domain: str, fragment: str, title: str, description: str) -> str:
    return f"""import React from 'react';

interface SubpageProps {{
  city?: string;
  domain?: string;
}}

export default function {component_name}({{
  city = "{_js_string(city_name)}",
  domain = "{_js_string(domain)}"
}}: SubpageProps) {{
  return (
    <>
      {fragment}
    </>
  );
}}

// Export metadata for Next.js
export const metadata = {{
  title: "{_js_string(title)}",
  description: "{_js_string(description)}"
}};
"""


def transcode_component(raw_markup: Any, city_name: Any, domain: Any) -> TranscodedComponent:
    """
    Convert one city's generated markup into a TSX component.

    Pure and deterministic: no I/O, identical inputs give identical output.
    """
    markup = _as_text(raw_markup)
    city = _as_text(city_name).strip()
    site = _as_text(domain).strip()

    content = strip_code_fences(markup)
    content = extract_body(content)
    content = content.replace(OBJECT_PLACEHOLDER, city)
    content = rename_attributes(content)
    content = self_close_void_elements(content)
    content = escape_template_literal(content)

    name = component_name_for(city)
    # Metadata comes from the untouched markup, head included.
    title, description = extract_metadata(markup, city, site)

    source = _render_source(name, city, site, content, title, description)
    return TranscodedComponent(
        component_name=name,
        title=title,
        description=description,
        fragment=content,
        source=source,
    )


def transcode(raw_markup: Any, city_name: Any, domain: Any) -> str:
    return transcode_component(raw_markup, city_name, domain).source
