"""Template expansion against derived sample documents."""

import html
import re
from collections.abc import Callable, Sequence
from typing import Any

from atopview.formatting import format_field
from atopview.models import DisplayConfig, FormatContext
from atopview.normalizer import normalize
from atopview.template import Element, Node, Text, find_section, render_attrs

_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float)) and not isinstance(value, bool)


def _substitute(text: str, values: dict[str, str]) -> str:
    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in values:
            return match.group(0)
        return html.escape(values[name], quote=False)

    return _PLACEHOLDER.sub(replace, text)


def _fill(values: dict[str, str]) -> Callable[[str], str]:
    def fill(text: str) -> str:
        return _PLACEHOLDER.sub(lambda match: values.get(match.group(1), match.group(0)), text)

    return fill


def _render(node: Node, sections: dict[int, str], values: dict[str, str]) -> str:
    if isinstance(node, Text):
        return _substitute(node.markup, values)
    if id(node) in sections:
        return sections[id(node)]

    start = f"<{node.tag}{render_attrs(node.attrs, _fill(values))}>"
    if node.void:
        return start
    inner = "".join(_render(child, sections, values) for child in node.children)
    return f"{start}{inner}</{node.tag}>"


def _expand_record(template: Element, record: dict[str, Any], context: FormatContext) -> str:
    sections: dict[int, str] = {}

    # Sequences are placed before nested records, so a sequence wins a shared section.
    nested = [
        *((name, value) for name, value in record.items() if isinstance(value, list)),
        *((name, [value]) for name, value in record.items() if isinstance(value, dict)),
    ]
    names = {str(name) for name, _ in nested}
    for name, rows in nested:
        section = find_section(template, name)
        if section is None or id(section) in sections:
            continue
        if str(name) not in section.classes and names.intersection(section.classes):
            continue  # case-folded match on another field's section
        sections[id(section)] = expand(section, rows, context)

    values = {
        name: format_field(name, value, context)
        for name, value in record.items()
        if _is_scalar(value)
    }
    return _render(template, sections, values)


def expand(
    template: Element,
    data: Sequence[dict[str, Any]],
    context: FormatContext | None = None,
) -> str:
    """
    Expand a template once per record and join the results.

    Args:
        template: Template node to instantiate for each record.
        data: Records to render, in output order. A single record must be
            wrapped in a one-element sequence.
        context: Formatting context; read from the first record when omitted.

    Fields holding a list or a record replace the template section whose
    class names the field with their own expansion. Scalar fields are
    formatted by name and substituted for ``{field}`` placeholders. Fields
    without a section and placeholders without a field are left alone.
    """
    if context is None:
        first = data[0] if data else None
        context = FormatContext.from_document(first) if isinstance(first, dict) else FormatContext()

    return "".join(
        _expand_record(template, record, context)
        for record in data
        if isinstance(record, dict)
    )


def render_report(
    template: Element,
    sample: dict[str, Any],
    config: DisplayConfig | None = None,
) -> str:
    """Normalize a raw sample and expand the template against it."""
    document = normalize(sample, config)
    return expand(template, [document])
