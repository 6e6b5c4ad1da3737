"""Immutable template trees parsed from HTML-like markup."""

import html
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Any

from atopview.errors import TemplateError

VOID_ELEMENTS = frozenset(
    {
        "area", "base", "br", "col", "embed", "hr", "img", "input",
        "link", "meta", "source", "track", "wbr",
    }
)


@dataclass(slots=True, frozen=True)
class Text:
    """Markup between elements, kept exactly as written."""

    markup: str


@dataclass(slots=True, frozen=True)
class Element:
    """A template element with its attributes and child nodes."""

    tag: str
    attrs: tuple[tuple[str, str | None], ...] = ()
    children: tuple["Element | Text", ...] = ()
    void: bool = False  # rendered without an end tag

    @property
    def classes(self) -> tuple[str, ...]:
        """Get the names listed in the class attribute."""
        value = self.get("class")
        return tuple(value.split()) if value else ()

    def get(self, name: str) -> str | None:
        """Get an attribute value."""
        for key, value in self.attrs:
            if key == name:
                return value
        return None

    def descendants(self) -> Iterator["Element"]:
        """Iterate over descendant elements in document order."""
        for child in self.children:
            if isinstance(child, Element):
                yield child
                yield from child.descendants()


Node = Element | Text


@dataclass(slots=True)
class _OpenElement:
    tag: str
    attrs: tuple[tuple[str, str | None], ...]
    children: list[Node] = field(default_factory=list)

    def close(self) -> Element:
        return Element(self.tag, self.attrs, tuple(self.children))


class _TreeBuilder(HTMLParser):
    """Builds template nodes while keeping text and entities verbatim."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=False)
        self._stack: list[_OpenElement] = [_OpenElement("", ())]

    def _append(self, node: Node) -> None:
        children = self._stack[-1].children
        if isinstance(node, Text) and children and isinstance(children[-1], Text):
            children[-1] = Text(children[-1].markup + node.markup)
        else:
            children.append(node)

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in VOID_ELEMENTS:
            self._append(Element(tag, tuple(attrs), void=True))
        else:
            self._stack.append(_OpenElement(tag, tuple(attrs)))

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        self._append(Element(tag, tuple(attrs), void=tag in VOID_ELEMENTS))

    def handle_endtag(self, tag: str) -> None:
        if not any(open_.tag == tag for open_ in self._stack[1:]):
            return  # stray end tag
        while True:
            open_ = self._stack.pop()
            self._append(open_.close())
            if open_.tag == tag:
                break

    def handle_data(self, data: str) -> None:
        self._append(Text(data))

    def handle_entityref(self, name: str) -> None:
        self._append(Text(f"&{name};"))

    def handle_charref(self, name: str) -> None:
        self._append(Text(f"&#{name};"))

    def handle_comment(self, data: str) -> None:
        self._append(Text(f"<!--{data}-->"))

    def handle_decl(self, decl: str) -> None:
        self._append(Text(f"<!{decl}>"))

    def handle_pi(self, data: str) -> None:
        self._append(Text(f"<?{data}>"))

    def unknown_decl(self, data: str) -> None:
        self._append(Text(f"<![{data}]>"))

    def build(self, markup: str) -> tuple[Node, ...]:
        self.feed(markup)
        self.close()
        while len(self._stack) > 1:
            open_ = self._stack.pop()
            self._append(open_.close())
        return tuple(self._stack[0].children)


def parse_nodes(markup: str) -> tuple[Node, ...]:
    """Parse markup into its top-level nodes."""
    return _TreeBuilder().build(markup)


def parse_template(markup: str) -> Element:
    """
    Parse a template into an immutable tree.

    The first top-level element is the template root; anything before or
    after it is ignored.

    Raises:
        TemplateError: The markup contains no element.
    """
    for node in parse_nodes(markup):
        if isinstance(node, Element):
            return node
    raise TemplateError("template markup contains no element")


def load_template(document: str, element_id: str = "tpl_general") -> Element:
    """
    Extract a template from a template document.

    The template is the markup inside the element with the given id, which
    may be a regular element or a script/template holder whose content is
    raw text.

    Raises:
        TemplateError: No element has the id, or it holds no template.
    """
    for node in parse_nodes(document):
        if not isinstance(node, Element):
            continue
        candidates = [node, *node.descendants()]
        for element in candidates:
            if element.get("id") == element_id:
                inner = "".join(to_markup(child) for child in element.children)
                return parse_template(inner)
    raise TemplateError(f"template document has no element with id {element_id!r}")


def find_section(node: Element, name: Any) -> Element | None:
    """
    Find the section for a field inside a template node.

    A section is the first descendant whose class list names the field.
    Class names are compared exactly first, then ignoring case.
    """
    name = str(name)
    folded = None
    for element in node.descendants():
        classes = element.classes
        if name in classes:
            return element
        if folded is None and name.lower() in (c.lower() for c in classes):
            folded = element
    return folded


class _TextExtractor(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []

    def handle_data(self, data: str) -> None:
        self.parts.append(data)


def text_content(markup: str) -> str:
    """Get the text of rendered markup without tags or comments."""
    extractor = _TextExtractor()
    extractor.feed(markup)
    extractor.close()
    return "".join(extractor.parts)


def render_attrs(
    attrs: tuple[tuple[str, str | None], ...],
    fill: Callable[[str], str] | None = None,
) -> str:
    """
    Render attributes as they appear in a start tag.

    Args:
        attrs: Attribute names and unescaped values.
        fill: Applied to each value before it is escaped.
    """
    parts = []
    for name, value in attrs:
        if value is None:
            parts.append(f" {name}")
            continue
        if fill is not None:
            value = fill(value)
        parts.append(f' {name}="{html.escape(value, quote=True)}"')
    return "".join(parts)


def to_markup(node: Node) -> str:
    """Serialize a template node back to markup."""
    if isinstance(node, Text):
        return node.markup
    start = f"<{node.tag}{render_attrs(node.attrs)}>"
    if node.void:
        return start
    inner = "".join(to_markup(child) for child in node.children)
    return f"{start}{inner}</{node.tag}>"
