from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any


@dataclass(eq=False)
class Element:
    """
    Minimal DOM node: enough structure for link lookup and text extraction.
    """

    tag: str
    text: str = ""
    href: str | None = None
    parent: Element | None = field(default=None, repr=False)
    children: list[Element] = field(default_factory=list, repr=False)

    def append(self, child: Element) -> Element:
        child.parent = self
        self.children.append(child)
        return child

    def closest(self, tag: str) -> Element | None:
        node: Element | None = self
        tag = tag.lower()
        while node is not None:
            if node.tag.lower() == tag:
                return node
            node = node.parent
        return None

    def text_content(self) -> str:
        return self.text + "".join(c.text_content() for c in self.children)


def link(href: str | None, text: str = "") -> Element:
    return Element(tag="a", href=href, text=text)


@dataclass(frozen=True, slots=True)
class PageEvent:
    type: str
    target: Element | None = None
    detail: dict[str, Any] | None = None


Listener = Callable[[PageEvent], None]
