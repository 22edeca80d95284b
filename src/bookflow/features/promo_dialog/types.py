from __future__ import annotations

from dataclasses import dataclass

PENDING = "pending"
SHOWN = "shown"
DISMISSED = "dismissed"
CONVERTED = "converted"


@dataclass(frozen=True, slots=True)
class LinkAttrs:
    href: str
    text: str
    target: str | None = None
    rel: str | None = None


@dataclass(frozen=True, slots=True)
class DialogView:
    open: bool
    title: str
    description: str
    cta: LinkAttrs
    image: str | None = None
    image_alt: str = ""
    dismiss_label: str = "No thanks"
