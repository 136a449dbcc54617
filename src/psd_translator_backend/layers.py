"""
Manifest layer models and the text-layer extractor.

The vendor manifest describes a document as a tree of layers. Only layers
whose type tag is ``textLayer`` carry translatable content; group layers
hold ``children``. Unknown vendor fields are preserved on the models.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict

TEXT_LAYER_TYPE = "textLayer"


class TextContent(BaseModel):
    model_config = ConfigDict(extra="allow")

    content: str = ""


class Layer(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    type: Optional[str] = None
    name: str = ""
    text: Optional[TextContent] = None
    children: Optional[List["Layer"]] = None

    @property
    def is_text_layer(self) -> bool:
        return self.type == TEXT_LAYER_TYPE

    @property
    def text_content(self) -> str:
        return self.text.content if self.text else ""


class TranslatedLayer(BaseModel):
    """A source text layer paired with its translation, keyed by layer name."""

    name: str
    text: TextContent

    @classmethod
    def from_layer(cls, layer: Layer, translated: str) -> "TranslatedLayer":
        return cls(name=layer.name, text=TextContent(content=translated))

    def to_payload(self) -> dict[str, Any]:
        return {"name": self.name, "text": {"content": self.text.content}}


def parse_layers(raw: Any) -> List[Layer]:
    """Validate manifest JSON into ``Layer`` models; anything but a list yields ``[]``."""
    if not isinstance(raw, list):
        return []
    return [Layer.model_validate(item) for item in raw if isinstance(item, dict)]


def find_text_layers(layers: Optional[Iterable[Layer]]) -> List[Layer]:
    """
    Flatten a layer tree into its text layers.

    Depth-first, pre-order: each node's own type is checked before its
    children are visited, and siblings keep their left-to-right order.
    The input is never modified.

    Args:
        layers: Top-level layers of a manifest output (``None`` allowed)

    Returns:
        Text layers in traversal order; empty when there are none
    """
    found: List[Layer] = []
    if not layers:
        return found

    for layer in layers:
        if layer.is_text_layer:
            found.append(layer)
        if layer.children:
            found.extend(find_text_layers(layer.children))
    return found
