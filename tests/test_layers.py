"""
Tests for manifest layer parsing and text-layer extraction.
"""

import copy

import pytest

from psd_translator_backend.errors import ManifestShapeError
from psd_translator_backend.layers import TranslatedLayer, find_text_layers, parse_layers
from psd_translator_backend.pipeline import manifest_layers

NESTED_TREE = [
    {"type": "layer", "name": "Background"},
    {
        "type": "layerSection",
        "name": "Group",
        "children": [
            {"type": "textLayer", "name": "Title", "text": {"content": "Hello"}},
            {
                "type": "layerSection",
                "name": "Inner",
                "children": [{"type": "textLayer", "name": "Deep", "text": {"content": "Deep text"}}],
            },
        ],
    },
    {"type": "textLayer", "name": "Footer", "text": {"content": "Bye"}},
]


class TestFindTextLayers:
    """Tests for the depth-first text layer extractor."""

    def test_pre_order_traversal(self):
        """Text layers come out in pre-order, siblings left to right."""
        layers = find_text_layers(parse_layers(NESTED_TREE))
        assert [layer.name for layer in layers] == ["Title", "Deep", "Footer"]

    def test_group_that_is_also_text_comes_before_children(self):
        tree = [
            {
                "type": "textLayer",
                "name": "Parent",
                "text": {"content": "p"},
                "children": [{"type": "textLayer", "name": "Child", "text": {"content": "c"}}],
            }
        ]
        assert [layer.name for layer in find_text_layers(parse_layers(tree))] == ["Parent", "Child"]

    def test_empty_and_missing_input(self):
        assert find_text_layers([]) == []
        assert find_text_layers(None) == []

    def test_no_text_layers(self):
        assert find_text_layers(parse_layers([{"type": "layer", "name": "Background"}])) == []

    def test_extraction_is_repeatable_and_does_not_mutate(self):
        raw = copy.deepcopy(NESTED_TREE)
        layers = parse_layers(raw)
        first = find_text_layers(layers)
        second = find_text_layers(layers)
        assert first == second
        assert raw == NESTED_TREE

    def test_text_content_defaults_to_empty(self):
        layer = parse_layers([{"type": "textLayer", "name": "Blank"}])[0]
        assert layer.text_content == ""


class TestParseLayers:
    def test_non_list_yields_empty(self):
        assert parse_layers(None) == []
        assert parse_layers({"type": "textLayer"}) == []

    def test_unknown_vendor_fields_are_kept(self):
        layer = parse_layers([{"type": "textLayer", "name": "T", "id": 42, "text": {"content": "x", "orientation": "horizontal"}}])[0]
        assert layer.model_extra["id"] == 42
        assert layer.text.model_extra["orientation"] == "horizontal"


class TestTranslatedLayer:
    def test_payload_keeps_layer_name(self):
        source = parse_layers([{"type": "textLayer", "name": "Title", "text": {"content": "Hello"}}])[0]
        translated = TranslatedLayer.from_layer(source, "Bonjour")
        assert translated.to_payload() == {"name": "Title", "text": {"content": "Bonjour"}}


class TestManifestLayers:
    """Tests for reading the layer tree out of a manifest body."""

    def test_reads_first_output(self):
        manifest = {"outputs": [{"status": "succeeded", "layers": NESTED_TREE}]}
        assert len(manifest_layers(manifest)) == 3

    def test_output_without_layers_is_empty(self):
        assert manifest_layers({"outputs": [{"status": "succeeded"}]}) == []

    @pytest.mark.parametrize("manifest", [{}, {"outputs": []}, {"outputs": "nope"}, {"outputs": ["x"]}, "text"])
    def test_missing_outputs_raise(self, manifest):
        with pytest.raises(ManifestShapeError):
            manifest_layers(manifest)

    def test_malformed_layer_raises(self):
        with pytest.raises(ManifestShapeError):
            manifest_layers({"outputs": [{"layers": [{"type": "textLayer", "name": {"not": "a string"}}]}]})
