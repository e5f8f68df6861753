import os

import pytest

from layerview.errors import (
    InvalidLayer,
    MalformedReference,
    PathEscape,
    TemplateNotFound,
    UnknownLayer,
)
from layerview.layers import LayerRegistry, is_valid_layer_id
from layerview.reference import TemplateRef, parse_ref, resolve_path, split_ref


@pytest.mark.parametrize(
    "ref,expected",
    [
        ("page.html@app", ("page.html", "app")),
        ("admin/panel.html@acme/admin", ("admin/panel.html", "acme/admin")),
        ("mail/a@b.html@app", ("mail/a@b.html", "app")),
        ("/public/home.html@app", ("public/home.html", "app")),
    ],
)
def test_split_ref(ref, expected):
    assert split_ref(ref) == expected


@pytest.mark.parametrize("ref", ["page.html", "@app", "page.html@", "/@app", ""])
def test_split_ref_malformed(ref):
    with pytest.raises(MalformedReference):
        split_ref(ref)


def test_ref_str_round_trips():
    registry = LayerRegistry.from_mapping({"app": "/srv/t", "acme/shop": "/srv/v"})
    for text in ["page.html@app", "x/y@z.html@acme/shop"]:
        ref = parse_ref(text, registry)
        assert str(ref) == text
        assert parse_ref(str(ref), registry) == ref


def test_parse_ref_unknown_layer():
    registry = LayerRegistry.from_mapping({"app": "/srv/t"})
    with pytest.raises(UnknownLayer) as exc:
        parse_ref("page.html@acme/missing", registry)
    assert exc.value.layer == "acme/missing"


def test_resolve_path(make_layer):
    root = make_layer({"public/home.html": "hi"})
    registry = LayerRegistry.from_mapping({"app": str(root)})

    path = resolve_path(TemplateRef("public/home.html", "app"), registry)
    assert path == (root / "public/home.html").resolve()


def test_resolve_path_falls_back_to_html_suffix(make_layer):
    root = make_layer({"layout.html": "x"})
    registry = LayerRegistry.from_mapping({"app": str(root)})

    path = resolve_path(TemplateRef("layout", "app"), registry)
    assert path.name == "layout.html"


def test_resolve_path_not_found(make_layer):
    root = make_layer({})
    registry = LayerRegistry.from_mapping({"app": str(root)})
    with pytest.raises(TemplateNotFound):
        resolve_path(TemplateRef("missing.html", "app"), registry)


@pytest.mark.parametrize("rel", ["../../etc/passwd", "../secret.html", "a/../../x.html", ".."])
def test_resolve_path_traversal(make_layer, rel):
    root = make_layer({"a/page.html": "x"})
    (root.parent / "secret.html").write_text("secret")
    registry = LayerRegistry.from_mapping({"app": str(root)})

    with pytest.raises(PathEscape):
        resolve_path(TemplateRef(rel, "app"), registry)


def test_resolve_path_symlink_escape(make_layer, tmp_path):
    root = make_layer({})
    outside = tmp_path / "outside.html"
    outside.write_text("secret")
    os.symlink(outside, root / "link.html")
    registry = LayerRegistry.from_mapping({"app": str(root)})

    with pytest.raises(PathEscape):
        resolve_path(TemplateRef("link.html", "app"), registry)


def test_layer_ids():
    assert is_valid_layer_id("app")
    assert is_valid_layer_id("acme/shop")
    assert is_valid_layer_id("Acme.io/shop-ui_2")
    assert not is_valid_layer_id("acme")
    assert not is_valid_layer_id("acme/shop/extra")
    assert not is_valid_layer_id("acme/")


def test_registry_rejects_bad_layers():
    with pytest.raises(InvalidLayer):
        LayerRegistry.from_mapping({"vendor": "/srv/t"})
    with pytest.raises(InvalidLayer):
        LayerRegistry.from_mapping({"app": ""})


def test_registry_lookup():
    registry = LayerRegistry.from_mapping({"app": "/srv/t/"})
    assert registry.root("app") == "/srv/t"
    assert "app" in registry
    assert len(registry) == 1
    with pytest.raises(UnknownLayer):
        registry.root("acme/shop")
