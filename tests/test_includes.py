import pytest

from layerview.errors import IncludeDepthExceeded, TemplateNotFound
from layerview.includes import MAX_INCLUDE_DEPTH, expand_includes


def test_expands_partial(make_layer, make_loader):
    root = make_layer({"partials/nav.html": "<nav>{{ menu }}</nav>"})
    loader = make_loader({"app": root})

    text = '<body>{% include "partials/nav.html@app" %}</body>'
    assert expand_includes(text, loader) == "<body><nav>{{ menu }}</nav></body>"


def test_nested_and_cross_layer(make_layer, make_loader):
    vendor = make_layer({"icon.html": "<svg/>"}, "acme/ui")
    app = make_layer(
        {
            "header.html": "<header>{% include 'logo.html@app' %}</header>",
            "logo.html": '<a>{%include "icon.html@acme/ui"%}</a>',
        }
    )
    loader = make_loader({"app": app, "acme/ui": vendor})

    result = expand_includes('{% include "header.html@app" %}', loader)
    assert result == "<header><a><svg/></a></header>"


def test_commented_include_is_ignored(make_layer, make_loader):
    root = make_layer(
        {"p.html": 'shown{# {% include "missing.html@app" %} #}'}
    )
    loader = make_loader({"app": root})

    text = '{% include "p.html@app" %}{# {% include "gone.html@app" %} #}'
    assert expand_includes(text, loader) == "shown"


def test_text_without_includes_is_untouched(make_layer, make_loader):
    loader = make_loader({"app": make_layer({})})
    assert expand_includes("<p>{# kept #}</p>", loader) == "<p>{# kept #}</p>"


def test_missing_partial(make_layer, make_loader):
    loader = make_loader({"app": make_layer({})})
    with pytest.raises(TemplateNotFound):
        expand_includes('{% include "nope.html@app" %}', loader)


def test_self_include_hits_depth_limit(make_layer, make_loader):
    root = make_layer({"loop.html": 'x{% include "loop.html@app" %}'})
    loader = make_loader({"app": root})

    with pytest.raises(IncludeDepthExceeded) as exc:
        expand_includes('{% include "loop.html@app" %}', loader)
    assert exc.value.depth == MAX_INCLUDE_DEPTH


def test_mutual_include_hits_depth_limit(make_layer, make_loader):
    root = make_layer(
        {
            "a.html": '{% include "b.html@app" %}',
            "b.html": '{% include "a.html@app" %}',
        }
    )
    loader = make_loader({"app": root})
    with pytest.raises(IncludeDepthExceeded):
        expand_includes('{% include "a.html@app" %}', loader)


def test_deep_but_finite_chain_is_allowed(make_layer, make_loader):
    files = {f"p{i}.html": f'{i}{{% include "p{i + 1}.html@app" %}}' for i in range(15)}
    files["p15.html"] = "end"
    loader = make_loader({"app": make_layer(files)})

    result = expand_includes('{% include "p0.html@app" %}', loader)
    assert result == "".join(str(i) for i in range(15)) + "end"
