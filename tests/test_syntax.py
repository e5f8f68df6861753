import pytest

from layerview.errors import TemplateSyntaxError
from layerview.runtime import runtime_scope
from layerview.syntax import (
    SyntaxCompiler,
    remove_html_comments,
    trim_whitespace,
)


def render(text, allow_inline_code=True, **variables):
    out = []
    namespace = dict(variables)
    namespace.update(runtime_scope(out.append))
    exec(SyntaxCompiler(allow_inline_code).compile(text), namespace)
    return "".join(out)


def test_plain_text():
    assert render("<p>hello</p>") == "<p>hello</p>"


def test_escaped_echo():
    assert render("{{ name }}", name="<b>x</b>") == "&lt;b&gt;x&lt;/b&gt;"


def test_raw_echo():
    assert render("{{{ name }}}", name="<b>x</b>") == "<b>x</b>"


def test_expressions_are_python():
    assert render("{{ user['name'].upper() }}", user={"name": "ann"}) == "ANN"
    assert render("{{ 1 + 2 }}") == "3"


@pytest.mark.parametrize(
    "text",
    ["[{{ missing }}]", "[{{ none }}]", "[{{ d['nope'] }}]", "[{{ items[5] }}]", "[{{ d.nope }}]"],
)
def test_escaped_echo_of_missing_value_is_empty(text):
    assert render(text, none=None, d={}, items=[]) == "[]"


def test_raw_echo_of_none_is_empty():
    assert render("[{{{ value }}}]", value=None) == "[]"


def test_raw_echo_of_missing_name_raises():
    with pytest.raises(NameError):
        render("{{{ missing }}}")


def test_if_elseif_else():
    text = "{% if n > 1 %}many{% elseif n == 1 %}one{% else %}none{% endif %}"
    assert render(text, n=3) == "many"
    assert render(text, n=1) == "one"
    assert render(text, n=0) == "none"


def test_if_with_parentheses():
    assert render("{% if(flag) %}yes{% endif %}", flag=True) == "yes"


def test_empty_branches_compile():
    assert render("{% if x %}{% else %}{% endif %}done", x=True) == "done"


def test_foreach():
    text = "<ul>{% foreach item in items %}<li>{{ item }}</li>{% endforeach %}</ul>"
    assert render(text, items=["a", "<b>"]) == "<ul><li>a</li><li>&lt;b&gt;</li></ul>"


@pytest.mark.parametrize(
    "clause",
    ["(i in range(3))", "i in range(3)", "(i in (0, 1, 2))"],
)
def test_foreach_clause_forms(clause):
    assert render("{% foreach " + clause + " %}{{ i }}{% endforeach %}") == "012"


def test_foreach_tuple_target():
    text = "{% foreach (k, v) in pairs %}{{ k }}={{ v }};{% endforeach %}"
    assert render(text, pairs=[("a", 1), ("b", 2)]) == "a=1;b=2;"


def test_nested_control_flow():
    text = (
        "{% foreach row in rows %}"
        "{% if row %}{% foreach c in row %}{{ c }}{% endforeach %}{% else %}-{% endif %}|"
        "{% endforeach %}"
    )
    assert render(text, rows=[[1, 2], [], [3]]) == "12|-|3|"


def test_inline_code_allowed():
    assert render("{? total = 2 ?}{?= total * 3 ?}") == "6"


def test_inline_code_block():
    text = "{?\nparts = []\nfor i in range(3):\n    parts.append(str(i))\n?}{?= ','.join(parts) ?}"
    assert render(text) == "0,1,2"


def test_inline_code_dropped_when_disallowed():
    text = "a{? raise RuntimeError('boom') ?}b{?= 'secret' ?}c"
    assert render(text, allow_inline_code=False) == "abc"


def test_residual_structural_tags_are_stripped():
    text = "{% block x %}in{% endblock %}{% yield y %}"
    assert render(text) == "in"


@pytest.mark.parametrize(
    "text",
    [
        "{% endif %}",
        "{% if x %}open",
        "{% foreach i in items %}open",
        "{% else %}",
        "{% elseif x %}",
        "{% if x %}{% endforeach %}",
        "{% foreach i in items %}{% endif %}",
        "{% if x %}{% else %}{% else %}{% endif %}",
        "{% foreach items %}{% endforeach %}",
        "{% unknown %}",
        "{% %}",
        "{{ }}",
    ],
)
def test_bad_templates(text):
    with pytest.raises(TemplateSyntaxError):
        SyntaxCompiler().compile(text)


def test_remove_html_comments():
    text = "<p>a</p><!-- note --><!--[if IE]><p>ie</p><![endif]--><p>b</p>"
    assert remove_html_comments(text) == "<p>a</p><!--[if IE]><p>ie</p><![endif]--><p>b</p>"


def test_trim_whitespace():
    text = "<p>a   \n  b</p>\n\n<pre>  x\n  y</pre>  {%  if  x  %}"
    assert trim_whitespace(text) == "<p>a b</p> <pre>  x\n  y</pre> {%  if  x  %}"
