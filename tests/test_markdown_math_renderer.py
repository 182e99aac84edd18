from classquiz.core.markdown_math_renderer import EMPTY_CONTENT_HTML, MarkdownMathRenderer


def test_math_survives_markdown():
    html = MarkdownMathRenderer().render_fragment("Compute **fast**: $a_1 * b_2 < c_1 * d_2$")

    assert "<strong>fast</strong>" in html
    assert "$a_1 * b_2 &lt; c_1 * d_2$" in html
    assert "<em>" not in html


def test_display_math_and_inline_answers():
    renderer = MarkdownMathRenderer()

    assert "$$x_1 + x_2$$" in renderer.render_fragment("$$x_1 + x_2$$")
    assert renderer.render_inline("$\\frac{1}{2}$ *exactly*") == "$\\frac{1}{2}$ <em>exactly</em>"


def test_blank_content_and_raw_html():
    renderer = MarkdownMathRenderer()

    assert renderer.render_fragment("   ") == EMPTY_CONTENT_HTML
    assert "<script>" not in renderer.render_fragment("<script>alert(1)</script>")
