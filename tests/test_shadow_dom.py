import asyncio

from menu_scraper import shadow_dom

from conftest import FakeSession


def test_with_shadow_helpers_wraps_body_with_params():
    script = shadow_dom.with_shadow_helpers("return selector;", params="selector")

    assert script.startswith("(selector) => {")
    assert "querySelectorAllDeep" in script
    assert script.rstrip().endswith("return selector;\n}")


def test_query_helpers_pass_selector_to_page():
    session = FakeSession({
        shadow_dom.QUERY_DEEP_TEXT_JS: lambda selector: f"text of {selector}",
        shadow_dom.COUNT_DEEP_JS: 2,
    })

    async def run():
        return (
            await shadow_dom.query_deep_text(session, '[role="main"]'),
            await shadow_dom.count_deep(session, '[role="tablist"]'),
        )

    assert asyncio.run(run()) == ('text of [role="main"]', 2)
    assert [arg for _, arg in session.evaluations] == ['[role="main"]', '[role="tablist"]']


def test_count_deep_defaults_to_zero():
    session = FakeSession()

    assert asyncio.run(shadow_dom.count_deep(session, "li")) == 0
