"""
Shadow-DOM-aware query helpers.

Menu content on some pages lives inside web-component shadow trees that
``document.querySelector`` never reaches. ``SHADOW_DOM_HELPERS`` defines
recursive equivalents inside the page; scripts that need them are built with
``with_shadow_helpers`` so the helpers are in scope when they run.
"""


SHADOW_DOM_HELPERS = """
    const querySelectorDeep = (selector, root = document) => {
        const element = root.querySelector(selector);
        if (element) return element;
        for (const el of root.querySelectorAll('*')) {
            if (el.shadowRoot) {
                const found = querySelectorDeep(selector, el.shadowRoot);
                if (found) return found;
            }
        }
        return null;
    };

    const querySelectorAllDeep = (selector, root = document) => {
        const results = Array.from(root.querySelectorAll(selector));
        for (const el of root.querySelectorAll('*')) {
            if (el.shadowRoot) {
                results.push(...querySelectorAllDeep(selector, el.shadowRoot));
            }
        }
        return results;
    };

    const getTextContentDeep = (root = document) => {
        let text = '';
        const traverse = (node) => {
            if (node.nodeType === Node.TEXT_NODE) {
                text += node.textContent || '';
                return;
            }
            if (node.shadowRoot) traverse(node.shadowRoot);
            for (const child of node.childNodes) traverse(child);
        };
        traverse(root);
        return text;
    };
"""


def with_shadow_helpers(body: str, params: str = "") -> str:
    """Wrap a function body so it can call the deep query helpers"""
    return f"({params}) => {{\n{SHADOW_DOM_HELPERS}\n{body}\n}}"


QUERY_DEEP_TEXT_JS = with_shadow_helpers("""
    const element = querySelectorDeep(selector);
    return element ? getTextContentDeep(element).trim() : null;
""", params="selector")

async def query_deep_text(session, selector: str):
    """Text of the first element matching ``selector`` anywhere in the page, shadow roots included"""
    return await session.evaluate(QUERY_DEEP_TEXT_JS, selector)


COUNT_DEEP_JS = with_shadow_helpers("""
    return querySelectorAllDeep(selector).length;
""", params="selector")


async def count_deep(session, selector: str) -> int:
    return await session.evaluate(COUNT_DEEP_JS, selector) or 0
