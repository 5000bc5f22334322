"""
In-page JavaScript used by the fetcher.

Every snippet is an arrow function evaluated through ``page.evaluate`` /
``page.wait_for_function``.  Snippets only read the DOM (or scroll /
expand menus); URL canonicalization happens back in Python.
"""

# Resolves once the DOM has been quiet for ``quietMs`` or ``ceilingMs``
# has elapsed, whichever comes first.
WAIT_FOR_DOM_QUIET = """
({ quietMs, ceilingMs }) => new Promise((resolve) => {
    if (!document.body) { resolve(false); return; }
    let quietTimer = null;
    const done = (settled) => {
        observer.disconnect();
        clearTimeout(quietTimer);
        clearTimeout(ceilingTimer);
        resolve(settled);
    };
    const observer = new MutationObserver(() => {
        clearTimeout(quietTimer);
        quietTimer = setTimeout(() => done(true), quietMs);
    });
    observer.observe(document.body, {
        childList: true, subtree: true, attributes: true, characterData: true,
    });
    quietTimer = setTimeout(() => done(true), quietMs);
    const ceilingTimer = setTimeout(() => done(false), ceilingMs);
})
"""

DETECT_FRAMEWORK = """
() => {
    const w = window;
    if (w.React || w.__REACT_DEVTOOLS_GLOBAL_HOOK__ || document.querySelector('[data-reactroot]')) return 'react';
    if (w.Vue || w.__VUE__ || document.querySelector('[data-v-app]')) return 'vue';
    if (w.ng || w.angular || document.querySelector('[ng-version], [ng-app]')) return 'angular';
    if (w.router || document.querySelector('router-outlet, [router-outlet], [data-router]')) return 'router';
    return null;
}
"""

# True when the body shows content and no visible loading indicator.
CONTENT_READY = """
() => {
    const body = document.body;
    if (!body) return false;
    const indicators = body.querySelectorAll(
        "[class*='loading'], [class*='spinner'], [id*='loading'], [class*='skeleton'], [class*='loader']"
    );
    const loading = Array.from(indicators).some((el) => {
        const style = window.getComputedStyle(el);
        return style.display !== 'none' && style.visibility !== 'hidden' && style.opacity !== '0';
    });
    const text = body.innerText || body.textContent || '';
    const hasContent = text.length > 50
        || body.querySelectorAll('a[href]').length > 0
        || !!body.querySelector("main, article, [role='main'], .content, .app-content, [id*='app'], [id*='root']");
    return !loading && hasContent;
}
"""

SCROLL_TO = """
(fraction) => {
    const height = document.body ? document.body.scrollHeight : 0;
    window.scrollTo(0, height * fraction);
}
"""

EXPAND_NAVIGATION = """
() => {
    const toggles = document.querySelectorAll(
        "[aria-expanded='false'], [class*='menu-toggle'], [class*='nav-toggle']"
    );
    let clicked = 0;
    toggles.forEach((el) => {
        try { el.click(); clicked += 1; } catch (e) { /* detached */ }
    });
    return clicked;
}
"""

SET_HASH = "(hash) => { window.location.hash = hash; }"

HASH_APPLIED = "(hash) => window.location.hash === hash"

EXTRACT_TITLE = """
() => {
    const title = (document.querySelector('title')?.textContent || '').trim();
    if (title) return title;
    return (document.querySelector('h1')?.textContent || '').trim();
}
"""

# Raw link candidates, in document order.  Values are returned as written
# (hash routes as '#/...', relative paths as-is) and resolved in Python.
EXTRACT_LINKS = """
() => {
    const out = [];
    const skip = /^(javascript:|mailto:|tel:|data:|file:)/i;
    const push = (value) => {
        if (!value) return;
        const v = value.trim();
        if (!v || skip.test(v)) return;
        if (v.startsWith('#') && !v.startsWith('#/')) return;
        out.push(v);
    };

    document.querySelectorAll('a[href], area[href]').forEach((el) => push(el.getAttribute('href')));

    const canonical = document.querySelector("link[rel='canonical'][href]");
    if (canonical) push(canonical.getAttribute('href'));

    document.querySelectorAll('[data-href], [data-route], [router-link], [ng-href], [to]').forEach((el) => {
        const v = (el.getAttribute('data-href') || el.getAttribute('data-route')
            || el.getAttribute('router-link') || el.getAttribute('ng-href')
            || el.getAttribute('to') || '').trim();
        if (!v) return;
        if (v.startsWith('#/')) { push(v); return; }
        if (/^https?:/i.test(v) || v.startsWith('/')) { push(v); return; }
        if (!v.includes(':')) push('#/' + v);
    });

    document.querySelectorAll("[onclick*='#/'], [onclick*='location.hash'], [onclick*='router']").forEach((el) => {
        const m = (el.getAttribute('onclick') || '').match(/#\\/[^\\s'"]+/);
        if (m) push(m[0]);
    });
    return out;
}
"""
