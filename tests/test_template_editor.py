"""
Unit tests for the template editor driver, using fake Playwright objects.
"""

import pytest

from template_migrator.browser.template_editor import (
    EDITOR_REQUEST_PATTERN,
    QUICK_SAVE_BUTTON,
    SUBTYPE_SELECT,
    TemplateEditorSession,
    css_string,
    make_capture_handler,
    make_substitute_handler,
)
from template_migrator.core.exceptions import AuthenticationError, MissingReportError

LAYOUT = 'j_id0%3Af%3AjsonLayout=%7B%22a%22%3A1%7D'
EDITOR_URL = 'https://source.example.com/servicereport/serviceReportTemplateEditor.apexp'


class FakeRequest:
    def __init__(self, post_data, url=EDITOR_URL):
        self.post_data = post_data
        self.url = url


class FakeRoute:
    def __init__(self, post_data):
        self.request = FakeRequest(post_data)
        self.continued = []

    def continue_(self, **kwargs):
        self.continued.append(kwargs)


class FakeAnchor:
    def __init__(self, href):
        self.href = href

    def get_attribute(self, name):
        return self.href if name == 'href' else None


class FakeButton:
    def __init__(self, page):
        self.page = page

    def click(self):
        # the editor posts its form to the editor URL
        for pattern, handler in self.page.routes:
            if pattern.search(EDITOR_URL):
                route = FakeRoute(self.page.form_body)
                handler(route)
                self.page.sent.extend(route.continued)


class FakePage:
    def __init__(self, anchors=None, landing_url=None, form_body=None, has_quick_save=True):
        self.anchors = anchors or {}
        self.landing_url = landing_url
        self.form_body = form_body
        self.has_quick_save = has_quick_save
        self.url = ''
        self.visited = []
        self.selected = []
        self.routes = []
        self.sent = []
        self.closed = False

    def goto(self, url, **kwargs):
        self.visited.append(url)
        self.url = self.landing_url or url

    def wait_for_timeout(self, ms):
        pass

    def select_option(self, selector, label=None):
        self.selected.append((selector, label))

    def route(self, pattern, handler):
        self.routes.append((pattern, handler))

    def query_selector(self, selector):
        if selector == QUICK_SAVE_BUTTON:
            return FakeButton(self) if self.has_quick_save else None
        for name, href in self.anchors.items():
            if selector == f'a[title$={css_string(name)}]':
                return FakeAnchor(href)
        return None

    def is_closed(self):
        return self.closed

    def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, page):
        self.page = page

    def new_page(self):
        return self.page


def make_session(config, orgs, label, page):
    session = TemplateEditorSession(config, orgs)
    session.contexts = {label: FakeContext(page)}
    return session


class TestRouteHandlers:
    """Interception of editor form submissions."""

    def test_capture_keeps_first_layout(self):
        captured = {}
        handler = make_capture_handler(captured)
        first, second = FakeRoute(f'a=1&{LAYOUT}'), FakeRoute('j_id0%3Af%3AjsonLayout=%7B%7D')

        handler(first)
        handler(second)

        assert captured == {'layout': LAYOUT}
        assert first.continued == [{}]
        assert second.continued == [{}]

    def test_capture_ignores_requests_without_layout(self):
        captured = {}
        route = FakeRoute(None)

        make_capture_handler(captured)(route)

        assert captured == {}
        assert route.continued == [{}]

    def test_substitute_rewrites_body(self):
        submitted = {}
        route = FakeRoute('a=1&j_id0%3Af%3AjsonLayout=OLD&b=2')

        make_substitute_handler(LAYOUT, submitted)(route)

        assert route.continued == [{'post_data': f'a=1&{LAYOUT}&b=2'}]
        assert submitted == {'count': 1}

    def test_substitute_passes_other_requests_through(self):
        submitted = {}
        route = FakeRoute('a=1')

        make_substitute_handler(LAYOUT, submitted)(route)

        assert route.continued == [{}]
        assert submitted == {}


class TestCssString:
    def test_quotes_are_escaped(self):
        assert css_string('Say "hi"') == '"Say \\"hi\\""'


class TestReportLinks:
    """Reading template links from the list page."""

    def test_returns_links_for_all_names(self, migration_config, orgs):
        page = FakePage(anchors={'Visit Report': '/0SLxx0000000001', 'Install': '/0SLxx0000000002'})
        session = make_session(migration_config, orgs, 'source', page)

        links = session.report_links('source', ['Visit Report', 'Install'])

        assert links == {'Visit Report': '/0SLxx0000000001', 'Install': '/0SLxx0000000002'}
        assert page.visited == ['https://source.example.com/_ui/support/fieldservice/ui/ServiceReportTemplateLayouts']

    def test_missing_reports_are_batched(self, migration_config, orgs):
        page = FakePage(anchors={'Visit Report': '/0SLxx0000000001'})
        session = make_session(migration_config, orgs, 'target', page)

        with pytest.raises(MissingReportError) as exc_info:
            session.report_links('target', ['Visit Report', 'Install', 'Repair'])

        assert exc_info.value.messages == [
            'report template Install not found in target org',
            'report template Repair not found in target org',
        ]


class TestEditorSubmissions:
    """Capturing and replacing layouts through Quick Save."""

    def test_capture_returns_posted_layout(self, migration_config, orgs):
        page = FakePage(form_body=f'a=1&{LAYOUT}&b=2')
        session = make_session(migration_config, orgs, 'source', page)

        layout = session.capture_layout('source', '/0SLxx0000000001', 'SA_WOLI')

        assert layout == LAYOUT
        assert page.visited == ['https://source.example.com/0SLxx0000000001']
        assert page.selected == [(SUBTYPE_SELECT, 'Service Appointment for Work Order Line Item')]
        assert page.routes[0][0] is EDITOR_REQUEST_PATTERN
        assert page.sent == [{}]

    def test_capture_without_quick_save_button_returns_none(self, migration_config, orgs):
        page = FakePage(form_body=LAYOUT, has_quick_save=False)
        session = make_session(migration_config, orgs, 'source', page)

        assert session.capture_layout('source', '/0SLxx0000000001', 'WO') is None
        assert page.sent == []

    def test_submit_replaces_posted_layout(self, migration_config, orgs):
        page = FakePage(form_body='a=1&j_id0%3Af%3AjsonLayout=OLD')
        session = make_session(migration_config, orgs, 'target', page)

        assert session.submit_layout('target', '/0SLxx0000000009', 'WO', LAYOUT) is True
        assert page.selected == [(SUBTYPE_SELECT, 'Work Order')]
        assert page.routes[0][0] is EDITOR_REQUEST_PATTERN
        assert page.sent == [{'post_data': f'a=1&{LAYOUT}'}]

    def test_submit_without_quick_save_button_returns_false(self, migration_config, orgs):
        page = FakePage(form_body='a=1&j_id0%3Af%3AjsonLayout=OLD', has_quick_save=False)
        session = make_session(migration_config, orgs, 'target', page)

        assert session.submit_layout('target', '/0SLxx0000000009', 'WO', LAYOUT) is False

    def test_submit_without_layout_in_form_returns_false(self, migration_config, orgs):
        page = FakePage(form_body='a=1')
        session = make_session(migration_config, orgs, 'target', page)

        assert session.submit_layout('target', '/0SLxx0000000009', 'WO', LAYOUT) is False
        assert page.sent == [{}]


class TestLogin:
    """Frontdoor login in the browser."""

    def test_successful_login_uses_frontdoor(self, migration_config, orgs):
        page = FakePage()
        session = make_session(migration_config, orgs, 'source', page)

        session.login('source')

        assert page.visited == ['https://source.example.com/secur/frontdoor.jsp?sid=SRC']

    def test_redirect_to_login_page_raises(self, migration_config, orgs):
        page = FakePage(landing_url='https://source.example.com/?ec=302&startURL=%2Fhome')
        session = make_session(migration_config, orgs, 'source', page)

        with pytest.raises(AuthenticationError):
            session.login('source')

    def test_missing_session_raises(self, migration_config, orgs):
        orgs['target'].access_token = None
        session = make_session(migration_config, orgs, 'target', FakePage())

        with pytest.raises(AuthenticationError):
            session.login('target')

    def test_cleanup_closes_opened_pages(self, migration_config, orgs):
        page = FakePage()
        session = make_session(migration_config, orgs, 'source', page)
        session.login('source')

        session.cleanup_pages()

        assert page.closed is True
        assert session.opened_pages == []
