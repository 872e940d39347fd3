#!/usr/bin/env python3
"""
Report template editor automation

Drives the Setup UI of both orgs with Playwright. Layout data is never read
from the page itself: the editor's own "Quick Save" form submission is
intercepted, read (source org) or rewritten before it is sent (target org).
"""

import logging
import re
import time
from typing import Callable, Dict, Iterable, Optional
from urllib.parse import quote, urlencode

from playwright.sync_api import sync_playwright

from ..core.exceptions import AuthenticationError, MissingReportError
from ..core.layout_blob import extract_layout_param, substitute_layout_param
from ..core.models import SUPPORTED_SUBTYPES

logger = logging.getLogger(__name__)

TEMPLATE_LIST_PATH = '/_ui/support/fieldservice/ui/ServiceReportTemplateLayouts'
TEMPLATE_CLONE_PATH = '/_ui/support/fieldservice/ui/ServiceReportTemplateClone/e'
EDITOR_REQUEST_PATTERN = re.compile(r'/servicereport/serviceReportTemplateEditor\.apexp')
SUBTYPE_SELECT = 'select[name$="childLayoutPicklist:templateList"]'
QUICK_SAVE_BUTTON = "xpath=//button[contains(., 'Quick Save')]"
FAILED_LOGIN_MARKER = 'ec=302'


def css_string(value: str) -> str:
    """Quote a value for use inside a CSS attribute selector"""
    return '"' + value.replace('\\', '\\\\').replace('"', '\\"') + '"'


def make_capture_handler(captured: Dict[str, str]) -> Callable:
    """Route handler that keeps the first layout parameter it sees"""

    def handle(route):
        layout_param = extract_layout_param(route.request.post_data)
        if layout_param and 'layout' not in captured:
            captured['layout'] = layout_param
            logger.debug(f"Captured layout from {route.request.url}")
        route.continue_()

    return handle


def make_substitute_handler(layout_param: str, submitted: Dict[str, int]) -> Callable:
    """Route handler that swaps the layout parameter of every editor submission"""

    def handle(route):
        body = route.request.post_data
        if extract_layout_param(body):
            submitted['count'] = submitted.get('count', 0) + 1
            route.continue_(post_data=substitute_layout_param(body, layout_param))
        else:
            route.continue_()

    return handle


class TemplateEditorSession:
    """One browser with a separate context (cookie jar) per org"""

    def __init__(self, config, orgs: Dict):
        self.config = config
        self.orgs = orgs
        self.delay_ms = config.timeout_between_actions
        self.playwright = None
        self.browser = None
        self.contexts = {}
        self.opened_pages = []

    def __enter__(self):
        self.launch()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def launch(self):
        """Launch Chromium with one context per org"""
        width, height = self.config.window_width, self.config.window_height

        self.playwright = sync_playwright().start()
        self.browser = self.playwright.chromium.launch(
            headless=self.config.headless,
            args=[f'--window-size={width},{height}']
        )
        for label in self.orgs:
            self.contexts[label] = self.browser.new_context(
                viewport={'width': width, 'height': height}
            )

        logger.info(f"Browser launched (headless={self.config.headless})")

    def close(self):
        """Safely close pages, contexts and the browser"""
        self.cleanup_pages()
        for context in self.contexts.values():
            context.close()
        self.contexts = {}
        if self.browser:
            self.browser.close()
            self.browser = None
        if self.playwright:
            self.playwright.stop()
            self.playwright = None
        logger.info("Browser closed")

    def pause(self, page=None):
        # Waiting through the page lets Playwright dispatch route handlers
        if page is not None:
            page.wait_for_timeout(self.delay_ms)
        else:
            time.sleep(self.delay_ms / 1000)

    def new_page(self, label: str):
        page = self.contexts[label].new_page()
        self.opened_pages.append(page)
        return page

    def cleanup_pages(self):
        for page in self.opened_pages:
            if not page.is_closed():
                page.close()
        self.opened_pages = []

    def org_url(self, label: str, path: str) -> str:
        return f"{self.orgs[label].login_url}{path}"

    def login(self, label: str):
        """Open a UI session from the org's API session"""
        org = self.orgs[label]
        if not org.access_token:
            raise AuthenticationError(f"Browser login to {label} org failed: no session. Please run this script again.")

        page = self.new_page(label)
        page.goto(self.org_url(label, f"/secur/frontdoor.jsp?sid={quote(org.access_token, safe='')}"))
        self.pause(page)

        # frontdoor.jsp sometimes bounces back to the login page
        if FAILED_LOGIN_MARKER in page.url:
            raise AuthenticationError(f"Browser login to {label} org failed. Please run this script again.")

        logger.info(f"Logged in to {label} org in browser")

    def create_report(self, report_name: str, label: str = 'target'):
        """Create a report template by cloning the standard one under ``report_name``"""
        page = self.new_page(label)
        query = urlencode({'p1': report_name})
        page.goto(self.org_url(label, f"{TEMPLATE_CLONE_PATH}?{query}"), wait_until='networkidle')
        page.click("input[name='save']")
        self.pause(page)
        logger.info(f"Created report template {report_name} in {label} org")

    def report_links(self, label: str, report_names: Iterable[str]) -> Dict[str, str]:
        """Editor links of the named templates, from the template list page"""
        page = self.new_page(label)
        page.goto(self.org_url(label, TEMPLATE_LIST_PATH), wait_until='networkidle')

        links = {}
        missing = []
        for name in report_names:
            anchor = page.query_selector(f'a[title$={css_string(name)}]')
            href = anchor.get_attribute('href') if anchor else None
            if not href:
                missing.append(f"report template {name} not found in {label} org")
                continue
            logger.info(f"Report link for {name} in {label} org: {href}")
            links[name] = href

        if missing:
            raise MissingReportError(missing)
        return links

    def select_subtype(self, page, subtype: str):
        self.pause(page)
        page.select_option(SUBTYPE_SELECT, label=SUPPORTED_SUBTYPES[subtype])
        self.pause(page)

    def click_quick_save(self, page):
        button = page.query_selector(QUICK_SAVE_BUTTON)
        if button:
            button.click()
            self.pause(page)
        else:
            logger.warning(f"No Quick Save button on {page.url}")
        self.pause(page)

    def open_editor(self, label: str, url: str, subtype: str):
        page = self.new_page(label)
        page.goto(self.org_url(label, url), wait_until='networkidle')
        self.select_subtype(page, subtype)
        return page

    def capture_layout(self, label: str, url: str, subtype: str) -> Optional[str]:
        """Quick Save the template in ``label`` org and return the posted layout parameter"""
        captured = {}
        page = self.open_editor(label, url, subtype)
        page.route(EDITOR_REQUEST_PATTERN, make_capture_handler(captured))
        self.click_quick_save(page)
        return captured.get('layout')

    def submit_layout(self, label: str, url: str, subtype: str, layout_param: str) -> bool:
        """Quick Save the template in ``label`` org with ``layout_param`` as its layout"""
        submitted = {}
        page = self.open_editor(label, url, subtype)
        page.route(EDITOR_REQUEST_PATTERN, make_substitute_handler(layout_param, submitted))
        self.click_quick_save(page)
        return submitted.get('count', 0) > 0
