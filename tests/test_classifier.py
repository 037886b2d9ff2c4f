"""Tests for page classification."""

import pytest

from conftest import (
    blank_html,
    blocked_html,
    card_html,
    listing_html,
    no_results_html,
    page,
)
from listing_crawler.crawler.classifier import classify_page, ensure_not_blocked
from listing_crawler.errors import BlockedError
from listing_crawler.models import PageClass


class TestClassifyPage:

    def test_ready(self):
        assert classify_page(page(listing_html([card_html("a")]))) is PageClass.READY

    def test_blank_page_is_ready(self):
        assert classify_page(page(blank_html())) is PageClass.READY

    def test_title_marker(self):
        assert classify_page(page(blocked_html())) is PageClass.BLOCKED

    def test_body_marker(self):
        html = "<html><body><p>Please create an account or sign in to continue</p></body></html>"
        assert classify_page(page(html)) is PageClass.BLOCKED

    def test_wall_redirect_in_body_text(self):
        html = "<html><body><p>Redirecting to /account/login?pgid=captcha</p></body></html>"
        assert classify_page(page(html)) is PageClass.BLOCKED

    def test_link_to_sign_in_is_not_a_wall(self):
        cards = [card_html("a"), '<a href="/account/login?pgid=auth">Sign in</a>']
        assert classify_page(page(listing_html(cards))) is PageClass.READY

    def test_url_marker(self):
        html = listing_html([card_html("a")])
        assert classify_page(page(html, url="https://indeed.com/common/error?x=1")) is PageClass.BLOCKED

    def test_no_results_text(self):
        assert classify_page(page(no_results_html())) is PageClass.EMPTY

    def test_no_results_selector(self):
        html = '<html><body><div class="no_results_yield">Nothing</div></body></html>'
        assert classify_page(page(html)) is PageClass.EMPTY

    def test_block_beats_empty(self):
        html = (
            "<html><head><title>Just a moment...</title></head>"
            "<body>did not match any jobs</body></html>"
        )
        assert classify_page(page(html)) is PageClass.BLOCKED


class TestEnsureNotBlocked:

    def test_raises_on_wall(self, make_request):
        with pytest.raises(BlockedError) as exc_info:
            ensure_not_blocked(page(blocked_html()), make_request(page_index=1))
        assert exc_info.value.retire_session is True
        assert "page 2" in str(exc_info.value)

    def test_returns_class(self, make_request):
        assert ensure_not_blocked(page(no_results_html()), make_request()) is PageClass.EMPTY
        assert ensure_not_blocked(page(listing_html([card_html("a")])), make_request()) is PageClass.READY
