"""Unit tests for the page model and the ad-cache purge."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import pytest

from adrefresh.browser.cache import (
    MemoryCacheStorage,
    clear_ad_cache,
    is_ad_related_url,
)
from adrefresh.browser.page import (
    AdContainer,
    AdPage,
    EzStandalone,
    PageEvent,
    PageEventType,
    ScriptTag,
)
from adrefresh.core.exceptions import CacheError

# ---------------------------------------------------------------------------
# AdPage
# ---------------------------------------------------------------------------


class TestAdPageQueries:
    def test_query_by_prefix_and_class(self) -> None:
        page = AdPage(
            [
                AdContainer("adsterra-top"),
                AdContainer("adsterra-side"),
                AdContainer("monetag-1"),
                AdContainer("slot-a", classes={"adsbygoogle"}),
            ]
        )
        assert [c.element_id for c in page.query_id_prefix("adsterra-")] == [
            "adsterra-top",
            "adsterra-side",
        ]
        assert [c.element_id for c in page.query_class("adsbygoogle")] == ["slot-a"]
        assert page.get_element_by_id("missing") is None

    def test_container_clear_drops_markup_and_scripts(self) -> None:
        container = AdContainer("monetag-1", inner_html="<iframe/>")
        container.append_script(ScriptTag("//x/invoke.js"))
        container.clear()
        assert container.inner_html == ""
        assert container.scripts == []

    def test_ez_standalone_drains_queue(self) -> None:
        ez = EzStandalone()
        ez.cmd.append(lambda: ez.config({"limitCookies": True}))
        ez.cmd.append(lambda: ez.show_ads(101, 102))
        assert ez.run_pending() == 2
        assert ez.cmd == []
        assert ez.options == {"limitCookies": True}
        assert ez.shown == [(101, 102)]


class TestAdPageEvents:
    def test_listeners_are_deduplicated_and_removable(self) -> None:
        page = AdPage()
        seen: list[PageEvent] = []
        page.add_event_listener(PageEventType.FOCUS, seen.append)
        page.add_event_listener(PageEventType.FOCUS, seen.append)
        assert page.listener_count(PageEventType.FOCUS) == 1

        page.dispatch_event(PageEvent(PageEventType.FOCUS))
        page.remove_event_listener(PageEventType.FOCUS, seen.append)
        page.dispatch_event(PageEvent(PageEventType.FOCUS))
        assert len(seen) == 1

    def test_raising_listener_does_not_stop_others(self, caplog: pytest.LogCaptureFixture) -> None:
        page = AdPage()
        seen: list[PageEvent] = []

        def _boom(_: PageEvent) -> None:
            raise RuntimeError("listener bug")

        page.add_event_listener(PageEventType.PAGE_SHOW, _boom)
        page.add_event_listener(PageEventType.PAGE_SHOW, seen.append)
        page.dispatch_event(PageEvent(PageEventType.PAGE_SHOW, persisted=True))

        assert len(seen) == 1
        assert "listener bug" in caplog.text

    def test_set_hidden_dispatches_only_on_change(self) -> None:
        page = AdPage()
        seen: list[Any] = []
        page.add_event_listener(PageEventType.VISIBILITY_CHANGE, seen.append)

        page.set_hidden(False)
        page.set_hidden(True)
        page.set_hidden(True)
        page.set_hidden(False)

        assert len(seen) == 2
        assert page.hidden is False


# ---------------------------------------------------------------------------
# Cache purge
# ---------------------------------------------------------------------------


class TestClearAdCache:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://pagead2.googlesyndication.com/pagead/js/adsbygoogle.js", True),
            ("https://www.highperformanceformat.com/abc/invoke.js", True),
            ("https://g.ezoic.com/ezoic/sa.min.js", True),
            ("https://example.com/app.js", False),
        ],
    )
    def test_is_ad_related_url(self, url: str, expected: bool) -> None:
        assert is_ad_related_url(url) is expected

    async def test_deletes_only_ad_entries_across_caches(self) -> None:
        storage = MemoryCacheStorage()
        assets = storage.seed(
            "assets",
            ["https://example.com/app.js", "https://securepubads.doubleclick.net/tag.js"],
        )
        vendor = storage.seed("vendor", ["https://cdn.monetag.com/loader.js"])

        removed = await clear_ad_cache(storage)

        assert removed == 2
        assert "https://example.com/app.js" in assets
        assert len(assets) == 1
        assert len(vendor) == 0

    async def test_empty_storage(self) -> None:
        assert await clear_ad_cache(MemoryCacheStorage()) == 0

    async def test_failure_is_wrapped_as_cache_error(self) -> None:
        storage = MemoryCacheStorage()
        storage.keys = AsyncMock(side_effect=OSError("quota"))  # type: ignore[method-assign]

        with pytest.raises(CacheError) as exc_info:
            await clear_ad_cache(storage)
        assert exc_info.value.retryable is False
        assert "quota" in str(exc_info.value)
