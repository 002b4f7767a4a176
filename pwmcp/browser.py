"""Browser session manager: one Playwright browser, context and page.

Usage from a test script:

    from pwmcp.browser import BrowserManager

    async with BrowserManager() as browser:        # launch() / shutdown()
        await browser.navigate("https://example.com")
        info = await browser.get_element_info("a", timeout_ms=5000)
        await browser.click("a")
        await browser.screenshot(path="screenshots/after-click.png")

Every mutating operation runs under a single asyncio.Lock, so concurrent
callers (e.g. overlapping tool calls from the MCP server) never interleave
against the same handles. Failed steps leave a full-page error screenshot in
the configured screenshot directory.
"""
from __future__ import annotations

import asyncio
import base64
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import structlog
from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Locator,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeout,
    async_playwright,
)

from pwmcp import config as config_module
from pwmcp.config import Config
from pwmcp.errors import (
    ActionabilityTimeoutError,
    ActionError,
    AlreadyLaunchedError,
    NotLaunchedError,
)
from pwmcp.fs import clean_directory, ensure_dir, resolve_absolute

log = structlog.get_logger(__name__)

T = TypeVar("T")

_TEXT_LIMIT = 200


@dataclass
class ElementInfo:
    """Result of inspecting a selector. ``found=False`` is not an error."""

    selector: str
    found: bool
    tag: str | None = None
    text: str | None = None
    bounding_box: dict[str, float] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"selector": self.selector, "found": self.found}
        if self.tag is not None:
            data["tag"] = self.tag
        if self.text is not None:
            data["text"] = self.text
        if self.bounding_box is not None:
            data["boundingBox"] = self.bounding_box
        return data


def build_error_screenshot_name(step: str, now: datetime | None = None) -> str:
    """error-20260127T153010Z-click_button_submit.png (no colons, no millis)."""
    now = now or datetime.now(timezone.utc)
    timestamp = now.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    safe = re.sub(r"[^a-zA-Z0-9]+", "_", step).strip("_")
    return f"error-{timestamp}-{safe}.png"


def _unique_path(path: Path) -> Path:
    if not path.exists():
        return path
    n = 1
    while True:
        candidate = path.with_name(f"{path.stem}-{n}{path.suffix}")
        if not candidate.exists():
            return candidate
        n += 1


def _truncate(text: str | None) -> str | None:
    if text and len(text) > _TEXT_LIMIT:
        return text[:_TEXT_LIMIT] + "..."
    return text


def _wrap_action_error(
    action: str, selector: str, timeout_ms: int, exc: PlaywrightError
) -> ActionError:
    cls = ActionabilityTimeoutError if isinstance(exc, PlaywrightTimeout) else ActionError
    return cls(action, selector, timeout_ms, exc.message)


class BrowserManager:
    """Owns the lifecycle of a single browser session."""

    def __init__(
        self,
        cfg: Config | None = None,
        viewport: tuple[int, int] = (1280, 720),
    ) -> None:
        self.cfg = cfg if cfg is not None else config_module.load()
        self.viewport = {"width": viewport[0], "height": viewport[1]}

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

        self._lock = asyncio.Lock()
        self._shutting_down = False

    # -- Lifecycle -------------------------------------------------------------

    async def launch(
        self, headless: bool | None = None, slow_mo_ms: int | None = None
    ) -> None:
        """Launch browser, isolated context and one page as a single unit.

        Raises AlreadyLaunchedError if a session is active; the existing
        session is left untouched.
        """
        async with self._lock:
            if self._browser is not None:
                raise AlreadyLaunchedError()
            await self._run_step("launch", lambda: self._launch(headless, slow_mo_ms))

    async def _launch(self, headless: bool | None, slow_mo_ms: int | None) -> None:
        headless = self.cfg.headless if headless is None else headless
        slow_mo = self.cfg.slow_mo_ms if slow_mo_ms is None else slow_mo_ms
        log.debug("launch options", headless=headless, slow_mo_ms=slow_mo)

        ensure_dir(self.cfg.screenshot_path)

        playwright = await async_playwright().start()
        browser: Browser | None = None
        context: BrowserContext | None = None
        try:
            browser = await playwright.chromium.launch(headless=headless, slow_mo=slow_mo)
            context = await browser.new_context(viewport=self.viewport)
            page = await context.new_page()
            page.set_default_timeout(self.cfg.default_timeout_ms)
        except Exception:
            # Never keep a half-launched session around.
            await _close_quietly(context, browser)
            await _stop_quietly(playwright)
            raise

        self._playwright = playwright
        self._browser = browser
        self._context = context
        self._page = page

    async def quit(self) -> None:
        """Close page, context and browser in that order.

        All handles are cleared even if a close fails; the first failure is
        re-raised once every close has been attempted.
        """
        async with self._lock:
            self._require_page("quit")
            await self._run_step("quit", self._close_all)

    async def shutdown(self) -> None:
        """Idempotent teardown for signal and error paths. Never raises.

        Waits for any in-flight operation (including a launch) to release the
        lock, so a session that finishes launching is still torn down.
        """
        if self._shutting_down:
            log.debug("shutdown already in progress")
            return
        self._shutting_down = True
        try:
            async with self._lock:
                if not self._has_handles():
                    return
                await self._run_step("shutdown", self._close_all)
        except Exception as exc:
            log.error("error during shutdown", error=str(exc))
        finally:
            self._shutting_down = False

    async def _close_all(self) -> None:
        first_error: Exception | None = None
        handles: list[tuple[str, Any]] = [
            ("page", self._page),
            ("context", self._context),
            ("browser", self._browser),
        ]
        try:
            for name, handle in handles:
                if handle is None:
                    continue
                try:
                    await handle.close()
                except Exception as exc:
                    log.warning("close failed", handle=name, error=str(exc))
                    if first_error is None:
                        first_error = exc
            if self._playwright is not None:
                try:
                    await self._playwright.stop()
                except Exception as exc:
                    log.warning("playwright stop failed", error=str(exc))
                    if first_error is None:
                        first_error = exc
        finally:
            self._page = None
            self._context = None
            self._browser = None
            self._playwright = None
        if first_error is not None:
            raise first_error

    async def __aenter__(self) -> BrowserManager:
        await self.launch()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.shutdown()

    # -- State -----------------------------------------------------------------

    @property
    def is_launched(self) -> bool:
        return self._browser is not None and self._page is not None

    @property
    def page(self) -> Page | None:
        """Current page for advanced usage, or None when not launched."""
        return self._page

    @property
    def context(self) -> BrowserContext | None:
        return self._context

    @property
    def browser(self) -> Browser | None:
        return self._browser

    def _has_handles(self) -> bool:
        return any(
            h is not None
            for h in (self._page, self._context, self._browser, self._playwright)
        )

    def _require_page(self, operation: str) -> Page:
        if self._browser is None or self._page is None:
            raise NotLaunchedError(operation)
        return self._page

    def _timeout(self, timeout_ms: int | None) -> int:
        return self.cfg.default_timeout_ms if timeout_ms is None else timeout_ms

    # -- Navigation ------------------------------------------------------------

    async def navigate(self, url: str) -> None:
        """Go to *url*, returning once the DOM is parsed (not full load)."""
        async with self._lock:
            page = self._require_page("navigate")

            async def goto() -> None:
                await page.goto(url, wait_until="domcontentloaded")

            await self._run_step(f"navigate to {url}", goto)

    async def get_title(self) -> str:
        return await self._require_page("get_title").title()

    async def get_url(self) -> str:
        return self._require_page("get_url").url

    async def wait_for_selector(self, selector: str, timeout_ms: int | None = None) -> None:
        """Wait until the first match of *selector* is visible."""
        async with self._lock:
            page = self._require_page("wait_for_selector")
            timeout = self._timeout(timeout_ms)

            async def wait() -> None:
                try:
                    await page.locator(selector).first.wait_for(
                        state="visible", timeout=timeout
                    )
                except PlaywrightError as exc:
                    raise _wrap_action_error("Wait", selector, timeout, exc) from exc

            await self._run_step(f'wait for selector "{selector}"', wait)

    # -- Elements --------------------------------------------------------------

    def find(self, selector: str) -> Locator:
        """Lazy locator over all current matches; does not wait or validate."""
        return self._require_page("find").locator(selector)

    async def click(self, selector: str, timeout_ms: int | None = None) -> None:
        async with self._lock:
            page = self._require_page("click")
            timeout = self._timeout(timeout_ms)

            async def do_click() -> None:
                try:
                    await page.locator(selector).click(timeout=timeout)
                except PlaywrightError as exc:
                    raise _wrap_action_error("Click", selector, timeout, exc) from exc

            await self._run_step(f'click "{selector}"', do_click)

    async def type(
        self,
        selector: str,
        text: str,
        timeout_ms: int | None = None,
        clear: bool = True,
    ) -> None:
        """Enter *text* into the element.

        With ``clear`` (the default) the content is replaced via ``fill``.
        Without it the keys are pressed one by one, appending to whatever the
        element already holds.
        """
        async with self._lock:
            page = self._require_page("type")
            timeout = self._timeout(timeout_ms)

            async def do_type() -> None:
                locator = page.locator(selector)
                try:
                    if clear:
                        await locator.fill(text, timeout=timeout)
                    else:
                        await locator.press_sequentially(text, timeout=timeout)
                except PlaywrightError as exc:
                    raise _wrap_action_error("Type", selector, timeout, exc) from exc

            await self._run_step(f'type into "{selector}"', do_type)

    async def get_element_info(
        self, selector: str, timeout_ms: int | None = None
    ) -> ElementInfo:
        """Inspect the first match; absence within the timeout is a normal result."""
        async with self._lock:
            page = self._require_page("get_element_info")
            timeout = self._timeout(timeout_ms)

            async def inspect() -> ElementInfo:
                loc = page.locator(selector).first
                try:
                    await loc.wait_for(state="attached", timeout=timeout)
                    tag = await loc.evaluate("el => el.tagName.toLowerCase()")
                    text = await loc.inner_text(timeout=timeout)
                    box = await loc.bounding_box()
                except PlaywrightError as exc:
                    log.debug(
                        "element not found",
                        selector=selector,
                        timeout_ms=timeout,
                        error=exc.message,
                    )
                    return ElementInfo(selector=selector, found=False)
                return ElementInfo(
                    selector=selector,
                    found=True,
                    tag=tag,
                    text=_truncate(text),
                    bounding_box=dict(box) if box else None,
                )

            return await self._run_step(f'get element info for "{selector}"', inspect)

    # -- Screenshot ------------------------------------------------------------

    async def screenshot(
        self,
        path: str | Path | None = None,
        full_page: bool = False,
        return_base64: bool = False,
    ) -> bytes | str:
        """Capture a PNG of the page; optionally save it to *path*.

        Returns raw bytes, or a base64 string when *return_base64* is set.
        """
        async with self._lock:
            page = self._require_page("screenshot")

            async def capture() -> bytes | str:
                target: Path | None = None
                if path is not None:
                    target = resolve_absolute(path)
                    ensure_dir(target.parent)
                data = await page.screenshot(
                    path=str(target) if target else None,
                    full_page=full_page,
                    type="png",
                )
                if return_base64:
                    return base64.b64encode(data).decode("ascii")
                return data

            return await self._run_step("screenshot", capture)

    def clean_screenshots(self, pattern: str = "*.png") -> int:
        """Delete files matching *pattern* from the screenshot directory."""
        directory = self.cfg.screenshot_path
        log.info("cleaning screenshots", directory=str(directory), pattern=pattern)
        deleted = clean_directory(directory, pattern)
        log.info("screenshots deleted", count=deleted)
        return deleted

    # -- Step runner -----------------------------------------------------------

    async def _run_step(self, step: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Time and log *fn*; on failure capture an error screenshot and re-raise."""
        start = time.monotonic()
        log.info("step started", step=step)
        try:
            result = await fn()
        except Exception as exc:
            duration_ms = int((time.monotonic() - start) * 1000)
            log.error("step failed", step=step, duration_ms=duration_ms, error=str(exc))
            await self._capture_error_screenshot(step)
            raise
        duration_ms = int((time.monotonic() - start) * 1000)
        log.info("step completed", step=step, duration_ms=duration_ms)
        return result

    async def _capture_error_screenshot(self, step: str) -> Path | None:
        """Best effort: a failure here must never mask the original error."""
        page = self._page
        if page is None:
            log.debug("no page for error screenshot", step=step)
            return None
        try:
            directory = ensure_dir(self.cfg.screenshot_path)
            path = _unique_path(directory / build_error_screenshot_name(step))
            await page.screenshot(path=str(path), full_page=True, type="png")
        except Exception as exc:
            log.debug("error screenshot failed", step=step, error=str(exc))
            return None
        log.info("error screenshot saved", path=str(path))
        return path


async def _close_quietly(*handles: Any) -> None:
    for handle in handles:
        if handle is None:
            continue
        try:
            await handle.close()
        except Exception as exc:
            log.debug("close during failed launch", error=str(exc))


async def _stop_quietly(playwright: Playwright) -> None:
    try:
        await playwright.stop()
    except Exception as exc:
        log.debug("playwright stop during failed launch", error=str(exc))
