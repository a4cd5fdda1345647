"""
Selector fallback chains and fixed-delay retries.

A "scope" is anything with a ``locator()`` method: a Page, a Frame or a
FrameLocator. Every helper here is best effort: a selector that errors is
treated the same as a selector that matched nothing.
"""
import asyncio
from typing import Awaitable, Callable, Iterable, Optional, Tuple, TypeVar

from ..logging_config import get_logger

logger = get_logger("wfpilot.locators")

T = TypeVar("T")


async def is_present(locator) -> bool:
    """True when the locator matches at least one visible element."""
    try:
        return (await locator.count()) > 0 and await locator.is_visible()
    except Exception:
        return False


async def first_visible(scope, selectors: Iterable[str]) -> Optional[Tuple[str, object]]:
    """Return ``(selector, locator)`` for the first selector with a visible match."""
    for selector in selectors:
        try:
            candidate = scope.locator(selector).first
            if await is_present(candidate):
                return selector, candidate
        except Exception as e:
            logger.debug(f"Selector {selector!r} failed: {e}")
    return None


async def first_present(scope, selectors: Iterable[str]) -> Optional[Tuple[str, object]]:
    """Like first_visible, but only requires the element to exist."""
    for selector in selectors:
        try:
            candidate = scope.locator(selector).first
            if (await candidate.count()) > 0:
                return selector, candidate
        except Exception as e:
            logger.debug(f"Selector {selector!r} failed: {e}")
    return None


async def click_first(scope, page, selectors: Iterable[str], settle_ms: int = 0) -> Optional[str]:
    """Click the first visible match and return the selector that worked."""
    for selector in selectors:
        try:
            candidate = scope.locator(selector).first
            if not await is_present(candidate):
                continue
            await candidate.click()
        except Exception as e:
            logger.debug(f"Click via {selector!r} failed: {e}")
            continue
        if settle_ms:
            await page.wait_for_timeout(settle_ms)
        return selector
    return None


async def force_click(locator) -> str:
    """
    Click through overlays: normal click, then forced click, then a JS click.

    Returns the strategy that succeeded. The last strategy's error propagates.
    """
    try:
        await locator.click()
        return "normal"
    except Exception as e:
        logger.debug(f"Normal click intercepted: {e}")
    try:
        await locator.click(force=True)
        return "force"
    except Exception as e:
        logger.debug(f"Forced click failed: {e}")
    await locator.evaluate("el => el.click()")
    return "javascript"


async def retry(
    attempts: int,
    delay_ms: int,
    fn: Callable[[int], Awaitable[T]],
    page=None,
    description: str = "operation",
) -> Optional[T]:
    """
    Call ``fn(attempt)`` up to ``attempts`` times with a fixed delay between
    calls. A result other than None/False ends the loop and is returned.
    Exceptions count as a failed attempt. Returns None when every attempt
    fails.
    """
    for attempt in range(1, attempts + 1):
        try:
            result = await fn(attempt)
            if result is not None and result is not False:
                if attempt > 1:
                    logger.debug(f"{description} succeeded on attempt {attempt}/{attempts}")
                return result
        except Exception as e:
            logger.debug(f"{description} attempt {attempt}/{attempts} raised: {e}")
        if attempt < attempts:
            await sleep_ms(page, delay_ms)
    return None


async def sleep_ms(page, ms: int):
    """Wait using the page clock when available (keeps traces readable)."""
    if ms <= 0:
        return
    if page is not None:
        await page.wait_for_timeout(ms)
    else:
        await asyncio.sleep(ms / 1000)


async def scroll_by(scope, pixels: int):
    """Scroll the document inside the scope; lazy lists load more rows this way."""
    try:
        await scope.locator("body").evaluate(
            """(body, dy) => {
                const sc = document.scrollingElement || document.documentElement || document.body;
                sc.scrollBy(0, dy);
            }""",
            pixels,
        )
    except Exception as e:
        logger.debug(f"Scroll failed: {e}")


async def press_escape(page):
    try:
        await page.keyboard.press("Escape")
    except Exception:
        pass
