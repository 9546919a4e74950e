"""Declarative navigation: run a site's configured steps against a page."""

import asyncio
import os
import re
from collections.abc import Awaitable, Callable
from typing import Optional

from playwright.async_api import Page

from ..config.types import (
    AuthenticateStep,
    CheckStep,
    ClickStep,
    EvaluateStep,
    FillStep,
    GotoStep,
    HoverStep,
    PressStep,
    ScrollStep,
    SelectStep,
    Step,
    TypeStep,
    UncheckStep,
    WaitAjaxStep,
    WaitForNavigationStep,
    WaitForSelectorStep,
    WaitStep,
)
from ..utils.async_utils import run_with_timeout
from ..utils.logging import get_structured_logger
from .types import NavigationError, StepConfigurationError

logger = get_structured_logger(__name__)

ENV_REFERENCE = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)\}$")

# Sets an input's value and fires an input event so reactive frameworks notice
SET_INPUT_SCRIPT = """
({ selector, value }) => {
    const el = document.querySelector(selector);
    if (!el) {
        throw new Error(`No element matches ${selector}`);
    }
    el.value = value;
    el.dispatchEvent(new Event('input', { bubbles: true }));
}
"""

SCROLL_BY_SCRIPT = "(distance) => window.scrollBy(0, distance)"

DEFAULT_RETRY_DELAY = 1.0  # seconds, multiplied by the attempt number


def resolve_env_reference(value: str, step: Optional[Step] = None) -> str:
    """Resolve a ``${NAME}`` credential reference against the environment.

    Only a value that is exactly one reference is resolved; anything else is
    returned as-is.
    """
    match = ENV_REFERENCE.match(value or "")
    if not match:
        return value

    name = match.group(1)
    resolved = os.environ.get(name)
    if resolved is None:
        raise StepConfigurationError(f"Environment variable {name} is not set", step)
    return resolved


class StepExecutor:
    """Executes navigation steps in order with per-step retries."""

    def __init__(
        self,
        default_timeout: int = 30000,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        capture_diagnostics: bool = True,
    ):
        self.default_timeout = default_timeout
        self.retry_delay = retry_delay
        self.capture_diagnostics = capture_diagnostics
        self._handlers: dict[type, Callable[[Page, Step, int], Awaitable[None]]] = {
            ClickStep: self._click,
            WaitForSelectorStep: self._wait_for_selector,
            FillStep: self._fill,
            TypeStep: self._type,
            PressStep: self._press,
            ScrollStep: self._scroll,
            WaitStep: self._wait,
            WaitAjaxStep: self._wait_ajax,
            WaitForNavigationStep: self._wait_for_navigation,
            SelectStep: self._select,
            HoverStep: self._hover,
            CheckStep: self._check,
            UncheckStep: self._uncheck,
            EvaluateStep: self._evaluate,
            GotoStep: self._goto,
            AuthenticateStep: self._authenticate,
        }

    async def run(self, page: Page, steps: list[Step]) -> None:
        """Run every step; raise NavigationError on the first required failure."""
        total = len(steps)

        for index, step in enumerate(steps):
            error = await self._run_with_retries(page, step, index)
            if error is None:
                logger.info(
                    "Step completed", step_index=index + 1, total=total, step=step.describe()
                )
                continue

            if step.optional:
                logger.warning(
                    "Optional step failed, skipping",
                    step_index=index + 1,
                    total=total,
                    step=step.describe(),
                    error=str(error),
                )
                continue

            screenshot, html = await self._capture_diagnostics(page)
            raise NavigationError(
                f"Navigation step failed: {step.action} - {error}",
                step=step,
                step_index=index,
                screenshot=screenshot,
                html=html,
            ) from error

    async def _run_with_retries(
        self, page: Page, step: Step, index: int
    ) -> Optional[Exception]:
        """Attempt a step up to ``1 + retries`` times; return the last error."""
        attempts = 1 + step.retries
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                await self.execute_step(page, step)
                return None
            except StepConfigurationError as e:
                # Retrying cannot fix a configuration problem
                return e
            except Exception as e:
                last_error = e
                if attempt < attempts:
                    logger.info(
                        "Step attempt failed, retrying",
                        step_index=index + 1,
                        attempt=attempt,
                        error=str(e),
                    )
                    await asyncio.sleep(self.retry_delay * attempt)

        return last_error

    async def execute_step(self, page: Page, step: Step) -> None:
        """Execute a single step."""
        handler = self._handlers.get(type(step))
        if handler is None:
            raise StepConfigurationError(
                f"Unknown action: {getattr(step, 'action', step)}", step
            )
        await handler(page, step, step.timeout or self.default_timeout)

    async def _capture_diagnostics(
        self, page: Page
    ) -> tuple[Optional[bytes], Optional[str]]:
        if not self.capture_diagnostics:
            return None, None

        screenshot = html = None
        try:
            screenshot = await page.screenshot(full_page=True)
        except Exception as e:
            logger.warning("Failed to capture screenshot", error=str(e))
        try:
            html = await page.content()
        except Exception as e:
            logger.warning("Failed to capture page content", error=str(e))
        return screenshot, html

    # Action handlers

    async def _click(self, page: Page, step: ClickStep, timeout: int) -> None:
        await page.click(step.selector, timeout=timeout)

    async def _wait_for_selector(
        self, page: Page, step: WaitForSelectorStep, timeout: int
    ) -> None:
        await page.wait_for_selector(step.selector, state=step.state, timeout=timeout)

    async def _fill(self, page: Page, step: FillStep, timeout: int) -> None:
        await page.fill(step.selector, step.value, timeout=timeout)

    async def _type(self, page: Page, step: TypeStep, timeout: int) -> None:
        # Character by character so autocomplete widgets see every keystroke
        await page.click(step.selector, timeout=timeout)
        await page.type(step.selector, step.value, delay=step.delay, timeout=timeout)

    async def _press(self, page: Page, step: PressStep, timeout: int) -> None:
        if step.selector:
            await page.press(step.selector, step.key, timeout=timeout)
        else:
            await page.keyboard.press(step.key)

    async def _scroll(self, page: Page, step: ScrollStep, timeout: int) -> None:
        if step.selector:
            await page.locator(step.selector).scroll_into_view_if_needed(timeout=timeout)
        else:
            await run_with_timeout(
                page.evaluate(SCROLL_BY_SCRIPT, step.distance), timeout / 1000
            )

    async def _wait(self, page: Page, step: WaitStep, timeout: int) -> None:
        await page.wait_for_timeout(step.duration)

    async def _wait_ajax(self, page: Page, step: WaitAjaxStep, timeout: int) -> None:
        await page.wait_for_load_state("networkidle", timeout=timeout)

    async def _wait_for_navigation(
        self, page: Page, step: WaitForNavigationStep, timeout: int
    ) -> None:
        await page.wait_for_load_state(step.wait_until, timeout=timeout)

    async def _select(self, page: Page, step: SelectStep, timeout: int) -> None:
        await page.select_option(step.selector, step.value, timeout=timeout)

    async def _hover(self, page: Page, step: HoverStep, timeout: int) -> None:
        await page.hover(step.selector, timeout=timeout)

    async def _check(self, page: Page, step: CheckStep, timeout: int) -> None:
        await page.check(step.selector, timeout=timeout)

    async def _uncheck(self, page: Page, step: UncheckStep, timeout: int) -> None:
        await page.uncheck(step.selector, timeout=timeout)

    async def _evaluate(self, page: Page, step: EvaluateStep, timeout: int) -> None:
        await run_with_timeout(page.evaluate(step.script), timeout / 1000)

    async def _goto(self, page: Page, step: GotoStep, timeout: int) -> None:
        await page.goto(step.url, wait_until=step.wait_until, timeout=timeout)

    async def _authenticate(
        self, page: Page, step: AuthenticateStep, timeout: int
    ) -> None:
        user = resolve_env_reference(step.user, step)
        password = resolve_env_reference(step.password, step)

        await run_with_timeout(
            page.evaluate(SET_INPUT_SCRIPT, {"selector": step.user_selector, "value": user}),
            timeout / 1000,
        )
        await run_with_timeout(
            page.evaluate(
                SET_INPUT_SCRIPT, {"selector": step.pass_selector, "value": password}
            ),
            timeout / 1000,
        )
        await page.click(step.submit_selector, timeout=timeout)
        await page.wait_for_load_state("networkidle", timeout=timeout)
