"""Playwright implementation of the browser driver for Crowd.live.

Each driver owns one Chromium browser, context and page. Playwright errors
are translated at this boundary:

- messages matching a session-loss signature → RecoverableSessionError
- anything else → TransientDriverError

Best-effort reads (answer feedback, score, ranking) swallow ordinary
failures but still surface session loss so the agent can recover.
"""

import asyncio
import functools
import logging
import random
import re
from typing import Any, Awaitable, Callable, Optional, TypeVar

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError

from trivia_bots.bot.phase import PageSignals
from trivia_bots.bot.profile import BotProfile
from trivia_bots.config import Settings, get_settings
from trivia_bots.driver import selectors
from trivia_bots.driver.base import (
    AnswerOption,
    AnswerOptions,
    BrowserDriver,
    QuestionModality,
)
from trivia_bots.utils.errors import (
    RecoverableSessionError,
    TransientDriverError,
    TriviaBotError,
    is_session_loss,
)
from trivia_bots.utils.timing import random_sleep, sleep_ms

logger = logging.getLogger(__name__)

T = TypeVar("T")

TEXT_ANSWERS = ("yes", "no", "true", "false", "1", "2", "3", "4")

# Clicks the idx-th visible answer-like element, bypassing actionability checks
CLICK_BY_INDEX_JS = """
(idx) => {
  const skip = ["sign out", "profile", "privacy", "close", "mute", "menu", "policy"];
  const visible = (el, minTop) => {
    const r = el.getBoundingClientRect();
    return r.width > 0 && r.height > 0 && r.top > minTop;
  };
  const buttons = Array.from(document.querySelectorAll("button")).filter(b => {
    const t = (b.textContent || "").toLowerCase();
    return visible(b, 0) && !skip.some(w => t.includes(w));
  });
  if (idx >= 0 && idx < buttons.length) { buttons[idx].click(); return "button"; }
  const areas = Array.from(document.querySelectorAll(
    '[class*="answer"], [class*="option"], [class*="choice"], [role="button"]'
  )).filter(el => visible(el, 100));
  if (idx >= 0 && idx < areas.length) { areas[idx].click(); return "clickable"; }
  return null;
}
"""


def translate_error(error: BaseException, operation: str) -> TriviaBotError:
    """Map a Playwright failure onto the fleet's error taxonomy."""
    message = f"{operation}: {error}"
    if is_session_loss(error):
        return RecoverableSessionError(message, details={"operation": operation})
    return TransientDriverError(message, details={"operation": operation})


def _translate_errors(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    @functools.wraps(func)
    async def wrapper(self: "PlaywrightDriver", *args: Any, **kwargs: Any) -> T:
        self._ensure_page()
        try:
            return await func(self, *args, **kwargs)
        except PlaywrightError as e:
            raise translate_error(e, func.__name__) from e

    return wrapper


class PlaywrightDriver(BrowserDriver):
    """Chromium-backed driver for one bot."""

    def __init__(
        self,
        bot_id: str = "",
        settings: Settings | None = None,
        headless: bool | None = None,
        rng: random.Random | None = None,
    ):
        self._settings = settings or get_settings()
        self._bot_id = bot_id
        self._headless = self._settings.headless if headless is None else headless
        self._rng = rng or random.Random()

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._crashed = False

    @property
    def page(self) -> Page:
        self._ensure_page()
        return self._page

    @property
    def is_started(self) -> bool:
        return self._page is not None

    def _ensure_page(self) -> None:
        if self._page is None:
            raise RecoverableSessionError("Browser closed: driver not started")
        if self._crashed:
            raise RecoverableSessionError("Page crashed")

    def _on_crash(self, _page: Page) -> None:
        logger.error(f"[DRIVER] {self._bot_id} page crashed")
        self._crashed = True

    def _on_page_error(self, error: Any) -> None:
        logger.debug(f"[DRIVER] {self._bot_id} page error: {error}")

    def _swallow(self, error: PlaywrightError, what: str) -> None:
        """Ignore an ordinary failure of a best-effort read."""
        if is_session_loss(error):
            raise translate_error(error, what) from error
        logger.debug(f"[DRIVER] {self._bot_id} {what} failed: {error}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=self._headless)
            self._context = await self._browser.new_context(
                viewport={
                    "width": self._settings.viewport_width,
                    "height": self._settings.viewport_height,
                },
                user_agent=self._settings.user_agent,
            )
            self._page = await self._context.new_page()
        except PlaywrightError as e:
            await self.close()
            raise translate_error(e, "start") from e

        self._crashed = False
        self._page.on("crash", self._on_crash)
        self._page.on("pageerror", self._on_page_error)
        logger.debug(f"[DRIVER] {self._bot_id} browser started (headless={self._headless})")

    async def close(self) -> None:
        page, context, browser, playwright = (
            self._page,
            self._context,
            self._browser,
            self._playwright,
        )
        self._page = self._context = self._browser = self._playwright = None

        for name, closer in (
            ("page", page.close if page else None),
            ("context", context.close if context else None),
            ("browser", browser.close if browser else None),
            ("playwright", playwright.stop if playwright else None),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except Exception as e:
                logger.debug(f"[DRIVER] {self._bot_id} closing {name} failed: {e}")

    # ------------------------------------------------------------------
    # Navigation and registration
    # ------------------------------------------------------------------

    @_translate_errors
    async def navigate_to_game(self, url: str) -> None:
        logger.info(f"[DRIVER] {self._bot_id} navigating to {url}")
        await self._page.goto(url, wait_until="networkidle")
        await random_sleep(1000, 2000, self._rng)

    @_translate_errors
    async def read_page_signals(self) -> PageSignals:
        text = await self._page.evaluate("() => document.body.innerText")
        letters = await self._page.locator(selectors.LETTER_BUTTONS).count()
        grips = await self._page.locator(selectors.GRIP_BUTTONS).count()
        form = await self._page.locator(selectors.NICKNAME_INPUT).count()
        return PageSignals.from_page(text, answer_controls=letters + grips, registration_form=form > 0)

    @_translate_errors
    async def detect_registration_present(self) -> bool:
        return await self._page.locator(selectors.NICKNAME_INPUT).count() > 0

    @_translate_errors
    async def fill_registration_form(self, profile: BotProfile) -> None:
        logger.info(f"[DRIVER] {self._bot_id} filling registration form")
        await self._page.wait_for_selector(selectors.NICKNAME_INPUT, timeout=10_000)

        await self._fill_field(selectors.NICKNAME_INPUT, profile.nickname)
        await random_sleep(300, 800, self._rng)

        await self._fill_field(selectors.EMAIL_INPUT, profile.email)
        await random_sleep(300, 800, self._rng)

        if profile.name:
            await self._fill_field(selectors.NAME_INPUT, profile.name)
            await random_sleep(300, 800, self._rng)

        if profile.phone:
            await self._fill_phone(profile.phone)
            await random_sleep(300, 800, self._rng)

    async def _fill_field(self, selector: str, value: str) -> bool:
        field = self._page.locator(selector).first
        try:
            if not await field.count():
                return False
            await field.click()
            await sleep_ms(100)
            await field.fill("")
            await field.press_sequentially(value, delay=50 + self._rng.random() * 50)
            return True
        except PlaywrightError as e:
            self._swallow(e, f"fill {selector}")
            return False

    async def _fill_phone(self, phone: str) -> bool:
        code, digits = selectors.split_phone(phone)
        required = selectors.country_phone_length(code)
        digits = digits[:required]
        while len(digits) < required:
            digits += str(self._rng.randint(0, 9))

        field = self._page.locator(selectors.PHONE_INPUT).first
        try:
            if not await field.count():
                logger.debug(f"[DRIVER] {self._bot_id} phone input not found")
                return False
            await field.click()
            await sleep_ms(300)
            await self._page.keyboard.press("Control+A")
            await self._page.keyboard.press("Delete")
            for digit in digits:
                await self._page.keyboard.type(digit)
                await sleep_ms(50 + self._rng.random() * 50)
        except PlaywrightError as e:
            self._swallow(e, "fill phone")
            return False

        logger.debug(f"[DRIVER] {self._bot_id} phone entered: +{code} {digits}")
        return True

    @_translate_errors
    async def click_join(self) -> bool:
        if await self.handle_returning_player():
            return True

        for selector in selectors.JOIN_BUTTONS:
            button = self._page.locator(selector).first
            try:
                if not await button.is_visible():
                    continue
                await random_sleep(200, 500, self._rng)
                await button.click()
            except PlaywrightError as e:
                self._swallow(e, f"join via {selector}")
                continue

            logger.info(f"[DRIVER] {self._bot_id} join clicked using: {selector}")
            await random_sleep(1000, 2000, self._rng)
            await self.handle_returning_player()
            return True

        # Last resort: click the centre of the "Join" text
        box = await self._page.locator("text=Join").first.bounding_box()
        if box:
            await self._page.mouse.click(box["x"] + box["width"] / 2, box["y"] + box["height"] / 2)
            logger.info(f"[DRIVER] {self._bot_id} join clicked via coordinates")
            await random_sleep(1000, 2000, self._rng)
            await self.handle_returning_player()
            return True

        logger.warning(f"[DRIVER] {self._bot_id} could not find join button")
        return False

    @_translate_errors
    async def handle_returning_player(self) -> bool:
        text = (await self._page.evaluate("() => document.body.innerText")).lower()
        if "welcome back" not in text and "continue playing" not in text:
            return False

        logger.info(f"[DRIVER] {self._bot_id} returning player screen detected")
        for selector in selectors.CONTINUE_BUTTONS:
            button = self._page.locator(selector).first
            try:
                if not await button.is_visible(timeout=1000):
                    continue
                await random_sleep(500, 1000, self._rng)
                await button.click()
            except PlaywrightError as e:
                self._swallow(e, f"continue via {selector}")
                continue
            await random_sleep(1500, 2500, self._rng)
            return True

        logger.warning(f"[DRIVER] {self._bot_id} could not find Continue Playing button")
        return False

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------

    @_translate_errors
    async def get_question_text(self) -> str:
        try:
            await self._page.wait_for_selector(selectors.QUESTION_TEXT, timeout=5000)
            text = await self._page.locator(selectors.QUESTION_TEXT).first.text_content()
        except PlaywrightError as e:
            self._swallow(e, "question text")
            return ""
        return (text or "").strip()

    async def _detect_modality(self) -> QuestionModality:
        page = self._page
        if await page.locator(selectors.NUMBER_INPUT).count():
            return QuestionModality.NUMBER_INPUT
        if await page.locator('button:has-text("A."), button:has-text("B.")').count() >= 2:
            return QuestionModality.MULTIPLE_CHOICE
        if await page.locator(selectors.GRIP_BUTTONS).count():
            return QuestionModality.DRAG_REORDER

        text = (await page.evaluate("() => document.body.innerText")).lower()
        if "true" in text and "false" in text:
            if await page.locator(selectors.TRUE_FALSE_BUTTONS).count() >= 2:
                return QuestionModality.TRUE_FALSE

        if await page.locator(selectors.TEXT_INPUT).count():
            return QuestionModality.TEXT_INPUT
        if await page.locator(selectors.IMAGE_BUTTONS).count():
            return QuestionModality.IMAGE
        if await page.locator(selectors.CLICKABLE_AREAS).count():
            return QuestionModality.CLICKABLE_AREA
        return QuestionModality.UNKNOWN

    @_translate_errors
    async def get_answer_options(self) -> AnswerOptions:
        try:
            modality = await self._detect_modality()
            options = await self._collect_options(modality)
        except PlaywrightError as e:
            self._swallow(e, "answer options")
            return AnswerOptions()

        logger.info(
            f"[DRIVER] {self._bot_id} found {len(options)} options of type {modality.value}"
        )
        return AnswerOptions(modality=modality, options=options)

    async def _collect_options(self, modality: QuestionModality) -> list[AnswerOption]:
        page = self._page
        options: list[AnswerOption] = []

        if modality == QuestionModality.MULTIPLE_CHOICE:
            for i in range(4):
                letter = chr(65 + i)
                button = page.locator(f'button:has-text("{letter}.")').first
                if await button.count():
                    text = (await button.text_content() or "").strip()
                    options.append(AnswerOption(index=i, text=text or letter, kind="letter"))

        elif modality in (QuestionModality.NUMBER_INPUT, QuestionModality.TEXT_INPUT):
            options.append(AnswerOption(index=0, text="Number/Text Input", kind="input"))

        elif modality == QuestionModality.DRAG_REORDER:
            grips = page.locator(selectors.GRIP_BUTTONS)
            for i in range(await grips.count()):
                name = await grips.nth(i).get_attribute("name") or ""
                text = name.replace("Grip Icon ", "").strip() or f"Item {i + 1}"
                options.append(AnswerOption(index=i, text=text, kind="drag"))

        elif modality == QuestionModality.TRUE_FALSE:
            if await page.locator('button:has-text("True")').count():
                options.append(AnswerOption(index=0, text="True", kind="tf"))
            if await page.locator('button:has-text("False")').count():
                options.append(AnswerOption(index=1, text="False", kind="tf"))

        else:
            buttons = page.locator("button")
            for i in range(await buttons.count()):
                button = buttons.nth(i)
                if not await button.is_visible():
                    continue
                text = await button.text_content() or ""
                if any(word in text.lower() for word in selectors.NAV_BUTTON_WORDS):
                    continue
                name = await button.get_attribute("name") or ""
                label = (name or text or f"Button {len(options) + 1}").strip()[:50]
                options.append(AnswerOption(index=len(options), text=label, kind="generic"))

            if not options:
                areas = page.locator(selectors.CLICKABLE_FALLBACK)
                for i in range(min(await areas.count(), 10)):
                    area = areas.nth(i)
                    if await area.is_visible():
                        text = (await area.text_content() or f"Clickable {i + 1}").strip()[:50]
                        options.append(AnswerOption(index=i, text=text, kind="clickable"))

        return options

    @_translate_errors
    async def submit_answer(self, index: int, modality: QuestionModality) -> bool:
        try:
            if modality == QuestionModality.MULTIPLE_CHOICE:
                return await self._click_letter(index)
            if modality == QuestionModality.NUMBER_INPUT:
                return await self._type_answer(
                    selectors.NUMBER_INPUT, str(self._rng.randint(1, 100))
                )
            if modality == QuestionModality.TEXT_INPUT:
                return await self._type_answer(selectors.TEXT_INPUT, self._rng.choice(TEXT_ANSWERS))
            if modality == QuestionModality.DRAG_REORDER:
                return await self._drag_reorder(index)
            if modality == QuestionModality.TRUE_FALSE:
                return await self._click_visible(
                    f'button:has-text("{"True" if index == 0 else "False"}")', index
                )
            if modality == QuestionModality.IMAGE:
                return await self._click_image(index)
            return await self._click_by_index(index)
        except PlaywrightError as e:
            self._swallow(e, f"submit {modality.value}")
            return False

    async def _click_letter(self, index: int) -> bool:
        letter = chr(65 + index)
        for pattern in (f'button:has-text("{letter}.")', f"text={letter}.", f"button >> text={letter}"):
            button = self._page.locator(pattern).first
            try:
                if await button.is_visible(timeout=500):
                    await button.click(force=True, timeout=2000)
                    logger.info(f"[DRIVER] {self._bot_id} clicked answer {letter}")
                    return True
            except PlaywrightError as e:
                self._swallow(e, f"click {pattern}")
        return await self._click_by_index(index)

    async def _click_visible(self, selector: str, fallback_index: int) -> bool:
        button = self._page.locator(selector).first
        if await button.is_visible(timeout=500):
            await button.click(force=True, timeout=2000)
            return True
        return await self._click_by_index(fallback_index)

    async def _type_answer(self, selector: str, value: str) -> bool:
        field = self._page.locator(selector).first
        if not await field.count():
            logger.warning(f"[DRIVER] {self._bot_id} no input field found")
            return False

        await field.click()
        await self._page.keyboard.press("Control+A")
        await self._page.keyboard.press("Delete")
        await field.press_sequentially(value, delay=50)
        logger.info(f"[DRIVER] {self._bot_id} typed answer: {value}")

        submit = self._page.locator(selectors.SUBMIT_BUTTONS).first
        if await submit.count():
            await submit.click()
        else:
            await self._page.keyboard.press("Enter")
        return True

    async def _drag_reorder(self, index: int) -> bool:
        items = None
        for selector in selectors.DRAGGABLE_ITEMS:
            candidate = self._page.locator(selector)
            if await candidate.count() > 1:
                items = candidate
                break

        if items is None:
            logger.warning(f"[DRIVER] {self._bot_id} not enough draggable items")
            return await self._click_by_index(index)

        order = list(range(await items.count()))
        self._rng.shuffle(order)
        for source, target in zip(order, order[1:]):
            await items.nth(source).drag_to(items.nth(target))
            await sleep_ms(300)

        submit = self._page.locator(selectors.SUBMIT_BUTTONS).first
        if await submit.count() and await submit.is_visible():
            await submit.click()
        return True

    async def _click_image(self, index: int) -> bool:
        buttons = self._page.locator(selectors.IMAGE_BUTTON_PARENTS)
        if index < await buttons.count():
            await buttons.nth(index).click(force=True)
            logger.info(f"[DRIVER] {self._bot_id} clicked image answer {index + 1}")
            return True
        return await self._click_by_index(index)

    async def _click_by_index(self, index: int) -> bool:
        clicked = await self._page.evaluate(CLICK_BY_INDEX_JS, index)
        if clicked:
            logger.info(f"[DRIVER] {self._bot_id} clicked answer {index + 1} via script ({clicked})")
            return True
        logger.warning(f"[DRIVER] {self._bot_id} could not click answer {index + 1}")
        return False

    # ------------------------------------------------------------------
    # Feedback and score
    # ------------------------------------------------------------------

    @_translate_errors
    async def check_answer_result(self) -> Optional[bool]:
        await asyncio.sleep(0.5)
        try:
            text = (await self._page.evaluate("() => document.body.innerText")).lower()
            if any(marker in text for marker in selectors.CORRECT_MARKERS):
                return True
            if any(marker in text for marker in selectors.WRONG_MARKERS):
                return False

            green = await self._page.locator(selectors.CORRECT_ELEMENTS).count()
            red = await self._page.locator(selectors.WRONG_ELEMENTS).count()
        except PlaywrightError as e:
            self._swallow(e, "answer result")
            return None

        if green > red:
            return True
        if red > green:
            return False
        return None

    @_translate_errors
    async def get_current_score(self) -> Optional[int]:
        try:
            element = self._page.locator(selectors.CURRENT_SCORE).first
            if not await element.count():
                return None
            text = await element.text_content() or ""
        except PlaywrightError as e:
            self._swallow(e, "current score")
            return None

        match = re.search(r"(\d+)", text)
        return int(match.group(1)) if match else None

    @_translate_errors
    async def snapshot_ranking_text(self) -> str:
        return await self._page.evaluate("() => document.body.innerText")
