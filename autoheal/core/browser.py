from __future__ import annotations

import time

from selenium import webdriver
from selenium.common.exceptions import NoSuchElementException, TimeoutException
from selenium.webdriver import ChromeOptions, FirefoxOptions
from selenium.webdriver.common.action_chains import ActionChains
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import Select, WebDriverWait

from autoheal.config.schema import BrowserSettings
from autoheal.core.finder import to_locator


class BrowserSession:
    """Creates browser instances using Selenium Manager."""

    def __init__(self, browser: BrowserSettings) -> None:
        self.browser = browser

    def start(self, browser_name: str | None = None):
        normalized = (browser_name or self.browser.name).lower()
        if normalized == "chrome":
            options = ChromeOptions()
            if self.browser.headless:
                options.add_argument("--headless=new")
            options.add_argument("--window-size=1440,1200")
            driver = webdriver.Chrome(options=options)
        elif normalized == "firefox":
            options = FirefoxOptions()
            if self.browser.headless:
                options.add_argument("-headless")
            driver = webdriver.Firefox(options=options)
        else:
            raise ValueError(f"Unsupported browser: {browser_name}")
        driver.set_page_load_timeout(self.browser.page_load_timeout_seconds)
        driver.implicitly_wait(0)
        return driver


class SeleniumPage:
    """Page driver primitives used by AutoHealer, implemented on a WebDriver.

    Every primitive takes a selector string and a ``timeout`` in seconds.
    Missing elements surface as Selenium ``TimeoutException``.
    """

    WAIT_CONDITIONS = {
        "visible": EC.visibility_of_element_located,
        "attached": EC.presence_of_element_located,
        "hidden": EC.invisibility_of_element_located,
    }

    def __init__(self, driver, default_timeout: float = 5.0, poll_interval: float = 0.2) -> None:
        self.driver = driver
        self.default_timeout = default_timeout
        self.poll_interval = poll_interval

    def click(self, selector: str, timeout: float | None = None) -> None:
        self._wait(selector, timeout, EC.element_to_be_clickable).click()

    def fill(self, selector: str, value: str, timeout: float | None = None) -> None:
        element = self._wait(selector, timeout, EC.visibility_of_element_located)
        element.clear()
        element.send_keys(value)

    def hover(self, selector: str, timeout: float | None = None) -> None:
        element = self._wait(selector, timeout, EC.visibility_of_element_located)
        ActionChains(self.driver).move_to_element(element).perform()

    def type(self, selector: str, text: str, timeout: float | None = None, delay: float = 0.0) -> None:
        element = self._wait(selector, timeout, EC.visibility_of_element_located)
        for character in text:
            element.send_keys(character)
            if delay:
                time.sleep(delay)

    def select_option(self, selector: str, value: str, timeout: float | None = None) -> None:
        dropdown = Select(self._wait(selector, timeout, EC.visibility_of_element_located))
        try:
            dropdown.select_by_value(value)
        except NoSuchElementException:
            dropdown.select_by_visible_text(value)

    def check(self, selector: str, timeout: float | None = None) -> None:
        self._set_checked(selector, True, timeout)

    def uncheck(self, selector: str, timeout: float | None = None) -> None:
        self._set_checked(selector, False, timeout)

    def wait_for_selector(self, selector: str, timeout: float | None = None, state: str = "visible"):
        if state == "detached":
            by, value = to_locator(selector)
            self._waiter(timeout).until_not(
                EC.presence_of_element_located((by, value)),
                message=f"Element still attached: {selector}",
            )
            return None
        condition = self.WAIT_CONDITIONS.get(state)
        if condition is None:
            raise ValueError(f"Unsupported wait state: {state}")
        return self._wait(selector, timeout, condition)

    def evaluate(self, script: str, *args):
        return self.driver.execute_script(script, *args)

    def _set_checked(self, selector: str, checked: bool, timeout: float | None) -> None:
        element = self._wait(selector, timeout, EC.element_to_be_clickable)
        if element.is_selected() != checked:
            element.click()

    def _wait(self, selector: str, timeout: float | None, condition):
        locator = to_locator(selector)
        try:
            return self._waiter(timeout).until(condition(locator))
        except TimeoutException as exc:
            raise TimeoutException(f"Element not found: {selector}") from exc

    def _waiter(self, timeout: float | None) -> WebDriverWait:
        return WebDriverWait(
            self.driver,
            timeout if timeout is not None else self.default_timeout,
            poll_frequency=self.poll_interval,
        )
