"""Home Assistant frontend specifics.

Everything that depends on the dashboard's internal component tree lives
here, so the browser controller only sees a handful of page-level actions.
Another frontend can be supported by passing an object with the same methods
to ``Browser(page_strategy=...)``.
"""

import json
import logging
from urllib.parse import urljoin

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

logger = logging.getLogger(__name__)

# JSON-stringified values, as the frontend stores them
LOCAL_STORAGE_DEFAULTS = {
    "dockedSidebar": '"always_hidden"',
    "selectedTheme": '{"dark": false}',
}

READY_TIMEOUT_MS = 15_000
READY_POLL_MS = 100

_SET_STORAGE_JS = """
(() => {
  const values = %s;
  for (const [key, value] of Object.entries(values)) {
    localStorage.setItem(key, value);
  }
})();
"""

_DISMISS_TOAST_JS = """
() => {
  const haEl = document.querySelector("home-assistant");
  if (!haEl) return false;
  const notifyEl = haEl.shadowRoot?.querySelector("notification-manager");
  if (!notifyEl) return false;
  const actionEl = notifyEl.shadowRoot?.querySelector("ha-toast *[slot=action]");
  if (!actionEl) return false;
  actionEl.click();
  return true;
}
"""

_READY_JS = """
() => {
  const haEl = document.querySelector("home-assistant");
  if (!haEl) return false;
  const mainEl = haEl.shadowRoot?.querySelector("home-assistant-main");
  if (!mainEl) return false;
  const panelResolver = mainEl.shadowRoot?.querySelector("partial-panel-resolver");
  if (!panelResolver || panelResolver._loading) return false;
  const panel = panelResolver.children[0];
  if (!panel) return false;
  return !("_loading" in panel) || !panel._loading;
}
"""

_ZOOM_JS = "(zoom) => { document.body.style.zoom = zoom; }"

# Should really be localStorage.selectedLanguage, but that is not picked up
_LANGUAGE_JS = """
(lang) => {
  document.querySelector("home-assistant")._selectLanguage(lang, false);
}
"""

_THEME_JS = """
({ theme, dark }) => {
  document.querySelector("home-assistant").dispatchEvent(
    new CustomEvent("settheme", { detail: { theme, dark } }),
  );
}
"""


class HomeAssistantPage:
    def __init__(self, hass_url: str, token: str):
        self.hass_url = hass_url
        self.token = token

    def page_url(self, path: str) -> str:
        return urljoin(self.hass_url, path)

    def local_storage(self) -> dict[str, str]:
        """Local storage entries that log the frontend in with a long-lived token."""
        client_id = urljoin(self.hass_url, "/")  # http://homeassistant.local:8123/
        hass_url = client_id[:-1]
        return {
            **LOCAL_STORAGE_DEFAULTS,
            "hassTokens": json.dumps({
                "access_token": self.token,
                "token_type": "Bearer",
                "expires_in": 1800,
                "hassUrl": hass_url,
                "clientId": client_id,
                "expires": 9999999999999,
                "refresh_token": "",
            }),
        }

    def auth_script(self) -> str:
        return _SET_STORAGE_JS % json.dumps(self.local_storage())

    async def dismiss_update_toast(self, page) -> bool:
        """Click the action of a "dashboard updated" toast, if one is shown."""
        return bool(await page.evaluate(_DISMISS_TOAST_JS))

    async def wait_until_ready(
        self, page, timeout_ms: int = READY_TIMEOUT_MS, poll_ms: int = READY_POLL_MS
    ) -> bool:
        """Poll until the current panel stops loading. False on timeout."""
        try:
            await page.wait_for_function(_READY_JS, polling=poll_ms, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            return False
        return True

    async def set_zoom(self, page, zoom: float) -> None:
        await page.evaluate(_ZOOM_JS, zoom)

    async def select_language(self, page, lang: str) -> None:
        await page.evaluate(_LANGUAGE_JS, lang)

    async def set_theme(self, page, theme: str, dark: bool) -> None:
        await page.evaluate(_THEME_JS, {"theme": theme, "dark": dark})
