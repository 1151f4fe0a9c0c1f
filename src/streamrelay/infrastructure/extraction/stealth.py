"""Automation-telltale removal for a Playwright browser context.

Two layers, both installed before the first navigation:

1. ``playwright_stealth.Stealth`` evasions (webdriver flag, plugins,
   permissions query, chrome runtime, sec-ch-ua) with the navigator and
   WebGL overrides taken from the session fingerprint.
2. An init script covering what Stealth leaves alone: hardware
   concurrency, device memory, screen geometry, battery and connection
   APIs, and leftover ChromeDriver/Selenium globals.

Everything is registered on the context, so it only affects pages of
that one session.
"""

from __future__ import annotations

import json

import structlog
from playwright.async_api import BrowserContext
from playwright_stealth import Stealth

from streamrelay.domain.entities import Fingerprint

log = structlog.get_logger(__name__)

_AUTOMATION_GLOBALS: tuple[str, ...] = (
    "cdc_adoQpoasnfa76pfcZLmcfl_Array",
    "cdc_adoQpoasnfa76pfcZLmcfl_Promise",
    "cdc_adoQpoasnfa76pfcZLmcfl_Symbol",
    "_Selenium_IDE_Recorder",
    "_selenium",
    "callSelenium",
    "__webdriver_script_fn",
    "__driver_evaluate",
    "__webdriver_evaluate",
    "__selenium_evaluate",
    "__fxdriver_evaluate",
    "__driver_unwrapped",
    "__webdriver_unwrapped",
    "__selenium_unwrapped",
    "__fxdriver_unwrapped",
    "$chrome_asyncScriptInfo",
)

_INIT_SCRIPT_TEMPLATE = """
(() => {
  const fp = __FINGERPRINT__;
  const define = (obj, prop, value) => {
    try { Object.defineProperty(obj, prop, { get: () => value, configurable: true }); }
    catch (e) {}
  };

  define(navigator, 'hardwareConcurrency', fp.hardwareConcurrency);
  define(navigator, 'deviceMemory', fp.deviceMemory);

  define(screen, 'width', fp.screen.width);
  define(screen, 'height', fp.screen.height);
  define(screen, 'availWidth', fp.screen.availWidth);
  define(screen, 'availHeight', fp.screen.availHeight);
  define(screen, 'colorDepth', fp.screen.colorDepth);
  define(screen, 'pixelDepth', fp.screen.pixelDepth);
  define(window, 'outerWidth', fp.screen.width);
  define(window, 'outerHeight', fp.screen.height);

  for (const proto of [
    window.WebGLRenderingContext && WebGLRenderingContext.prototype,
    window.WebGL2RenderingContext && WebGL2RenderingContext.prototype,
  ]) {
    if (!proto) continue;
    const original = proto.getParameter;
    proto.getParameter = function (parameter) {
      if (parameter === 37445) return fp.gpuVendor;
      if (parameter === 37446) return fp.gpuRenderer;
      return original.apply(this, arguments);
    };
  }

  navigator.getBattery = () => Promise.resolve({
    charging: true,
    chargingTime: 0,
    dischargingTime: Infinity,
    level: 1,
    addEventListener: () => {},
    removeEventListener: () => {},
  });

  if (navigator.connection) {
    define(navigator.connection, 'rtt', 50);
    define(navigator.connection, 'downlink', 10);
    define(navigator.connection, 'effectiveType', '4g');
    define(navigator.connection, 'saveData', false);
  }

  for (const name of fp.automationGlobals) {
    try { delete window[name]; delete document[name]; } catch (e) {}
  }
})();
"""


def build_init_script(fingerprint: Fingerprint) -> str:
    """Render the fingerprint init script (values JSON-encoded)."""
    payload = {
        "hardwareConcurrency": fingerprint.hardware_concurrency,
        "deviceMemory": fingerprint.device_memory,
        "screen": {
            "width": fingerprint.screen.width,
            "height": fingerprint.screen.height,
            "availWidth": fingerprint.screen.avail_width,
            "availHeight": fingerprint.screen.avail_height,
            "colorDepth": fingerprint.screen.color_depth,
            "pixelDepth": fingerprint.screen.pixel_depth,
        },
        "gpuVendor": fingerprint.gpu_vendor,
        "gpuRenderer": fingerprint.gpu_renderer,
        "automationGlobals": list(_AUTOMATION_GLOBALS),
    }
    return _INIT_SCRIPT_TEMPLATE.replace("__FINGERPRINT__", json.dumps(payload))


def build_stealth(fingerprint: Fingerprint) -> Stealth:
    languages = tuple(fingerprint.languages[:2])
    if len(languages) < 2:
        languages = (fingerprint.locale, fingerprint.locale.split("-")[0])
    return Stealth(
        navigator_languages_override=languages,
        navigator_platform_override=fingerprint.platform,
        navigator_user_agent_override=fingerprint.user_agent,
        webgl_vendor_override=fingerprint.gpu_vendor,
        webgl_renderer_override=fingerprint.gpu_renderer,
    )


async def apply(context: BrowserContext, fingerprint: Fingerprint) -> None:
    """Install stealth evasions and fingerprint overrides on *context*."""
    await build_stealth(fingerprint).apply_stealth_async(context)
    await context.add_init_script(build_init_script(fingerprint))
    log.debug(
        "stealth_applied",
        platform=fingerprint.platform,
        gpu_vendor=fingerprint.gpu_vendor,
        timezone=fingerprint.timezone,
    )
