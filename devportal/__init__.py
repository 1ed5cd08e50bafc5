"""devportal — discover a GrayJay dev server on the LAN and inject a plugin build.

Quickstart::

    import asyncio
    from devportal.config import HarnessConfig
    from devportal.session import SessionDriver

    driver = SessionDriver(HarnessConfig())
    report = asyncio.run(driver.run())
"""

__version__ = "1.0.0"
