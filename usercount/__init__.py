"""Focus-UserCount core package.

Aggregates the extension's installed-user count from three storefronts:
- browser: Playwright session for the script-rendered storefront
- extractor / scraper: per-source extraction strategies
- validator: result models, digit parsing and the failure watchdog
- aggregator / scheduler / cache: the periodic refresh and its shared state
- api: thin read endpoint over the cache
- logger: structured JSON logging configuration
- exceptions: custom exception hierarchy
"""

__version__ = "1.0.0"
