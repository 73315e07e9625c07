"""
Declarative browser scraping engine.

Jobs are ordered lists of steps (navigate, click, extract, paginate, ...)
run against isolated contexts of one shared Playwright browser. See
``stepwright.orchestrator`` for the entry point and ``stepwright.config``
for the YAML job source format.
"""
