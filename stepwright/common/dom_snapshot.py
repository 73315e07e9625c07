"""Static DOM snapshots for record extraction.

Extraction never walks the live page. The page's rendered HTML is
serialized once with ``page.content()``, parsed with LXML and queried with
CSS selectors compiled through cssselect. A missing element or attribute is
a normal outcome that yields ``None``; only a selector that cannot be
compiled is an error.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from cssselect import HTMLTranslator, SelectorError
from lxml import etree
from lxml.html import HtmlElement, document_fromstring

from stepwright.common.exceptions import InvalidSelectorException
from stepwright.data_types import ExtractField

_translator = HTMLTranslator()

# Temporarily marks the element a ``:scope`` field selector refers to
_SCOPE_ATTRIBUTE = "data-stepwright-scope"


@lru_cache(maxsize=256)
def _compile(selector: str, prefix: str) -> etree.XPath:
    return etree.XPath(_translator.css_to_xpath(selector, prefix=prefix))


class DomSnapshot:
    """Parsed snapshot of a page's DOM.

    Example::

        snapshot = DomSnapshot.from_html(await page.content())
        for item in snapshot.select(".item", "listing items"):
            title = snapshot.field_value(item, ExtractField("title", "h2"))
    """

    def __init__(self, root: HtmlElement | None) -> None:
        """Initialize the snapshot.

        Args:
            root: Document root, or None for an empty document.
        """
        self._root = root

    @classmethod
    def from_html(cls, html: str) -> DomSnapshot:
        if not html or not html.strip():
            return cls(None)
        try:
            return cls(document_fromstring(html))
        except etree.ParserError:
            # lxml refuses documents that contain no elements at all
            return cls(None)

    @staticmethod
    def _xpath(selector: str, description: str, prefix: str) -> etree.XPath:
        try:
            return _compile(selector, prefix)
        except SelectorError as e:
            raise InvalidSelectorException(selector, description, str(e)) from e

    def select(self, selector: str, description: str) -> list[HtmlElement]:
        """Return every element in the document matching ``selector``.

        Raises:
            InvalidSelectorException: If the selector cannot be compiled,
                even when the document is empty.
        """
        xpath = self._xpath(selector, description, "descendant-or-self::")
        if self._root is None:
            return []
        return [r for r in xpath(self._root) if isinstance(r, HtmlElement)]

    @staticmethod
    def _field_xpath(selector: str, description: str) -> etree.XPath:
        css = selector.replace(":scope", f"[{_SCOPE_ATTRIBUTE}]")
        try:
            return _compile(css, "descendant-or-self::")
        except SelectorError as e:
            raise InvalidSelectorException(selector, description, str(e)) from e

    def select_within(
        self, element: HtmlElement, selector: str, description: str
    ) -> HtmlElement | None:
        """Return the first descendant of ``element`` matching ``selector``.

        Matches ``element.querySelector``: the selector is evaluated against
        the whole document, so it may mention ``element`` or its ancestors,
        and only descendants of ``element`` are kept. ``:scope`` stands for
        ``element`` itself.
        """
        xpath = self._field_xpath(selector, description)
        scoped = ":scope" in selector
        if scoped:
            element.set(_SCOPE_ATTRIBUTE, "")
        try:
            for match in xpath(element.getroottree().getroot()):
                if isinstance(match, HtmlElement) and element in (
                    match.iterancestors()
                ):
                    return match
        finally:
            if scoped:
                del element.attrib[_SCOPE_ATTRIBUTE]
        return None

    def field_value(
        self, element: HtmlElement, extract_field: ExtractField
    ) -> str | None:
        """Resolve one field inside ``element``.

        Returns:
            The attribute value when ``extract_field.attribute`` is set,
            otherwise the trimmed text content. None when the sub-element or
            the attribute is missing.
        """
        target = self.select_within(
            element, extract_field.selector, extract_field.name
        )
        if target is None:
            return None
        if extract_field.attribute:
            return target.get(extract_field.attribute)
        return target.text_content().strip()

    def extract_records(
        self, selector: str, fields: tuple[ExtractField, ...]
    ) -> list[dict[str, Any]]:
        """Build one record per element matching ``selector``."""
        for extract_field in fields:
            self._field_xpath(extract_field.selector, extract_field.name)
        return [
            {
                extract_field.name: self.field_value(element, extract_field)
                for extract_field in fields
            }
            for element in self.select(selector, "extracted items")
        ]
