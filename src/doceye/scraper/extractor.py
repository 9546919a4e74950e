"""Document list extraction and deep-link resolution."""

import re
from typing import Any, Optional
from urllib.parse import urljoin

from playwright.async_api import ElementHandle, Page

from ..config.types import DeepSearchConfig, ExtractionConfig, FieldRule, FilterPatterns
from ..utils.logging import get_structured_logger
from .documents import Document
from .types import ExtractionError

logger = get_structured_logger(__name__)

URL_ATTRIBUTES = ("href", "src")

READ_PROPERTY_SCRIPT = "(el, prop) => el[prop]"
BASE_URI_SCRIPT = "() => document.baseURI"

DEEP_LINK_NAVIGATION_TIMEOUT = 30000
DEEP_LINK_SELECTOR_TIMEOUT = 10000


async def get_base_url(page: Page) -> str:
    """Base URL relative links resolve against (``<base href>`` aware)."""
    try:
        base = await page.evaluate(BASE_URI_SCRIPT)
        if base:
            return base
    except Exception as e:
        logger.debug("Could not read document.baseURI", error=str(e))
    return page.url


class FieldExtractor:
    """Pulls a single value out of one list item element."""

    async def extract(
        self, element: ElementHandle, rule: FieldRule, base_url: str
    ) -> Optional[str]:
        """Return the field value, or None for a missing optional field."""
        target = element if rule.targets_self else await element.query_selector(rule.selector)
        if target is None:
            if rule.optional:
                return None
            raise ExtractionError("Field element not found", selector=rule.selector)

        value = await self._read_value(target, rule, base_url)

        if value and rule.regex:
            match = re.search(rule.regex, value)
            if match and match.groups() and match.group(1):
                value = match.group(1)
            elif rule.optional:
                return None
            else:
                raise ExtractionError(
                    f"Regex did not match: {rule.regex}", selector=rule.selector
                )

        if value and rule.url_template:
            value = rule.url_template.replace("{value}", value)

        # Empty values count as absent
        value = value.strip() if value else None
        return value or None

    async def _read_value(
        self, target: ElementHandle, rule: FieldRule, base_url: str
    ) -> Optional[str]:
        if rule.property_name:
            # Web components often expose the file URL only as a JS property
            value: Any = await target.evaluate(READ_PROPERTY_SCRIPT, rule.property_name)
            return str(value) if value is not None else None

        if rule.attribute in URL_ATTRIBUTES:
            raw = await target.get_attribute(rule.attribute)
            return urljoin(base_url, raw.strip()) if raw and raw.strip() else None

        if rule.attribute:
            return await target.get_attribute(rule.attribute)

        return await target.text_content()


class ListExtractor:
    """Turns a page's repeated list items into Document records."""

    def __init__(self, field_extractor: Optional[FieldExtractor] = None):
        self.field_extractor = field_extractor or FieldExtractor()

    async def extract(self, page: Page, config: ExtractionConfig) -> list[Document]:
        items = await page.query_selector_all(config.list_selector)
        if not items:
            logger.warning("No items found", list_selector=config.list_selector)
            return []

        logger.info("Found document items", count=len(items))
        base_url = await get_base_url(page)

        documents: list[Document] = []
        for index, item in enumerate(items):
            try:
                values = await self.extract_item(item, config.fields, base_url)
            except ExtractionError as e:
                logger.warning(
                    "Failed to extract document",
                    item_index=index,
                    field=e.field,
                    selector=e.selector,
                    error=e.message,
                )
                continue
            except Exception as e:
                logger.warning(
                    "Failed to extract document", item_index=index, error=str(e)
                )
                continue

            if not values.get("url") and not values.get("title"):
                continue

            document = Document.from_fields(values)
            if document is not None:
                documents.append(document)

        logger.info("Extracted valid documents", count=len(documents))

        if config.filter_patterns:
            documents = apply_filters(documents, config.filter_patterns)

        return documents

    async def extract_item(
        self, item: ElementHandle, fields: dict[str, FieldRule], base_url: str
    ) -> dict[str, str]:
        """Extract every configured field of one item; fields are independent."""
        values: dict[str, str] = {}
        for name, rule in fields.items():
            try:
                value = await self.field_extractor.extract(item, rule, base_url)
            except ExtractionError as e:
                e.field = name
                raise
            if value:
                values[name] = value
        return values


def apply_filters(documents: list[Document], filters: FilterPatterns) -> list[Document]:
    """Keep (include) or drop (exclude) documents matching any pattern."""
    if not filters.field or not filters.patterns:
        return documents

    patterns = [pattern.lower() for pattern in filters.patterns]

    def matches(document: Document) -> bool:
        value = str(getattr(document, filters.field, None) or "").lower()
        return any(pattern in value for pattern in patterns)

    if filters.mode == "include":
        filtered = [document for document in documents if matches(document)]
    else:
        filtered = [document for document in documents if not matches(document)]

    logger.info(
        "Filtered documents",
        field=filters.field,
        mode=filters.mode,
        kept=len(filtered),
        total=len(documents),
    )
    return filtered


class DeepLinkResolver:
    """Follows intermediate landing pages to the real file URL."""

    def __init__(
        self,
        navigation_timeout: int = DEEP_LINK_NAVIGATION_TIMEOUT,
        selector_timeout: int = DEEP_LINK_SELECTOR_TIMEOUT,
    ):
        self.navigation_timeout = navigation_timeout
        self.selector_timeout = selector_timeout

    async def resolve(
        self, page: Page, documents: list[Document], config: Optional[DeepSearchConfig]
    ) -> list[Document]:
        if not config or not config.enabled:
            return documents

        logger.info("Resolving deep links", count=len(documents))
        resolved: list[Document] = []

        for document in documents:
            try:
                real_url = await self._resolve_one(page, document.url, config)
            except Exception as e:
                logger.warning(
                    "Deep link resolution failed", document=document.label, error=str(e)
                )
                resolved.append(document)
                continue

            if real_url:
                logger.debug("Resolved deep link", url=document.url, resolved=real_url)
                resolved.append(document.with_url(real_url, intermediate_url=document.url))
            else:
                logger.warning(
                    "No URL found on landing page",
                    document=document.label,
                    selector=config.selector,
                )
                resolved.append(document)

        logger.info(
            "Deep link resolution complete",
            resolved=sum(1 for document in resolved if document.intermediate_url),
            total=len(resolved),
        )
        return resolved

    async def _resolve_one(
        self, page: Page, url: str, config: DeepSearchConfig
    ) -> Optional[str]:
        await page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout)
        element = await page.wait_for_selector(config.selector, timeout=self.selector_timeout)
        if element is None:
            return None

        raw = await element.get_attribute(config.attribute)
        if not raw or not raw.strip():
            return None
        return urljoin(await get_base_url(page), raw.strip())
