"""
1.0 Sitemap Codec Module
Reads and writes sitemap-protocol XML (urlset and sitemapindex).

Decoding tolerates anything structurally valid: extra namespaces and unknown
elements (e.g. xhtml:link alternates written by older generators) are ignored.
A malformed file decodes to zero entries and a logged error; it never raises.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from lxml import etree

logger = logging.getLogger(__name__)

SITEMAP_NAMESPACE = "http://www.sitemaps.org/schemas/sitemap/0.9"
SITEMAP_NS = {"sm": SITEMAP_NAMESPACE}


@dataclass(frozen=True)
class UrlEntry:
    """One <url> element, exactly as persisted."""
    loc: str
    lastmod: Optional[str] = None
    changefreq: Optional[str] = None
    priority: Optional[str] = None


@dataclass(frozen=True)
class SitemapRef:
    """One <sitemap> element of a sitemap index."""
    loc: str
    lastmod: Optional[str] = None


def _child_text(element: etree._Element, name: str) -> Optional[str]:
    child = element.find(f"sm:{name}", SITEMAP_NS)
    if child is None:
        # Files written without the sitemap namespace
        child = element.find(name)
    if child is not None and child.text and child.text.strip():
        return child.text.strip()
    return None


class SitemapCodec:
    """
    2.0 SitemapCodec Class
    Serializes URL entries to sitemap XML and parses them back.
    """

    # =========================================================================
    # 3.0 ENCODING
    # =========================================================================

    def encode_urlset(self, entries: Iterable[UrlEntry]) -> bytes:
        """3.1 Build a <urlset> document; optional fields are omitted when empty."""
        root = etree.Element(f"{{{SITEMAP_NAMESPACE}}}urlset", nsmap={None: SITEMAP_NAMESPACE})
        for entry in entries:
            url_el = etree.SubElement(root, f"{{{SITEMAP_NAMESPACE}}}url")
            etree.SubElement(url_el, f"{{{SITEMAP_NAMESPACE}}}loc").text = entry.loc
            if entry.lastmod:
                etree.SubElement(url_el, f"{{{SITEMAP_NAMESPACE}}}lastmod").text = entry.lastmod
            if entry.changefreq:
                etree.SubElement(url_el, f"{{{SITEMAP_NAMESPACE}}}changefreq").text = entry.changefreq
            if entry.priority:
                etree.SubElement(url_el, f"{{{SITEMAP_NAMESPACE}}}priority").text = entry.priority
        return etree.tostring(root, pretty_print=True, xml_declaration=True, encoding="UTF-8")

    def encode_index(self, sitemaps: Iterable[SitemapRef]) -> bytes:
        """3.2 Build a <sitemapindex> document."""
        root = etree.Element(f"{{{SITEMAP_NAMESPACE}}}sitemapindex", nsmap={None: SITEMAP_NAMESPACE})
        for ref in sitemaps:
            sitemap_el = etree.SubElement(root, f"{{{SITEMAP_NAMESPACE}}}sitemap")
            etree.SubElement(sitemap_el, f"{{{SITEMAP_NAMESPACE}}}loc").text = ref.loc
            if ref.lastmod:
                etree.SubElement(sitemap_el, f"{{{SITEMAP_NAMESPACE}}}lastmod").text = ref.lastmod
        return etree.tostring(root, pretty_print=True, xml_declaration=True, encoding="UTF-8")

    # =========================================================================
    # 4.0 DECODING
    # =========================================================================

    def decode_urlset(self, xml_content: bytes, source: str = "") -> List[UrlEntry]:
        """
        4.1 Parse a <urlset> document back into URL entries.

        Args:
            xml_content: Raw XML bytes
            source: File name or URL, for log context

        Returns:
            List of UrlEntry; empty for malformed input or a sitemap index
        """
        if not xml_content or not xml_content.strip():
            logger.error(f"Cannot parse empty XML content (from {source}).")
            return []

        try:
            # No recover mode: a truncated file must not yield half its URLs
            parser = etree.XMLParser(remove_blank_text=True, resolve_entities=False, no_network=True)
            root = etree.fromstring(xml_content, parser=parser)
        except etree.XMLSyntaxError as e:
            logger.error(f"XML syntax error while parsing sitemap {source}: {e}")
            return []

        root_tag_name = etree.QName(root.tag).localname
        if root_tag_name == "sitemapindex":
            logger.info(f"Skipping sitemap index {source}: no URL entries")
            return []
        if root_tag_name != "urlset":
            logger.error(f"Unknown root element '{root.tag}' in {source}.")
            return []

        entries = []
        url_elements = root.findall("sm:url", SITEMAP_NS) or root.findall("url")
        for url_element in url_elements:
            loc = _child_text(url_element, "loc")
            if not loc:
                logger.warning(f"Skipping URL entry without <loc> in {source}")
                continue
            entries.append(
                UrlEntry(
                    loc=loc,
                    lastmod=_child_text(url_element, "lastmod"),
                    changefreq=_child_text(url_element, "changefreq"),
                    priority=_child_text(url_element, "priority"),
                )
            )
        logger.debug(f"Extracted {len(entries)} URL entries from {source}.")
        return entries

    def decode_index(self, xml_content: bytes, source: str = "") -> List[SitemapRef]:
        """4.2 Parse a <sitemapindex> document; malformed input yields []."""
        if not xml_content or not xml_content.strip():
            return []
        try:
            parser = etree.XMLParser(remove_blank_text=True, resolve_entities=False, no_network=True)
            root = etree.fromstring(xml_content, parser=parser)
        except etree.XMLSyntaxError as e:
            logger.error(f"XML syntax error while parsing sitemap index {source}: {e}")
            return []
        if etree.QName(root.tag).localname != "sitemapindex":
            return []
        refs = []
        for sitemap_el in root.findall("sm:sitemap", SITEMAP_NS) or root.findall("sitemap"):
            loc = _child_text(sitemap_el, "loc")
            if loc:
                refs.append(SitemapRef(loc=loc, lastmod=_child_text(sitemap_el, "lastmod")))
        return refs

    def read_file(self, path: str) -> List[UrlEntry]:
        """4.3 Read and decode a sitemap file; unreadable files yield []."""
        try:
            with open(path, "rb") as f:
                content = f.read()
        except OSError as e:
            logger.error(f"Could not read sitemap file {path}: {e}")
            return []
        return self.decode_urlset(content, source=path)
