"""
Reading and writing the repository listing (addons.xml).

The listing is an XML document with one <addon> element per addon, each
carrying an `id` attribute:

    <addons>
        <addon id="skin.estuary" version="3.0.0" ...>...</addon>
    </addons>

This is the same document Kodi clients download from a repository, so the
server can be pointed at an existing listing as-is.
"""
from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import List, Set

from lxml import etree

from kodi_repo.domain.errors import ManifestError

logger = logging.getLogger(__name__)

IDS_XPATH = "/addons/addon/@id"
ADDON_METADATA_FILE = "addon.xml"


def read_addon_ids(listing: Path) -> Set[str]:
    """
    Retrieve addon ids from a repository listing file.

    Raises:
        ManifestError: the file is unreadable, is not well-formed XML, or the
            id query yields something other than attribute values.
    """
    listing = Path(listing)
    try:
        raw = listing.read_bytes()
    except OSError as e:
        raise ManifestError(listing, f"couldn't read listing file: {e}") from e

    try:
        root = etree.fromstring(raw)
    except (etree.XMLSyntaxError, ValueError) as e:
        raise ManifestError(listing, f"listing file was invalid XML: {e}") from e

    try:
        value = root.xpath(IDS_XPATH)
    except etree.XPathError as e:
        raise ManifestError(listing, f"failed XPath evaluation: {e}") from e

    if not isinstance(value, list):
        raise ManifestError(listing, f"invalid value type from XPath evaluation: {type(value).__name__}")

    ids: Set[str] = set()
    for node in value:
        # Attribute results come back as "smart strings" attached to their element.
        if not isinstance(node, str) or not getattr(node, "is_attribute", False):
            raise ManifestError(listing, f"invalid node type from XPath evaluation: {node!r}")
        ids.add(str(node))

    logger.debug(f"IDs: {sorted(ids)}")
    return ids


def _load_addon_element(metadata_path: Path):
    """Parse an addon.xml and return its root <addon> element, or None."""
    try:
        root = etree.parse(str(metadata_path)).getroot()
    except (OSError, etree.XMLSyntaxError) as e:
        logger.warning(f"Skipping {metadata_path}: {e}")
        return None

    if root.tag != "addon" or not root.get("id"):
        logger.warning(f"Skipping {metadata_path}: root element is not an <addon> with an id")
        return None
    return root


def write_listing(addons_dir: Path, output: Path) -> List[str]:
    """
    Generate the repository listing for every addon found in addons_dir.

    Each immediate sub-directory holding an addon.xml contributes its <addon>
    element. Hidden directories (including the default archive cache) are
    ignored. A `<output>.md5` checksum file is written next to the listing.

    Returns:
        The sorted list of addon ids written to the listing.
    """
    addons_dir = Path(addons_dir)
    output = Path(output)

    elements = {}
    for addon_dir in sorted(addons_dir.iterdir()):
        if not addon_dir.is_dir() or addon_dir.name.startswith("."):
            continue
        metadata_path = addon_dir / ADDON_METADATA_FILE
        if not metadata_path.is_file():
            continue
        element = _load_addon_element(metadata_path)
        if element is None:
            continue
        addon_id = element.get("id")
        if addon_id in elements:
            logger.warning(f"Duplicate addon id {addon_id!r} in {addon_dir}, keeping the first one")
            continue
        elements[addon_id] = element

    root = etree.Element("addons")
    for addon_id in sorted(elements):
        root.append(elements[addon_id])
    etree.indent(root, space="    ")

    data = etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(data)

    checksum_path = output.with_name(output.name + ".md5")
    checksum_path.write_text(hashlib.md5(data).hexdigest(), encoding="utf-8")

    logger.info(f"Wrote listing with {len(elements)} addons to {output}")
    return sorted(elements)
