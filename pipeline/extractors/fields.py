"""
Extraction of labeled data fields from a catalog item page.

An item page lists its attributes as `.data-field` blocks, each with a
`.data-label` and a `.data-value`. FIELD_EXTRACTORS maps a label to a pure
function that turns the block into a dict of ScrapedRecord attributes.
List-valued attributes from several blocks are concatenated by the caller.
Labels missing from the table are ignored.
"""

import re
from typing import Any, Callable, Dict, List

from bs4 import Tag

from schemas.scraped import ScrapedEntity, ScrapedRelease

PATTERNS = {
    "height": re.compile(r"H=(\d+)mm"),
    "width": re.compile(r"W=(\d+)mm"),
    "depth": re.compile(r"D=(\d+)mm"),
    "price": re.compile(r"(\d{1,3}(?:,\d{3})*(?:\.\d{2})?)\s+(?:<small>)?([A-Z]{3})(?:</small>)?"),
    "barcode": re.compile(r"([A-Z0-9-]+)$"),
    "entry_id": re.compile(r"/entry/(\d+)"),
}

DEFAULT_CURRENCY = "JPY"

FieldExtractor = Callable[[Tag], Dict[str, Any]]


def _classes(node: Tag) -> List[str]:
    return node.get("class") or []


def _entry_from_link(link: Tag):
    """Build an entity from an `.item-entry` link, or None if it is incomplete."""
    name_el = link.select_one("span[switch]")
    name = name_el.get_text().strip() if name_el else ""
    href = link.get("href")
    if not name or not href:
        return None
    match = PATTERNS["entry_id"].search(href)
    return ScrapedEntity(external_id=int(match.group(1)) if match else 0, name=name)


def extract_category(field: Tag) -> str:
    return "".join(span.get_text() for span in field.find_all("span")).strip()


def extract_text_list(field: Tag, selector: str = "a") -> List[str]:
    values = []
    for node in field.select(selector):
        text = node.get_text().strip()
        if text:
            values.append(text)
    return values


def extract_entries(field: Tag) -> List[ScrapedEntity]:
    """Entries without a role: origins, characters, materials."""
    entries = []
    for link in field.select(".item-entry"):
        entity = _entry_from_link(link)
        if entity is not None:
            entries.append(entity)
    return entries


def extract_entities_with_roles(field: Tag) -> List[ScrapedEntity]:
    """
    Entries followed by a role marker.

    Inside `.item-entries`, a `<small class="light"><em>Role</em></small>`
    assigns its role to every entry seen since the previous marker. Entries
    after the last marker keep the last role seen (or "").
    """
    entities: List[ScrapedEntity] = []

    for group in field.select(".item-entries"):
        current_role = ""
        pending: List[ScrapedEntity] = []

        for node in group.children:
            if not isinstance(node, Tag):
                continue

            if "item-entry" in _classes(node):
                entity = _entry_from_link(node)
                if entity is not None:
                    pending.append(entity)
            elif node.name == "small" and "light" in _classes(node) and node.find("em"):
                current_role = node.find("em").get_text().strip()
                entities.extend(e.model_copy(update={"role": current_role}) for e in pending)
                pending = []

        entities.extend(e.model_copy(update={"role": current_role}) for e in pending)

    return entities


def extract_dimensions(field: Tag) -> Dict[str, Any]:
    value = field.select_one(".data-value")
    text = value.get_text().strip() if value else ""
    scale_el = field.select_one("a.item-scale")

    dimensions = {"scale": scale_el.get_text().strip() if scale_el else ""}
    for key in ("height", "width", "depth"):
        match = PATTERNS[key].search(text)
        dimensions[key] = int(match.group(1)) if match else 0
    return dimensions


def _is_release_continuation(field: Tag) -> bool:
    return field.select_one(".data-label") is None or "item-extra-release" in _classes(field)


def extract_releases(field: Tag) -> List[ScrapedRelease]:
    """
    Releases from the `Releases` block and the unlabeled blocks after it.

    Blocks without a dated `a.time` link are skipped.
    """
    blocks = [field]
    for sibling in field.find_next_siblings(class_="data-field"):
        if not _is_release_continuation(sibling):
            break
        blocks.append(sibling)

    releases = []
    for block in blocks:
        date_el = block.select_one("a.time")
        if date_el is None:
            continue

        value = block.select_one(".data-value")
        value_text = value.get_text() if value else ""

        type_parts = [
            em.get_text().strip()
            for em in block.select("small.light em")
            if em.get_text().strip()
        ]

        price_match = PATTERNS["price"].search(value_text)
        barcode_match = PATTERNS["barcode"].search(value_text.strip())

        releases.append(ScrapedRelease(
            date=date_el.get_text().strip(),
            type=" ".join(type_parts),
            price=float(price_match.group(1).replace(",", "")) if price_match else 0,
            currency=price_match.group(2) if price_match else DEFAULT_CURRENCY,
            barcode=barcode_match.group(1) if barcode_match else "",
        ))

    return releases


def _into(attribute: str, extractor: Callable[[Tag], Any]) -> FieldExtractor:
    return lambda field: {attribute: extractor(field)}


FIELD_EXTRACTORS: Dict[str, FieldExtractor] = {
    "Category": _into("category", extract_category),
    "Classification": _into("classifications", extract_entities_with_roles),
    "Classifications": _into("classifications", extract_entities_with_roles),
    "Origin": _into("origins", extract_entries),
    "Origins": _into("origins", extract_entries),
    "Character": _into("characters", extract_entries),
    "Characters": _into("characters", extract_entries),
    "Company": _into("companies", extract_entities_with_roles),
    "Companies": _into("companies", extract_entities_with_roles),
    "Artist": _into("artists", extract_entities_with_roles),
    "Artists": _into("artists", extract_entities_with_roles),
    "Event": _into("events", extract_entities_with_roles),
    "Events": _into("events", extract_entities_with_roles),
    "Material": _into("materials", extract_entries),
    "Materials": _into("materials", extract_entries),
    "Version": _into("version", extract_text_list),
    "Dimensions": extract_dimensions,
}

# Release blocks are labeled "Releases", "Releases (3)", ...
RELEASES_LABEL_PREFIX = "Releases"
release_extractor: FieldExtractor = _into("releases", extract_releases)


def extractor_for(label: str):
    """Extractor registered for a field label, or None for unknown labels."""
    if label in FIELD_EXTRACTORS:
        return FIELD_EXTRACTORS[label]
    if label.startswith(RELEASES_LABEL_PREFIX):
        return release_extractor
    return None
