import re
from typing import Iterable


def slugify(value: str) -> str:
    """Lowercase, strip special characters, hyphenate whitespace."""
    slug = value.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def unique_slug(value: str, existing: Iterable[str]) -> str:
    """slugify(value), suffixed -1, -2, ... until it is not in existing."""
    slug = slugify(value)
    if not slug:
        return slug
    taken = set(existing)
    if slug not in taken:
        return slug
    counter = 1
    while f"{slug}-{counter}" in taken:
        counter += 1
    return f"{slug}-{counter}"
