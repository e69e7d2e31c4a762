"""URL-friendly handles for records that are looked up by name."""

from __future__ import annotations

from collections.abc import Collection

from django.utils.text import slugify


def slugify_name(name: str) -> str:
    """
    ASCII-only slug: accents are folded, punctuation dropped, words joined
    with single hyphens. Must satisfy the ``<slug:...>`` URL converter.
    """
    if not name:
        return ""
    return slugify(name)


def generate_slug(name: str, existing_slugs: Collection[str] = ()) -> str:
    """
    Return a slug for ``name`` that is not in ``existing_slugs``.

    Collisions get a numeric suffix: ``jane-doe``, ``jane-doe-1``, ``jane-doe-2``.
    """
    slug = slugify_name(name)
    if not slug:
        return ""
    if slug not in existing_slugs:
        return slug

    counter = 1
    candidate = f"{slug}-{counter}"
    while candidate in existing_slugs:
        counter += 1
        candidate = f"{slug}-{counter}"
    return candidate
