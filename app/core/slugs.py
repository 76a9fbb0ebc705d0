"""
URL slugs for investors and companies.
"""
import re

_NON_WORD = re.compile(r"[^\w\s-]")
_SEPARATORS = re.compile(r"[\s_-]+")


def slugify(text: str) -> str:
    """
    Lowercase, drop punctuation, collapse runs of whitespace/underscores/dashes
    into a single dash and trim dashes from both ends.

    "Andreessen Horowitz (a16z)" -> "andreessen-horowitz-a16z"
    """
    slug = _NON_WORD.sub("", text.lower().strip())
    slug = _SEPARATORS.sub("-", slug)
    return slug.strip("-")
