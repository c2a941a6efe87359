"""Name normalization utilities for team, player and grouping names.

Adoption of hand-made records matches on normalized names only:
- Case: "TV LANGEN" -> "tv langen" (casefold, so "ß" and "ss" compare equal)
- Whitespace: "  TV   Langen " -> "tv langen"

Accents and punctuation are kept; "Bär" and "Bar" are different clubs.
"""
import re
import unicodedata

SENIOR_AGE_GROUP = "senioren"

# Upstream privacy placeholder for suppressed player names
ANONYMIZED_NAME = "*** ****"


def normalize(name: str | None) -> str:
    """
    Normalize a name for comparison.

    Examples:
        >>> normalize("  TV   Langen ")
        'tv langen'
        >>> normalize("Straße")
        'strasse'
        >>> normalize(None)
        ''
    """
    if not name:
        return ""
    return " ".join(name.casefold().split())


def are_names_equal(name1: str | None, name2: str | None) -> bool:
    """Check if two names are equal after normalization (empty names never match)."""
    left, right = normalize(name1), normalize(name2)
    return bool(left) and left == right


def names_overlap(name1: str | None, name2: str | None) -> bool:
    """
    Check if one normalized name contains the other.

    Tolerates suffix annotations added by hand or by upstream.

    Examples:
        >>> names_overlap("TV Langen", "TV Langen (U14 männlich)")
        True
        >>> names_overlap("TV Langen 2", "TV Lang")
        True
        >>> names_overlap("TV Langen", "")
        False
    """
    left, right = normalize(name1), normalize(name2)
    if not left or not right:
        return False
    return left in right or right in left


def team_display_name(team_name: str, age_group: str = "", gender: str = "") -> str:
    """
    Team title decorated with age group and gender.

    Senior teams and names that already mention the age group stay undecorated.

    Examples:
        >>> team_display_name("TV Langen", "U14", "männlich")
        'TV Langen (U14 männlich)'
        >>> team_display_name("TV Langen U14", "U14", "männlich")
        'TV Langen U14'
        >>> team_display_name("TV Langen", "Senioren", "männlich")
        'TV Langen'
    """
    if not age_group or normalize(age_group) == SENIOR_AGE_GROUP:
        return team_name
    if normalize(age_group) in normalize(team_name):
        return team_name
    suffix = f"{age_group} {gender}" if gender else age_group
    return f"{team_name} ({suffix})"


def abbreviate(team_name: str) -> str:
    """First three letters of a team name, uppercased."""
    return team_name.strip()[:3].upper()


def slugify(value: str) -> str:
    """
    URL-safe slug for grouping names.

    Examples:
        >>> slugify("2025/2026")
        '2025-2026'
        >>> slugify("Oberliga Herren Süd")
        'oberliga-herren-sud'
    """
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^\w\s-]", "-", value.lower())
    return re.sub(r"[-\s_]+", "-", value).strip("-")


def is_anonymized(name: str | None) -> bool:
    """True for empty names and the upstream privacy placeholder."""
    return not normalize(name) or name.strip() == ANONYMIZED_NAME
