"""Boxscore stat line -> local performance stats.

Upstream keys are addressed as flat names ("pts", "ro") or as dotted
made/attempted paths ("wt.made", "threepoints.attempted"), always lowercase.

An operator mapping (``SYNC_STAT_MAPPING``) replaces the built-in alias
table entirely when it is non-empty.
"""
from typing import Optional

from app.services.source.schemas import PlayerStatLine

# Upstream stat path -> local stat names; the first alias is written
STAT_ALIASES: dict[str, tuple[str, ...]] = {
    "pts": ("pts", "points"),
    "ro": ("off", "oreb"),
    "rd": ("def", "dreb"),
    "rt": ("reb", "rebounds"),
    "as": ("ast", "assists"),
    "st": ("stl", "steals"),
    "to": ("to", "turnovers"),
    "bs": ("blk", "blocks"),
    "fouls": ("pf", "fouls"),
    "eff": ("eff", "efficiency"),
    "esz": ("min", "minutes"),
    "wt.made": ("fgm",),
    "wt.attempted": ("fga",),
    "twopoints.made": ("twom", "2pm"),
    "twopoints.attempted": ("twoa", "2pa"),
    "threepoints.made": ("3pm", "threepm"),
    "threepoints.attempted": ("3pa", "threepa"),
    "onepoints.made": ("ftm",),
    "onepoints.attempted": ("fta",),
}


def default_mapping() -> dict[str, str]:
    return {path: aliases[0] for path, aliases in STAT_ALIASES.items()}


def stat_values(line: PlayerStatLine) -> dict[str, Optional[int]]:
    """
    Flatten a stat line into lowercase stat paths.

    Examples:
        >>> line = PlayerStatLine.model_validate(
        ...     {"player": {"playerId": 1}, "pts": 12, "wt": {"made": 5, "attempted": 9}}
        ... )
        >>> stat_values(line)
        {'pts': 12, 'wt.made': 5, 'wt.attempted': 9}
    """
    values: dict[str, Optional[int]] = {key.lower(): value for key, value in line.stats.items()}
    for key, pair in line.pairs.items():
        values[f"{key.lower()}.made"] = pair.made
        values[f"{key.lower()}.attempted"] = pair.attempted
    return values


def map_stats(line: PlayerStatLine, mapping: Optional[dict[str, str]] = None) -> dict[str, str]:
    """
    Local stats for one boxscore line.

    Missing (None) values are skipped; zero is a real value and is written.

    Args:
        line: Decoded boxscore line
        mapping: Operator mapping (upstream path -> local stat); the alias
            table is used when empty

    Returns:
        Local stat name -> value as string
    """
    mapping = mapping or default_mapping()
    values = stat_values(line)
    stats: dict[str, str] = {}
    for path, local in mapping.items():
        value = values.get(path.lower())
        if value is None:
            continue
        stats[local] = str(int(value))
    return stats
