"""
Fallback resolution for texture names that have no matching file.

Exports regularly rename or resize sprites between game versions. Each strategy maps a
missing texture name to alternative names, tried in order; a fuzzy directory scan runs last.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple


INDEX_SUFFIX = re.compile(r'_\d+$')


def small_suffix(name: str) -> List[str]:
    return [f"{name}_small"]


def cluster_variant(name: str) -> List[str]:
    if name.startswith('rocket_') and not name.startswith('rocket_cluster_'):
        return ['rocket_cluster_' + name[len('rocket_'):]]
    return []


def next_index(name: str) -> List[str]:
    base = name[:-2] if name.endswith('_0') else name
    return [f"{base}_1"]


def strip_index(name: str) -> List[str]:
    stripped = INDEX_SUFFIX.sub('', name)
    return [stripped] if stripped != name else []


def liquid_tank(name: str) -> List[str]:
    if 'tank' in name:
        return [name.replace('tank', 'tank_liquid', 1)]
    return []


@dataclass(frozen=True)
class FallbackStrategy:
    """A named rule proposing replacement texture names."""
    name: str
    propose: Callable[[str], List[str]]

    def candidates(self, texture_name: str) -> List[str]:
        return [c for c in self.propose(texture_name) if c and c != texture_name]


DEFAULT_STRATEGIES: Tuple[FallbackStrategy, ...] = (
    FallbackStrategy('small-suffix', small_suffix),
    FallbackStrategy('cluster-variant', cluster_variant),
    FallbackStrategy('next-index', next_index),
    FallbackStrategy('strip-index', strip_index),
    FallbackStrategy('liquid-tank', liquid_tank),
)


@dataclass(frozen=True)
class FallbackMatch:
    strategy: str
    path: Path


class FallbackTextureResolver:
    """Tries each strategy against every search directory, then falls back to fuzzy matching."""

    FUZZY = 'fuzzy-match'

    def __init__(self, strategies: Sequence[FallbackStrategy] = DEFAULT_STRATEGIES):
        self.strategies = list(strategies)

    def candidates(self, texture_name: str) -> List[Tuple[str, str]]:
        """All (strategy name, candidate texture name) pairs in the order they are tried."""
        result = []
        for strategy in self.strategies:
            for candidate in strategy.candidates(texture_name):
                result.append((strategy.name, candidate))
        return result

    def fuzzy_match(self, texture_name: str, directory: Path) -> Optional[Path]:
        """
        First PNG (by sorted filename) whose lowercase name contains the index-stripped
        lowercase texture name and is not the texture itself.
        """
        if not directory.is_dir():
            return None
        base_name = INDEX_SUFFIX.sub('', texture_name).lower()
        original = f"{texture_name}.png"
        for path in sorted(directory.iterdir()):
            filename = path.name
            if (path.is_file() and filename.endswith('.png') and filename != original
                    and base_name in filename.lower()):
                return path
        return None

    def resolve(self, texture_name: str, search_dirs: Sequence[Path],
                exclude: Sequence[Path] = ()) -> List[FallbackMatch]:
        """
        Existing files that may stand in for ``texture_name``, most specific first.

        ``exclude`` lists paths already known to be unreadable.
        """
        excluded = {Path(p) for p in exclude}
        matches: List[FallbackMatch] = []
        for strategy_name, candidate in self.candidates(texture_name):
            for directory in search_dirs:
                path = Path(directory) / f"{candidate}.png"
                if path.is_file() and path not in excluded:
                    matches.append(FallbackMatch(strategy_name, path))
        for directory in search_dirs:
            path = self.fuzzy_match(texture_name, Path(directory))
            if path is not None and path not in excluded:
                matches.append(FallbackMatch(self.FUZZY, path))
        return matches
