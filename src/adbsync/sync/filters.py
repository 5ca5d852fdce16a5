"""
AdbSync path filters.

Include/exclude rules applied to listings before they are compared.
"""

from __future__ import annotations

import fnmatch
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal

from adbsync.core.config import FilterConfig, FilterRuleConfig
from adbsync.core.logging import get_logger
from adbsync.core.models import FileEntry

logger = get_logger(__name__)

RuleType = Literal["include", "exclude"]


@dataclass
class FilterRule:
    """A single include or exclude rule.

    Wildcard patterns (``*``, ``?``) must match the whole relative path;
    regex patterns match anywhere in it. Matching ignores case.
    """

    pattern: str
    rule_type: RuleType = "include"
    is_regex: bool = False
    enabled: bool = True
    description: str = ""
    _compiled: re.Pattern[str] | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        source = self.pattern if self.is_regex else fnmatch.translate(self.pattern)
        try:
            self._compiled = re.compile(source, re.IGNORECASE)
        except re.error as e:
            logger.warning("Invalid filter pattern", pattern=self.pattern, error=str(e))
            self._compiled = None

    @property
    def is_valid(self) -> bool:
        return self._compiled is not None

    def matches(self, path: str) -> bool:
        if not self.enabled or self._compiled is None:
            return False
        if self.is_regex:
            return self._compiled.search(path) is not None
        return self._compiled.match(path) is not None

    @classmethod
    def from_config(cls, config: FilterRuleConfig) -> FilterRule:
        return cls(
            pattern=config.pattern,
            rule_type=config.type,
            is_regex=config.is_regex,
            enabled=config.enabled,
            description=config.description,
        )

    def to_config(self) -> FilterRuleConfig:
        return FilterRuleConfig(
            pattern=self.pattern,
            type=self.rule_type,
            is_regex=self.is_regex,
            enabled=self.enabled,
            description=self.description,
        )


def validate_regex(pattern: str) -> bool:
    try:
        re.compile(pattern, re.IGNORECASE)
    except re.error:
        return False
    return True


class FilterRuleSet:
    """Ordered collection of filter rules."""

    def __init__(self, rules: Iterable[FilterRule] | None = None) -> None:
        self.rules: list[FilterRule] = list(rules or [])

    def __len__(self) -> int:
        return len(self.rules)

    def add(self, rule: FilterRule) -> None:
        self.rules.append(rule)

    def remove(self, index: int) -> FilterRule:
        return self.rules.pop(index)

    def clear(self) -> None:
        self.rules.clear()

    def apply_preset(self, name: str) -> None:
        """Replace the current rules with a copy of a built-in preset."""
        preset = PRESETS.get(name)
        if preset is None:
            raise KeyError(f"Unknown filter preset: {name}")
        self.rules = [
            FilterRule(
                pattern=rule.pattern,
                rule_type=rule.rule_type,
                is_regex=rule.is_regex,
                description=rule.description,
            )
            for rule in preset.rules
        ]

    def should_include(self, path: str) -> bool:
        """Exclude rules win; with any include rule, one must match."""
        includes = [r for r in self.rules if r.enabled and r.rule_type == "include"]
        excludes = [r for r in self.rules if r.enabled and r.rule_type == "exclude"]

        if any(rule.matches(path) for rule in excludes):
            return False
        if includes:
            return any(rule.matches(path) for rule in includes)
        return True

    def apply(self, entries: Iterable[FileEntry]) -> list[FileEntry]:
        """Keep entries whose relative path passes; directories always pass."""
        return [
            entry
            for entry in entries
            if entry.is_directory or self.should_include(entry.relative_path)
        ]

    @classmethod
    def from_config(cls, config: FilterConfig) -> FilterRuleSet:
        return cls(FilterRule.from_config(rule) for rule in config.rules)

    def to_config(self) -> FilterConfig:
        return FilterConfig(rules=[rule.to_config() for rule in self.rules])


@dataclass(frozen=True)
class FilterPreset:
    name: str
    description: str
    rules: tuple[FilterRule, ...]


def _regex(pattern: str, rule_type: RuleType = "include") -> FilterRule:
    return FilterRule(pattern=pattern, rule_type=rule_type, is_regex=True)


PRESETS: dict[str, FilterPreset] = {
    preset.name: preset
    for preset in (
        FilterPreset(
            "images",
            "Only image files",
            (_regex(r".*\.(jpg|jpeg|png|gif|bmp|heic|webp)$"),),
        ),
        FilterPreset(
            "videos",
            "Only video files",
            (_regex(r".*\.(mp4|mov|avi|mkv|flv|wmv|m4v)$"),),
        ),
        FilterPreset(
            "audio",
            "Only audio files",
            (_regex(r".*\.(mp3|m4a|wav|flac|aac|ogg|wma)$"),),
        ),
        FilterPreset(
            "documents",
            "Only document files",
            (_regex(r".*\.(pdf|doc|docx|xls|xlsx|ppt|pptx|txt)$"),),
        ),
        FilterPreset(
            "exclude-caches",
            "Skip caches, temporary files and app data",
            (
                _regex(r".*\.cache$", "exclude"),
                _regex(r".*\.tmp$", "exclude"),
                _regex(r".*\.log$", "exclude"),
                _regex(r".*/\.thumbnails/.*", "exclude"),
                _regex(r".*/Android/data/.*", "exclude"),
            ),
        ),
        FilterPreset(
            "camera",
            "Only camera photos",
            (_regex(r".*/DCIM/.*\.(jpg|jpeg|png|heic)$"),),
        ),
    )
}
