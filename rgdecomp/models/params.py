"""
Decomposition parameters: the explicit configuration record.

Options may be given with the camelCase names used by other R-group
toolkits (``matchingStrategy``, ``onlyMatchAtRGroups`` ...) or with the
snake_case field names.  Unknown names and values of the wrong type are
rejected with :class:`~rgdecomp.common.errors.ConfigurationError`.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping

from rgdecomp.common.constants import DecompositionLimits
from rgdecomp.common.errors import ConfigurationError
from rgdecomp.common.status import MatchingStrategy, ScoreMethod


_ALIASES: Dict[str, str] = {
    "matchingStrategy": "matching_strategy",
    "scoreMethod": "score_method",
    "onlyMatchAtRGroups": "only_match_at_rgroups",
    "removeHydrogensPostMatch": "remove_hydrogens_post_match",
    "removeAllHydrogenRGroups": "remove_all_hydrogen_rgroups",
    "allowMultipleRGroupsOnUnlabelled": "allow_multiple_rgroups_on_unlabelled",
    "doTautomers": "do_tautomers",
    "chunkSize": "chunk_size",
    "timeout": "timeout",
    "maxMatches": "max_matches",
    "maxTautomers": "max_tautomers",
    "maxCandidates": "max_candidates",
}

_BOOL_FIELDS = {
    "only_match_at_rgroups",
    "remove_hydrogens_post_match",
    "remove_all_hydrogen_rgroups",
    "allow_multiple_rgroups_on_unlabelled",
    "do_tautomers",
}
_POSITIVE_INT_FIELDS = {"chunk_size", "max_matches", "max_tautomers", "max_candidates"}


@dataclass
class RGroupDecompositionParameters:
    """Options for one decomposition run."""

    matching_strategy: MatchingStrategy = MatchingStrategy.GREEDY_CHUNKS
    score_method: ScoreMethod = ScoreMethod.FINGERPRINT_VARIANCE
    only_match_at_rgroups: bool = False
    remove_hydrogens_post_match: bool = True
    remove_all_hydrogen_rgroups: bool = True
    allow_multiple_rgroups_on_unlabelled: bool = False
    do_tautomers: bool = False
    chunk_size: int = DecompositionLimits.CHUNK_SIZE
    timeout: float = DecompositionLimits.TIMEOUT_SECONDS
    max_matches: int = DecompositionLimits.MAX_MATCHES
    max_tautomers: int = DecompositionLimits.MAX_TAUTOMERS
    max_candidates: int = DecompositionLimits.MAX_CANDIDATES

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Coerce enum options and check value types."""
        try:
            self.matching_strategy = MatchingStrategy.from_name(self.matching_strategy)
            self.score_method = ScoreMethod.from_name(self.score_method)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

        for name in _BOOL_FIELDS:
            if not isinstance(getattr(self, name), bool):
                raise ConfigurationError(f"Option {name} must be a bool")
        for name in _POSITIVE_INT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"Option {name} must be a positive int")
        if isinstance(self.timeout, bool) or not isinstance(self.timeout, (int, float)):
            raise ConfigurationError("Option timeout must be a number")

    @property
    def effective_chunk_size(self) -> int:
        """Chunk size implied by the matching strategy (0 means all molecules)."""
        if self.matching_strategy == MatchingStrategy.GREEDY:
            return 1
        if self.matching_strategy == MatchingStrategy.PAIRWISE:
            return 2
        if self.matching_strategy == MatchingStrategy.EXHAUSTIVE:
            return 0
        return self.chunk_size

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            out[f.name] = value.value if hasattr(value, "value") else value
        return out

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "RGroupDecompositionParameters":
        return cls().updated(d)

    def updated(self, options: Mapping[str, Any]) -> "RGroupDecompositionParameters":
        """Return a copy with *options* applied; unknown names are rejected."""
        known = {f.name for f in fields(self)}
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for key, value in options.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown option: {key}")
            values[name] = value
        return RGroupDecompositionParameters(**values)
