"""Heuristic deletion-risk scoring."""

from __future__ import annotations

from typing import Optional, Sequence

from .config_manager import RiskScoringConfig
from .models import (
    ENTRY_POINT_MARKERS,
    AccessLevel,
    Declaration,
    DeclarationKind,
    Marker,
    Reference,
    RiskLevel,
)

# Highest score that can ever be auto-selected: the top of the medium bucket.
AUTO_SELECT_CEILING = 49

_HELPER_KINDS = frozenset(
    {
        DeclarationKind.FUNCTION,
        DeclarationKind.METHOD,
        DeclarationKind.STORED_PROPERTY,
        DeclarationKind.COMPUTED_PROPERTY,
    }
)


class RiskScorer:
    """Score how dangerous it would be to delete a declaration.

    ``score`` is a pure function of the declaration and its references:
    0 means "safe to delete", 100 means "never delete".
    """

    def __init__(self, config: Optional[RiskScoringConfig] = None):
        self.config = config or RiskScoringConfig()

    def visibility_base(self, access_level: AccessLevel) -> int:
        return {
            AccessLevel.PRIVATE: 5,
            AccessLevel.FILEPRIVATE: 10,
            AccessLevel.INTERNAL: 20,
            AccessLevel.PUBLIC: self.config.public_api_weight,
            AccessLevel.OPEN: max(self.config.open_api_weight, self.config.public_api_weight),
        }[access_level]

    def score(self, declaration: Declaration, references: Sequence[Reference] = ()) -> int:
        cfg = self.config
        markers = declaration.markers

        if markers & ENTRY_POINT_MARKERS:
            return 100

        score = self.visibility_base(declaration.access_level)

        if Marker.INTEROP in markers or declaration.is_dynamic:
            score = max(score, cfg.interop_dynamic_weight)
        if Marker.UI_BINDING in markers:
            score = max(score, cfg.ui_binding_weight)
        if Marker.INLINABLE in markers:
            score = max(score, cfg.public_api_weight)

        if declaration.is_protocol_requirement or declaration.is_protocol_witness:
            score += cfg.protocol_witness_weight

        if self._is_test_only(declaration):
            score += cfg.test_only_weight

        if (
            declaration.access_level is AccessLevel.PRIVATE
            and declaration.kind in _HELPER_KINDS
            and declaration.byte_length < cfg.private_helper_max_bytes
        ):
            score = min(score, cfg.private_helper_weight)

        if references:
            score = int(score * 0.5)

        return max(0, min(100, score))

    @staticmethod
    def _is_test_only(declaration: Declaration) -> bool:
        return "test" in declaration.file_path.lower() or Marker.TEST_HARNESS in declaration.markers


def risk_level(score: int) -> RiskLevel:
    return RiskLevel.from_score(score)


def is_auto_selectable(score: int, threshold: int = 20) -> bool:
    """True if a finding with ``score`` may be selected without review.

    Nothing above the medium bucket is ever auto-selected, whatever the
    configured threshold.
    """
    return score <= min(threshold, AUTO_SELECT_CEILING)
