"""Human-readable reasons and suggested actions for findings."""

from __future__ import annotations

from typing import List, Sequence

from .models import AccessLevel, Declaration, DeclarationKind, Marker, Reference, RiskLevel


def build_reason(
    declaration: Declaration,
    references: Sequence[Reference],
    base_reason: str = "",
) -> str:
    """Combine the reachability explanation with marker and visibility call-outs.

    Args:
        declaration: The unreachable declaration
        references: Raw references found for it, resolved or not
        base_reason: Explanation from the reachability analyzer

    Returns:
        Reason parts joined with `` | ``
    """
    parts: List[str] = []
    if base_reason:
        parts.append(base_reason)
    elif references:
        parts.append(
            f"{len(references)} references found but not reachable from an entry point"
        )
    else:
        parts.append("Not reachable from any entry point, no references found")

    if declaration.has_protected_markers():
        parts.append("carries a runtime binding marker, review manually")
    if declaration.is_public_api:
        parts.append("public API, may be used outside this project")
    if declaration.is_protocol_requirement or declaration.is_protocol_witness:
        parts.append("fulfils an interface contract")
    if Marker.TEST_HARNESS in declaration.markers:
        parts.append("test-only code")
    return " | ".join(parts)


def suggested_action(score: int, declaration: Declaration) -> str:
    level = RiskLevel.from_score(score)
    if level is RiskLevel.LOW:
        return "Safe to delete directly: remove it, run the tests and commit."
    if level is RiskLevel.MEDIUM:
        action = "Verify then stage: confirm it is unused and comment it out first, don't delete outright."
        if declaration.access_level is AccessLevel.INTERNAL:
            action += " Internal visibility means other modules of the package may import it."
        return action
    if level is RiskLevel.HIGH:
        action = "Do not delete; deprecate first and remove it in a later release."
        if declaration.is_public_api:
            action += " Removing public API is a breaking change."
        return action
    return "Treat as a likely false positive; do not delete."


def _why_found(level: RiskLevel) -> List[str]:
    if level is RiskLevel.LOW:
        return [
            "Restricted visibility",
            "No runtime binding markers",
            "Not an entry point",
            "Looks like a small helper",
        ]
    if level is RiskLevel.MEDIUM:
        return [
            "Module-level visibility, other modules may import it",
            "No static use was detected",
            "May be reached through strings or getattr",
        ]
    if level is RiskLevel.HIGH:
        return [
            "Public visibility, reachable from other packages",
            "May be part of the published API",
            "Removing it may be a breaking change",
        ]
    return [
        "Carries a runtime binding marker or dynamic dispatch",
        "Reached by a framework or the interpreter, not by name",
        "Static analysis cannot see this kind of use",
    ]


def _what_to_do(level: RiskLevel, declaration: Declaration) -> List[str]:
    if level is RiskLevel.LOW:
        return ["Delete the code", "Run the test suite", "Commit if everything passes"]
    if level is RiskLevel.MEDIUM:
        return [
            "Read the code and understand what it does",
            "Search the project for the name, including string literals",
            "Comment it out rather than deleting it",
            "Run the full test suite",
            "Delete it after a release without problems",
        ]
    if level is RiskLevel.HIGH:
        steps = ["Do not delete it yet", "Add a deprecation warning"]
        if declaration.kind in (DeclarationKind.FUNCTION, DeclarationKind.METHOD):
            steps.append("    warnings.warn(..., DeprecationWarning, stacklevel=2)")
        steps.extend(["Mention it in the release notes", "Find every consumer before removing it"])
        return steps
    return [
        "Do not delete this code",
        "It may be used at runtime in ways static analysis cannot see",
        "Ignore the finding or add it to the entry point patterns",
    ]


def detailed_explanation(score: int, declaration: Declaration) -> str:
    """Multi-line markdown explanation shown for a single finding."""
    level = RiskLevel.from_score(score)
    lines = [
        f"**Risk level: {level.label}** ({score}/100)",
        "",
        "**What is it?**",
        f"- {declaration.kind.display_name}: `{declaration.qualified_name}`",
        f"- Visibility: {declaration.access_level.value}",
        f"- Location: {declaration.file_path}:{declaration.line}",
        "",
        "**Why was it reported?**",
    ]
    lines.extend(f"- {item}" for item in _why_found(level))
    lines.append("")
    lines.append("**What should you do?**")
    number = 0
    for step in _what_to_do(level, declaration):
        if step.startswith(" "):
            lines.append(step)
            continue
        number += 1
        lines.append(f"{number}. {step}")
    return "\n".join(lines)
