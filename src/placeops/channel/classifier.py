"""
Result classifier -- success/failure verdicts for interactive shell commands.

An interactive shell session does not hand back a per-command exit status,
so the channel decides from text: what the command printed, what it wrote
to stderr, and which command it was. The decision is a prioritized rule
table rather than nested conditionals, so each rule can be tested and new
rules can be slotted in without touching the others.

This is best-effort by nature. A remote error message phrased in a way no
rule anticipates will be misclassified; if the remote system ever exposes a
machine-readable status it should be preferred over these heuristics.

Architecture:
    ::

        classify(command, output, error)
            │
            ▼
        ┌───────────────────────────────────────────────────────────┐
        │ rule 1  connect + success phrase in output    → success   │
        │ rule 2  connect + hard failure + no output    → failure   │
        │ rule 3  connect + any output                  → success   │
        │ rule 4  connect + no output                   → failure   │
        │ rule 5  hard-failure phrase in error          → failure   │
        │ rule 6  error text that is not only warnings  → failure   │
        │ default                                       → success   │
        └───────────────────────────────────────────────────────────┘
                first match wins

Examples:
    >>> classifier = ResultClassifier()
    >>> classifier.classify("Get-PlaceV3", "", "Access Denied").succeeded
    False
    >>> classifier.classify("Connect-ExchangeOnline", "banner", "Access Denied").succeeded
    True

Tags:
    classifier, heuristics, rule-table, shell, placeops

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

HARD_FAILURE_PHRASES: tuple[str, ...] = (
    "access denied",
    "accessdenied",
    "unauthorized",
    "authentication failed",
    "not authorized",
    "is not recognized",
    "cannot find",
    "not found",
    "timed out",
    "timeout",
    "network",
    "unable to connect",
    "cannot bind parameter",
    "parameterbinding",
    "call the connect cmdlet first",
    "you must call the connect-",
)

SUCCESS_PHRASES: tuple[str, ...] = (
    "successfully connected",
    "authentication completed",
    "connected to",
    "welcome to exchange online",
)

WARNING_PREFIXES: tuple[str, ...] = ("warning:", "verbose:", "debug:", "information:")


@dataclass(frozen=True, slots=True)
class ClassifierInput:
    """Everything a rule may look at."""

    command: str
    output: str
    error: str

    @property
    def has_output(self) -> bool:
        return bool(self.output.strip())

    @property
    def has_error(self) -> bool:
        return bool(self.error.strip())

    @property
    def is_connect(self) -> bool:
        return is_connect_command(self.command)


@dataclass(frozen=True, slots=True)
class ClassificationRule:
    """One row of the rule table: when ``predicate`` matches, the verdict is ``succeeded``."""

    name: str
    predicate: Callable[[ClassifierInput], bool]
    succeeded: bool


@dataclass(frozen=True, slots=True)
class Verdict:
    succeeded: bool
    rule: str


def is_connect_command(command: str) -> bool:
    """True for the ``Connect-*`` command family."""
    words = command.strip().split(None, 1)
    return bool(words) and words[0].lower().startswith("connect-")


def contains_any(text: str, phrases: Sequence[str]) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in phrases)


def is_warning_only(error: str) -> bool:
    """True when every non-blank line of *error* is a warning/verbose stream record."""
    lines = [line.strip() for line in error.splitlines() if line.strip()]
    return bool(lines) and all(line.lower().startswith(WARNING_PREFIXES) for line in lines)


def default_rules(
    hard_failures: Sequence[str] = HARD_FAILURE_PHRASES,
    success_phrases: Sequence[str] = SUCCESS_PHRASES,
) -> list[ClassificationRule]:
    """Build the standard rule table for the given phrase lists."""
    return [
        ClassificationRule(
            "connect_success_phrase",
            lambda r: r.is_connect and contains_any(r.output, success_phrases),
            True,
        ),
        ClassificationRule(
            "connect_hard_failure",
            lambda r: r.is_connect and not r.has_output and contains_any(r.error, hard_failures),
            False,
        ),
        ClassificationRule("connect_output", lambda r: r.is_connect and r.has_output, True),
        ClassificationRule("connect_no_output", lambda r: r.is_connect, False),
        ClassificationRule("hard_failure", lambda r: contains_any(r.error, hard_failures), False),
        ClassificationRule(
            "error_text",
            lambda r: r.has_error and not is_warning_only(r.error),
            False,
        ),
    ]


class ResultClassifier:
    """Applies an ordered rule table; first matching rule decides."""

    DEFAULT_RULE = "default"

    def __init__(self, rules: Sequence[ClassificationRule] | None = None) -> None:
        self.rules: list[ClassificationRule] = list(rules) if rules is not None else default_rules()

    def classify(self, command: str, output: str, error: str) -> Verdict:
        subject = ClassifierInput(command=command, output=output or "", error=error or "")
        for rule in self.rules:
            if rule.predicate(subject):
                return Verdict(succeeded=rule.succeeded, rule=rule.name)
        return Verdict(succeeded=True, rule=self.DEFAULT_RULE)


__all__ = [
    "HARD_FAILURE_PHRASES",
    "SUCCESS_PHRASES",
    "ClassificationRule",
    "ClassifierInput",
    "ResultClassifier",
    "Verdict",
    "default_rules",
    "is_connect_command",
    "is_warning_only",
]
