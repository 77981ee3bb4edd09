"""
Fair Housing Compliance Checks

Outbound listing copy, owner updates and lead replies are checked against a
rule table covering the seven protected classes of the Fair Housing Act.
Rules are plain data: adding a rule never needs code changes.

Also classifies messages by Georgia real-estate licensing topic, so anything
touching negotiation, pricing or lease terms is routed for broker review.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

DEFAULT_SUGGESTION = "Review and revise this language"
MAX_RISK_SCORE = 100


class Severity(str, Enum):
    BLOCK = "block"  # Must not be sent
    WARN = "warn"  # Likely problematic, needs a human look
    CONTEXT = "context"  # Acceptable in some contexts


SEVERITY_RISK = {
    Severity.BLOCK: 40,
    Severity.WARN: 20,
    Severity.CONTEXT: 10,
}


@dataclass(frozen=True)
class ComplianceRule:
    pattern: re.Pattern
    category: str
    severity: Severity
    suggestion: Optional[str] = None
    note: Optional[str] = None


@dataclass
class ComplianceIssue:
    phrase: str
    category: str
    severity: Severity
    suggestion: str
    note: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "phrase": self.phrase,
            "category": self.category,
            "severity": self.severity.value,
            "suggestion": self.suggestion,
            "note": self.note,
        }


@dataclass
class ComplianceResult:
    compliant: bool
    issues: list[ComplianceIssue]
    risk_score: int


class TopicClassification(str, Enum):
    OPERATIONS = "operations"
    REQUIRES_BROKER = "requires_broker"
    REQUIRES_OVERSIGHT = "requires_oversight"


@dataclass
class TopicResult:
    classification: TopicClassification
    requires_broker_review: bool
    matched_topics: list[str]


def _rule(
    pattern: str,
    category: str,
    severity: Severity,
    suggestion: Optional[str] = None,
    note: Optional[str] = None,
) -> ComplianceRule:
    return ComplianceRule(re.compile(pattern, re.IGNORECASE), category, severity, suggestion, note)


FAIR_HOUSING_RULES: tuple[ComplianceRule, ...] = (
    # Familial status
    _rule(
        r"\b(no|not? allow(ed)?|without|don'?t want) (kids?|children|minors?|families)\b",
        "familial_status",
        Severity.BLOCK,
        "All applicants are welcome to apply",
    ),
    _rule(
        r"\b(adults? only|seniors? only|over 55)\b|\b(55|65)\+",
        "familial_status",
        Severity.WARN,
        "Verify HOPA qualification before using this language",
        "May be valid for HOPA-qualified communities only",
    ),
    _rule(
        r"\bquiet (building|community|neighborhood|complex)\b",
        "familial_status",
        Severity.WARN,
        "Peaceful community or well-maintained property",
    ),
    _rule(
        r"\b(no pets|pet[- ]?free).*(no kids|no children)",
        "familial_status",
        Severity.BLOCK,
        "Remove reference to children",
    ),
    _rule(
        r"\bperfect for (couples?|singles?|retirees?)\b",
        "familial_status",
        Severity.WARN,
        "Perfect for anyone seeking comfortable living",
    ),
    # Race / color
    _rule(
        r"\bno section ?8\b",
        "race_color",
        Severity.BLOCK,
        "We evaluate all applications based on rental criteria",
        "Disparate impact on protected classes",
    ),
    _rule(
        r"\b(professionals? only|executive|white[- ]?collar)\b",
        "race_color",
        Severity.WARN,
        "Income verification required - specify actual requirements",
    ),
    _rule(
        r"\b(exclusive|upscale|elite) (neighborhood|community|area)\b",
        "race_color",
        Severity.WARN,
        "Well-maintained community",
    ),
    _rule(
        r"\bintegrated (neighborhood|community)\b",
        "race_color",
        Severity.WARN,
        "Diverse community",
    ),
    # National origin
    _rule(
        r"\b(must|need to|required to) speak english\b",
        "national_origin",
        Severity.BLOCK,
        "Remove language requirements unless required by law",
    ),
    _rule(
        r"\b(americans?|citizens?|us citizens?) only\b",
        "national_origin",
        Severity.BLOCK,
        "All qualified applicants welcome",
    ),
    _rule(
        r"\b(no|without) (immigrants?|foreigners?|aliens?)\b",
        "national_origin",
        Severity.BLOCK,
        "Remove nationality references",
    ),
    _rule(
        r"\b(english[- ]speaking|speak english)\b",
        "national_origin",
        Severity.WARN,
        "Communication in English available",
    ),
    _rule(
        r"\b(birth certificate|citizenship|green card|visa) required\b",
        "national_origin",
        Severity.WARN,
        "Government-issued ID required",
        "May be needed for legal verification but use cautiously",
    ),
    # Religion
    _rule(
        r"\b(christian|muslim|jewish|catholic|protestant|hindu|buddhist) (community|neighborhood|values|family)\b",
        "religion",
        Severity.BLOCK,
        "Remove religious references",
    ),
    _rule(
        r"\b(near|close to|walking distance) (church|mosque|synagogue|temple)\b",
        "religion",
        Severity.CONTEXT,
        note="OK for describing location, not for marketing to specific groups",
    ),
    _rule(
        r"\b(no|without) (religious|church|worship)\b",
        "religion",
        Severity.BLOCK,
        "Remove religious references",
    ),
    # Disability
    _rule(
        r"\b(must|able to|can|need to) (walk|climb|use stairs|carry|lift)\b",
        "disability",
        Severity.BLOCK,
        "Property features: [describe accessibility features]",
    ),
    _rule(
        r"\bno (wheelchair|disability|handicap|disabled)\b",
        "disability",
        Severity.BLOCK,
        "Reasonable accommodations available upon request",
    ),
    _rule(
        r"\bmental(ly)? (ill|health|stable|sound)\b",
        "disability",
        Severity.WARN,
        "Remove mental health references",
    ),
    _rule(
        r"\b(sober|drug[- ]?free|no addicts?)\b",
        "disability",
        Severity.WARN,
        "Standard background check required",
        "Recovery status may be protected",
    ),
    _rule(
        r"\bphysically fit\b",
        "disability",
        Severity.BLOCK,
        "Remove physical requirements",
    ),
    # Sex / gender
    _rule(
        r"\b(perfect for|ideal for|great for) (single )?(men|women|guys?|girls?|ladies|gentlemen|males?|females?)\b",
        "sex_gender",
        Severity.BLOCK,
        "Perfect for anyone seeking quality housing",
    ),
    _rule(
        r"\b(man|woman|male|female|men|women) only\b",
        "sex_gender",
        Severity.BLOCK,
        "All qualified applicants welcome",
    ),
    _rule(
        r"\b(bachelor|bachelorette) pad\b",
        "sex_gender",
        Severity.WARN,
        "Studio apartment or one-bedroom unit",
    ),
    _rule(
        r"\b(master|man cave)\b",
        "sex_gender",
        Severity.CONTEXT,
        "Primary suite or bonus room",
        "Architectural terms may be acceptable in context",
    ),
)


def _patterns(*patterns: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


# Georgia license law: who may discuss what
LICENSE_TOPICS: dict[TopicClassification, tuple[re.Pattern, ...]] = {
    TopicClassification.REQUIRES_BROKER: _patterns(
        r"\b(negotiate|negotiating|negotiation)\b",
        r"\b(rental price|rent amount|pricing|rate adjustment)\b",
        r"\b(lease terms?|contract terms?|agreement terms?)\b",
        r"\b(security deposit|earnest money)\b",
        r"\b(commission|fee structure|management fee)\b",
    ),
    TopicClassification.REQUIRES_OVERSIGHT: _patterns(
        r"\b(property value|market analysis|valuation)\b",
        r"\b(investment advice|financial recommendation)\b",
        r"\b(legal advice|legal matter)\b",
    ),
    TopicClassification.OPERATIONS: _patterns(
        r"\b(maintenance|repair|cleaning|inspection)\b",
        r"\b(check[- ]?in|check[- ]?out|arrival|departure)\b",
        r"\b(amenities|features|parking|utilities)\b",
        r"\b(schedule|appointment|booking confirmation)\b",
        r"\b(thank you|welcome|follow[- ]?up)\b",
    ),
}


def validate_fair_housing(message: str, rules: tuple[ComplianceRule, ...] = FAIR_HOUSING_RULES) -> ComplianceResult:
    """
    Check a message against the fair-housing rule table.

    Each matching rule contributes one issue (its first match) and adds
    40/20/10 risk points for block/warn/context, capped at 100. A message is
    compliant when nothing matched at block severity.
    """
    issues: list[ComplianceIssue] = []
    risk = 0

    for rule in rules:
        match = rule.pattern.search(message)
        if not match:
            continue
        issues.append(
            ComplianceIssue(
                phrase=match.group(0),
                category=rule.category,
                severity=rule.severity,
                suggestion=rule.suggestion or DEFAULT_SUGGESTION,
                note=rule.note,
            )
        )
        risk += SEVERITY_RISK[rule.severity]

    return ComplianceResult(
        compliant=not any(i.severity == Severity.BLOCK for i in issues),
        issues=issues,
        risk_score=min(MAX_RISK_SCORE, risk),
    )


def classify_message_topic(message: str) -> TopicResult:
    """Broker topics win over oversight topics, which win over operations."""
    matched: list[str] = []
    for topic, patterns in LICENSE_TOPICS.items():
        for pattern in patterns:
            if pattern.search(message):
                matched.append(topic.value)

    for topic in (TopicClassification.REQUIRES_BROKER, TopicClassification.REQUIRES_OVERSIGHT):
        if topic.value in matched:
            return TopicResult(classification=topic, requires_broker_review=True, matched_topics=matched)

    return TopicResult(
        classification=TopicClassification.OPERATIONS,
        requires_broker_review=False,
        matched_topics=matched,
    )


__all__ = [
    "Severity",
    "ComplianceRule",
    "ComplianceIssue",
    "ComplianceResult",
    "TopicClassification",
    "TopicResult",
    "FAIR_HOUSING_RULES",
    "LICENSE_TOPICS",
    "validate_fair_housing",
    "classify_message_topic",
]
