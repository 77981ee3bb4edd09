"""
Tests for fair housing validation and license topic classification.
"""

import re
import pytest

from propertyops.services.fair_housing import (
    DEFAULT_SUGGESTION,
    ComplianceRule,
    Severity,
    TopicClassification,
    classify_message_topic,
    validate_fair_housing,
)


class TestValidateFairHousing:
    def test_clean_listing_is_compliant(self):
        result = validate_fair_housing("Beautiful 3BR home with an updated kitchen and a fenced yard.")

        assert result.compliant is True
        assert result.issues == []
        assert result.risk_score == 0

    def test_familial_status_block(self):
        result = validate_fair_housing("Lovely unit, no kids please.")

        assert result.compliant is False
        assert result.risk_score == 40
        issue = result.issues[0]
        assert issue.category == "familial_status"
        assert issue.severity == Severity.BLOCK
        assert issue.phrase.lower() == "no kids"
        assert issue.suggestion == "All applicants are welcome to apply"

    def test_matching_is_case_insensitive(self):
        result = validate_fair_housing("NO SECTION 8")

        assert result.compliant is False
        assert result.issues[0].category == "race_color"
        assert result.issues[0].note == "Disparate impact on protected classes"

    @pytest.mark.parametrize("message", ["Adults only building", "Active 55+ community", "Seniors only"])
    def test_hopa_language_warns(self, message):
        result = validate_fair_housing(message)

        assert result.compliant is True
        assert result.risk_score == 20
        assert result.issues[0].severity == Severity.WARN
        assert result.issues[0].note == "May be valid for HOPA-qualified communities only"

    def test_warnings_alone_stay_compliant(self):
        result = validate_fair_housing("A quiet neighborhood, perfect for couples.")

        assert result.compliant is True
        assert result.risk_score == 40
        assert {i.severity for i in result.issues} == {Severity.WARN}

    def test_context_rule_without_suggestion_uses_default(self):
        result = validate_fair_housing("Close to church and shops.")

        assert result.compliant is True
        assert result.risk_score == 10
        assert result.issues[0].severity == Severity.CONTEXT
        assert result.issues[0].suggestion == DEFAULT_SUGGESTION

    def test_master_bedroom_is_context(self):
        result = validate_fair_housing("Spacious master bedroom.")

        assert result.issues[0].category == "sex_gender"
        assert result.issues[0].suggestion == "Primary suite or bonus room"

    def test_risk_score_capped_at_100(self):
        result = validate_fair_housing(
            "No kids. No section 8. Must speak English. Americans only. Men only."
        )

        assert result.compliant is False
        assert len(result.issues) >= 5
        assert result.risk_score == 100

    def test_one_issue_per_rule(self):
        result = validate_fair_housing("No kids. Really, no kids. No children at all.")

        assert len(result.issues) == 1

    def test_custom_rule_table(self):
        rules = (ComplianceRule(re.compile(r"\bbanana\b", re.IGNORECASE), "fruit", Severity.WARN),)

        result = validate_fair_housing("Free banana with every lease", rules=rules)

        assert result.issues[0].category == "fruit"
        assert result.issues[0].suggestion == DEFAULT_SUGGESTION

    def test_issue_to_dict(self):
        issue = validate_fair_housing("Men only").issues[0]

        assert issue.to_dict() == {
            "phrase": "Men only",
            "category": "sex_gender",
            "severity": "block",
            "suggestion": "All qualified applicants welcome",
            "note": None,
        }


class TestClassifyMessageTopic:
    def test_pricing_requires_broker(self):
        result = classify_message_topic("Can we negotiate the rent amount for next year?")

        assert result.classification == TopicClassification.REQUIRES_BROKER
        assert result.requires_broker_review is True
        assert "requires_broker" in result.matched_topics

    def test_broker_wins_over_operations(self):
        result = classify_message_topic("Thank you! About the security deposit and the repair...")

        assert result.classification == TopicClassification.REQUIRES_BROKER
        assert "operations" in result.matched_topics

    def test_oversight_topics(self):
        result = classify_message_topic("Could you send a market analysis of the house?")

        assert result.classification == TopicClassification.REQUIRES_OVERSIGHT
        assert result.requires_broker_review is True

    def test_operations_only(self):
        result = classify_message_topic("Your check-in is at 4pm, parking is in the back.")

        assert result.classification == TopicClassification.OPERATIONS
        assert result.requires_broker_review is False
        assert result.matched_topics == ["operations", "operations"]

    def test_nothing_matched_defaults_to_operations(self):
        result = classify_message_topic("Hello there")

        assert result.classification == TopicClassification.OPERATIONS
        assert result.requires_broker_review is False
        assert result.matched_topics == []
