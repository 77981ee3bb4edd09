"""
Compliance API Endpoints

Used by the message composer before anything goes out to a lead, guest or owner.
"""

from typing import Any, List, Optional
from fastapi import APIRouter
from pydantic import BaseModel, Field

from propertyops.services.fair_housing import classify_message_topic, validate_fair_housing

router = APIRouter()


class MessageIn(BaseModel):
    message: str = Field(max_length=20000)


class ComplianceIssueOut(BaseModel):
    phrase: str
    category: str
    severity: str
    suggestion: str
    note: Optional[str] = None


class FairHousingOut(BaseModel):
    compliant: bool
    risk_score: int
    issues: List[ComplianceIssueOut]


class TopicOut(BaseModel):
    classification: str
    requires_broker_review: bool
    matched_topics: List[str]


@router.post("/fair-housing", response_model=FairHousingOut)
def check_fair_housing(body: MessageIn) -> Any:
    result = validate_fair_housing(body.message)
    return {
        "compliant": result.compliant,
        "risk_score": result.risk_score,
        "issues": [issue.to_dict() for issue in result.issues],
    }


@router.post("/classify", response_model=TopicOut)
def classify_topic(body: MessageIn) -> Any:
    result = classify_message_topic(body.message)
    return {
        "classification": result.classification.value,
        "requires_broker_review": result.requires_broker_review,
        "matched_topics": result.matched_topics,
    }
