"""
Alert, agent and feedback schemas shared by the API, the relay and the agents.

Request bodies accept camelCase (as sent by the dashboard) or snake_case.
"""

from datetime import date as date_type
from datetime import datetime, timezone
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, Field, model_validator

from alerts.metadata import load_metadata

Priority = Literal["critical", "high", "medium", "low"]
Category = Literal["competitive", "performance", "network"]
AlertStatus = Literal["active", "dismissed", "escalated"]
AgentStatus = Literal["active", "learning", "maintenance"]


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


def _as_utc(value: datetime) -> datetime:
    # Rows store naive UTC.
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)


UTCDateTime = Annotated[datetime, AfterValidator(_as_utc)]


# ─── Requests ──────────────────────────────────────────────────────────────


class AlertCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = Field(..., min_length=1)
    description: str = ""
    priority: Priority
    category: Category
    agent_id: str = Field(..., min_length=1, validation_alias=_alias("agentId", "agent_id"))
    type: str | None = None
    route: str | None = None
    route_name: str | None = Field(None, validation_alias=_alias("routeName", "route_name"))
    metric_value: float | None = Field(None, validation_alias=_alias("metricValue", "metric_value"))
    threshold_value: float | None = Field(None, validation_alias=_alias("thresholdValue", "threshold_value"))
    impact_score: float | None = Field(None, validation_alias=_alias("impactScore", "impact_score", "impact"))
    confidence: float | None = Field(None, ge=0, le=1)
    metadata: dict[str, Any] | None = None


class AlertStatusUpdate(BaseModel):
    status: AlertStatus


class FeedbackCreate(BaseModel):
    """Rating bounds are enforced by the service so they surface as ValidationError."""

    model_config = ConfigDict(extra="ignore")

    alert_id: UUID = Field(..., validation_alias=_alias("alertId", "alert_id"))
    rating: int
    comment: str | None = None
    action_taken: bool = Field(False, validation_alias=_alias("actionTaken", "action_taken"))
    impact_realized: float | None = Field(None, validation_alias=_alias("impactRealized", "impact_realized"))
    user_id: UUID | None = Field(None, validation_alias=_alias("userId", "user_id"))


class AgentStatusUpdate(BaseModel):
    status: AgentStatus


# ─── Responses ─────────────────────────────────────────────────────────────


class AlertResponse(BaseModel):
    id: UUID
    type: str | None
    priority: str
    title: str
    description: str
    route: str | None
    route_name: str | None
    metric_value: float | None
    threshold_value: float | None
    impact_score: float | None
    confidence: float | None
    agent_id: str
    metadata: dict[str, Any] | None = Field(None, validation_alias=_alias("alert_metadata", "metadata"))
    status: str
    category: str
    created_at: UTCDateTime
    acknowledged_at: UTCDateTime | None
    resolved_at: UTCDateTime | None

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="after")
    def _normalize_metadata(self):
        self.metadata = load_metadata(self.category, self.metadata)
        return self


class AgentResponse(BaseModel):
    id: str
    name: str
    status: str
    accuracy: float
    total_analyses: int
    successful_predictions: int
    configuration: dict[str, Any] | None
    last_active: UTCDateTime | None
    updated_at: UTCDateTime | None

    model_config = ConfigDict(from_attributes=True)


class FeedbackResponse(BaseModel):
    id: UUID
    alert_id: UUID
    agent_id: str
    user_id: UUID | None
    rating: int
    comment: str | None
    action_taken: bool
    impact_realized: float | None
    created_at: UTCDateTime

    model_config = ConfigDict(from_attributes=True)


class RoutePerformanceResponse(BaseModel):
    id: UUID
    route: str
    route_name: str
    date: date_type
    yield_per_pax: float | None = Field(None, serialization_alias="yield")
    load_factor: float | None
    performance: float | None
    competitor_price: float | None
    our_price: float | None
    demand_index: float | None

    model_config = ConfigDict(from_attributes=True)


class ActivityResponse(BaseModel):
    id: UUID
    type: str
    title: str
    description: str | None
    agent_id: str | None
    metadata: dict[str, Any] | None = Field(None, validation_alias=_alias("activity_metadata", "metadata"))
    created_at: UTCDateTime

    model_config = ConfigDict(from_attributes=True)


class AgentSummary(BaseModel):
    id: str
    name: str
    status: str
    accuracy: float
    feedback_count: int


class AlertCounts(BaseModel):
    total: int
    critical: int
    recent: list[AlertResponse]


class HeadlineMetrics(BaseModel):
    network_yield: float | None
    load_factor: float | None
    agent_accuracy: float | None


class DashboardSummary(BaseModel):
    alerts: AlertCounts
    agents: list[AgentSummary]
    metrics: HeadlineMetrics
    activities: list[ActivityResponse]


def serialize_alert(alert) -> dict[str, Any]:
    """JSON-ready dict for an Alert row, as pushed over the relay."""
    return AlertResponse.model_validate(alert).model_dump(mode="json")


class AgentRunResult(BaseModel):
    agent_id: str
    execution_id: UUID
    status: str
    alerts_generated: int
    alert_ids: list[UUID]
    processing_time_ms: int
