"""
Velociti Database Models

Tables for the revenue-management intelligence dashboard.

Tables:
  Core:
  1. users                    - Analysts, managers, executives
  2. agents                   - Named alert producers (competitive/performance/network)
  3. alerts                   - Business conditions requiring analyst attention
  4. feedback                 - Analyst ratings of alert usefulness
  5. route_performance        - Dated route metric snapshots
  6. activities               - Activity log shown on the dashboard

  Action Agents (7-9):
  7. action_agent_configs     - Per-agent configuration
  8. action_agent_executions  - Run history
  9. action_agent_metrics     - Daily rollups

  Market data (10):
  10. competitive_pricing     - Observed competitor fares per route
"""

import uuid
from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from db.session import Base

ALERT_PRIORITIES = ("critical", "high", "medium", "low")
ALERT_CATEGORIES = ("competitive", "performance", "network")
ALERT_STATUSES = ("active", "dismissed", "escalated")
AGENT_STATUSES = ("active", "learning", "maintenance")
USER_ROLES = ("analyst", "manager", "executive")
FEEDBACK_RATING_MIN = 1
FEEDBACK_RATING_MAX = 5


def _in_clause(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


# ─── 1. Users ──────────────────────────────────────────────────────────────


class User(Base):
    __tablename__ = "users"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    username = Column(String(255), nullable=False, unique=True)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(String(20), nullable=False, default="analyst")
    preferences = Column(JSON, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (CheckConstraint(_in_clause("role", USER_ROLES), name="ck_user_role"),)


# ─── 2. Agents ─────────────────────────────────────────────────────────────


class Agent(Base):
    __tablename__ = "agents"

    id = Column(String(50), primary_key=True)
    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    accuracy = Column(Float, nullable=False, default=0.0)
    total_analyses = Column(Integer, nullable=False, default=0)
    successful_predictions = Column(Integer, nullable=False, default=0)
    configuration = Column(JSON, default=dict)
    last_active = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(_in_clause("status", AGENT_STATUSES), name="ck_agent_status"),
        CheckConstraint("accuracy >= 0 AND accuracy <= 100", name="ck_agent_accuracy"),
    )

    alerts = relationship("Alert", back_populates="agent")


# ─── 3. Alerts ─────────────────────────────────────────────────────────────


class Alert(Base):
    __tablename__ = "alerts"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    type = Column(String(50), default="alert")
    priority = Column(String(20), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    route = Column(String(50))
    route_name = Column(String(255))
    metric_value = Column(Float)
    threshold_value = Column(Float)
    impact_score = Column(Float)
    confidence = Column(Float)
    agent_id = Column(String(50), ForeignKey("agents.id"), nullable=False)
    alert_metadata = Column("metadata", JSON, default=dict)
    status = Column(String(20), nullable=False, default="active")
    category = Column(String(20), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    acknowledged_at = Column(DateTime)
    resolved_at = Column(DateTime)

    __table_args__ = (
        Index("ix_alerts_created_at", "created_at"),
        Index("ix_alerts_priority", "priority"),
        Index("ix_alerts_agent", "agent_id"),
        CheckConstraint(_in_clause("priority", ALERT_PRIORITIES), name="ck_alert_priority"),
        CheckConstraint(_in_clause("category", ALERT_CATEGORIES), name="ck_alert_category"),
        CheckConstraint(_in_clause("status", ALERT_STATUSES), name="ck_alert_status"),
    )

    agent = relationship("Agent", back_populates="alerts")
    feedback = relationship("Feedback", back_populates="alert")


# ─── 4. Feedback ───────────────────────────────────────────────────────────


class Feedback(Base):
    __tablename__ = "feedback"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    alert_id = Column(GUID(), ForeignKey("alerts.id"), nullable=False)
    agent_id = Column(String(50), ForeignKey("agents.id"), nullable=False)
    user_id = Column(GUID(), ForeignKey("users.id"))
    rating = Column(Integer, nullable=False)
    comment = Column(Text)
    action_taken = Column(Boolean, nullable=False, default=False)
    impact_realized = Column(Float)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_feedback_agent_created", "agent_id", "created_at"),
        CheckConstraint(
            f"rating >= {FEEDBACK_RATING_MIN} AND rating <= {FEEDBACK_RATING_MAX}",
            name="ck_feedback_rating",
        ),
    )

    alert = relationship("Alert", back_populates="feedback")


# ─── 5. Route Performance ──────────────────────────────────────────────────


class RoutePerformance(Base):
    __tablename__ = "route_performance"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    route = Column(String(50), nullable=False)
    route_name = Column(String(255), nullable=False)
    date = Column(Date, nullable=False)
    yield_per_pax = Column("yield", Float)
    load_factor = Column(Float)
    performance = Column(Float)
    competitor_price = Column(Float)
    our_price = Column(Float)
    demand_index = Column(Float)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("route", "date", name="uq_route_performance_route_date"),
        Index("ix_route_performance_date", "date"),
    )


# ─── 6. Activities ─────────────────────────────────────────────────────────


class Activity(Base):
    __tablename__ = "activities"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    type = Column(String(50), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text)
    agent_id = Column(String(50))
    user_id = Column(GUID())
    activity_metadata = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (Index("ix_activities_created_at", "created_at"),)


# ─── 7. Action Agent Configs ───────────────────────────────────────────────


class ActionAgentConfig(Base):
    __tablename__ = "action_agent_configs"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    agent_id = Column(String(50), nullable=False, unique=True)
    config_name = Column(String(255), nullable=False)
    config_data = Column(JSON, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    description = Column(Text)
    status = Column(String(20), nullable=False, default="active")
    schedule_config = Column(JSON, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'paused', 'error', 'maintenance')", name="ck_action_agent_config_status"
        ),
    )


# ─── 8. Action Agent Executions ────────────────────────────────────────────


class ActionAgentExecution(Base):
    __tablename__ = "action_agent_executions"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    agent_id = Column(String(50), nullable=False)
    execution_status = Column(String(20), nullable=False)
    start_time = Column(DateTime, nullable=False, default=datetime.utcnow)
    end_time = Column(DateTime)
    alerts_generated = Column(Integer, nullable=False, default=0)
    processing_time_ms = Column(Integer)
    confidence = Column(Float)
    revenue_impact = Column(Float)
    result_data = Column(JSON, default=dict)
    error_message = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_action_agent_executions_agent", "agent_id", "start_time"),
        CheckConstraint(
            "execution_status IN ('running', 'completed', 'failed', 'cancelled')",
            name="ck_action_agent_execution_status",
        ),
    )


# ─── 9. Action Agent Metrics ───────────────────────────────────────────────


class ActionAgentMetric(Base):
    __tablename__ = "action_agent_metrics"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    agent_id = Column(String(50), nullable=False)
    metric_date = Column(Date, nullable=False, default=date.today)
    execution_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    alerts_generated = Column(Integer, nullable=False, default=0)
    avg_processing_time = Column(Integer)
    success_rate = Column(Float)
    revenue_impact = Column(Float)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (UniqueConstraint("agent_id", "metric_date", name="uq_action_agent_metric_day"),)


# ─── 10. Competitive Pricing ───────────────────────────────────────────────


class CompetitivePricing(Base):
    """One observed fare for one carrier's flight on a route, as scraped on observation_date."""

    __tablename__ = "competitive_pricing"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    observation_date = Column(Date, nullable=False)
    route = Column(String(50), nullable=False)
    airline_code = Column(String(10), nullable=False)
    flight_date = Column(Date, nullable=False)
    flight_number = Column(String(20))
    price_amount = Column(Float)
    price_currency = Column(String(3), nullable=False, default="GBP")
    fare_type = Column(String(20))
    booking_class = Column(String(10))
    availability_seats = Column(Integer)
    data_source = Column(String(20))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_competitive_pricing_route_observed", "route", "observation_date"),
        CheckConstraint("price_amount IS NULL OR price_amount >= 0", name="ck_competitive_price_non_negative"),
    )
