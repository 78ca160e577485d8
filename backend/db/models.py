from datetime import datetime
from sqlalchemy import (
    Column, Integer, Text, Float, Boolean, ForeignKey, Index,
    Date, DateTime,
)
from sqlalchemy.orm import relationship
from db.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(Text, unique=True, nullable=False)  # identity-provider subject
    email = Column(Text)
    name = Column(Text)
    has_completed_onboarding = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    settings = relationship("UserSettings", back_populates="user", uselist=False, cascade="all, delete-orphan")
    category_settings = relationship("CategorySettings", back_populates="user", uselist=False, cascade="all, delete-orphan")
    needed_steps_settings = relationship(
        "NeededStepsSettings", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    streak = relationship("UserStreak", back_populates="user", uselist=False, cascade="all, delete-orphan")
    values = relationship("Value", back_populates="user", cascade="all, delete-orphan")
    areas = relationship("Area", back_populates="user", cascade="all, delete-orphan")
    goals = relationship("Goal", back_populates="user", cascade="all, delete-orphan")
    notes = relationship("Note", back_populates="user", cascade="all, delete-orphan")


class UserSettings(Base):
    __tablename__ = "user_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    daily_steps_count = Column(Integer, nullable=False, default=3)  # 1-10
    workflow = Column(Text, nullable=False, default="daily_planning")  # daily_planning | no_workflow
    daily_reset_hour = Column(Integer, nullable=False, default=0)  # 0-23, local time
    timezone = Column(Text)
    last_reset_date = Column(Date)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="settings")


class CategorySettings(Base):
    __tablename__ = "category_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    short_term_days = Column(Integer, nullable=False, default=90)
    long_term_days = Column(Integer, nullable=False, default=365)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="category_settings")


class NeededStepsSettings(Base):
    __tablename__ = "needed_steps_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    enabled = Column(Boolean, nullable=False, default=False)
    days_of_week = Column(Text)  # JSON array of weekday numbers, 0 = Monday
    time_hour = Column(Integer, nullable=False, default=9)
    time_minute = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="needed_steps_settings")


class Value(Base):
    __tablename__ = "values"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text)
    color = Column(Text, default="#3B82F6")
    icon = Column(Text, default="star")
    is_custom = Column(Boolean, nullable=False, default=True)
    level = Column(Integer, nullable=False, default=1)
    experience = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="values")


class Area(Base):
    __tablename__ = "areas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text)
    color = Column(Text, default="#3B82F6")
    icon = Column(Text)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="areas")
    goals = relationship("Goal", back_populates="area")


class Goal(Base):
    __tablename__ = "goals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    area_id = Column(Integer, ForeignKey("areas.id"), nullable=True)
    title = Column(Text, nullable=False)
    description = Column(Text)
    target_date = Column(Date)
    status = Column(Text, nullable=False, default="active")  # active | completed | paused | cancelled
    priority = Column(Text, nullable=False, default="meaningful")  # meaningful | nice-to-have
    category = Column(Text, nullable=False, default="no_deadline")  # derived
    goal_type = Column(Text, nullable=False, default="outcome")  # outcome | process
    progress_type = Column(Text, nullable=False, default="percentage")
    progress_percentage = Column(Float, nullable=False, default=0.0)  # derived, 0-100
    progress_target = Column(Float)
    progress_current = Column(Float)
    progress_unit = Column(Text)
    icon = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="goals")
    area = relationship("Area", back_populates="goals")
    steps = relationship("DailyStep", back_populates="goal")
    goal_metrics = relationship("GoalMetric", back_populates="goal", cascade="all, delete-orphan")


class DailyStep(Base):
    __tablename__ = "daily_steps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    goal_id = Column(Integer, ForeignKey("goals.id"), nullable=True)
    metric_id = Column(Integer, nullable=True)  # Metric.id; metrics point back at their step
    title = Column(Text, nullable=False)
    description = Column(Text)
    date = Column(Date, nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime)
    is_important = Column(Boolean, nullable=False, default=False)
    is_urgent = Column(Boolean, nullable=False, default=False)
    deadline = Column(Date)
    step_type = Column(Text, nullable=False, default="custom")  # update | revision | custom
    custom_type_name = Column(Text)
    update_value = Column(Float)
    update_unit = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    goal = relationship("Goal", back_populates="steps")


class Metric(Base):
    """Legacy step-scoped tracker."""

    __tablename__ = "metrics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    step_id = Column(Integer, ForeignKey("daily_steps.id"), nullable=True)
    name = Column(Text, nullable=False)
    description = Column(Text)
    type = Column(Text, nullable=False, default="number")
    unit = Column(Text)
    target_value = Column(Float)
    current_value = Column(Float, default=0.0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class GoalMetric(Base):
    __tablename__ = "goal_metrics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    goal_id = Column(Integer, ForeignKey("goals.id"), nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text)
    type = Column(Text, nullable=False, default="number")  # number | currency | percentage | distance | time | custom
    unit = Column(Text)
    target_value = Column(Float)
    current_value = Column(Float, default=0.0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    goal = relationship("Goal", back_populates="goal_metrics")


class Note(Base):
    __tablename__ = "notes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    goal_id = Column(Integer, ForeignKey("goals.id"), nullable=True)  # null for standalone notes
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="notes")


class DailyPlanning(Base):
    __tablename__ = "daily_planning"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    date = Column(Date, nullable=False)
    planned_steps = Column(Text, nullable=False, default="[]")  # JSON array of step ids, ordered
    completed_steps = Column(Text, nullable=False, default="[]")  # JSON array of step ids
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class DailyStats(Base):
    __tablename__ = "daily_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    date = Column(Date, nullable=False)
    planned_steps_count = Column(Integer, nullable=False, default=0)
    completed_steps_count = Column(Integer, nullable=False, default=0)
    total_steps_count = Column(Integer, nullable=False, default=0)
    optimum_deviation = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class UserStreak(Base):
    __tablename__ = "user_streaks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_activity_date = Column(Date)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="streak")


class Automation(Base):
    __tablename__ = "automations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text)
    type = Column(Text, nullable=False)  # metric | step
    target_id = Column(Integer, nullable=False)  # Metric.id or DailyStep.id, by type
    frequency_type = Column(Text, nullable=False, default="recurring")  # one-time | recurring
    frequency_time = Column(Text)  # free-text cadence, display only
    scheduled_date = Column(Date)
    schedule_kind = Column(Text)  # daily | weekly | monthly | one_time; NULL never fires
    schedule_day = Column(Integer)  # weekday (0 = Monday) or day of month
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class EventInteraction(Base):
    __tablename__ = "event_interactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    automation_id = Column(Integer, ForeignKey("automations.id"), nullable=False)
    date = Column(Date, nullable=False)
    status = Column(Text, nullable=False, default="pending")  # pending | completed | postponed
    completed_at = Column(DateTime)
    postponed_to = Column(Date)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


Index("idx_values_user", Value.user_id)
Index("idx_areas_user_order", Area.user_id, Area.sort_order)
Index("idx_goals_user_status", Goal.user_id, Goal.status)
Index("idx_daily_steps_user_date", DailyStep.user_id, DailyStep.date)
Index("idx_daily_steps_goal", DailyStep.goal_id)
Index("idx_metrics_step", Metric.step_id)
Index("idx_goal_metrics_goal", GoalMetric.goal_id)
Index("idx_notes_user_created", Note.user_id, Note.created_at)
Index("idx_notes_goal", Note.goal_id)
Index("idx_daily_planning_user_date", DailyPlanning.user_id, DailyPlanning.date, unique=True)
Index("idx_daily_stats_user_date", DailyStats.user_id, DailyStats.date, unique=True)
Index("idx_automations_user_active", Automation.user_id, Automation.is_active)
Index(
    "idx_event_interactions_unique_day",
    EventInteraction.user_id,
    EventInteraction.automation_id,
    EventInteraction.date,
    unique=True,
)
