# models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from Recipeweaver.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Installer bookkeeping ---


class InstallProgress(Base):
    """Resumable step pointer for one manifest fingerprint.

    The row exists only while an install is in flight; it is deleted when the
    last step completes.
    """

    __tablename__ = "install_progress"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    fingerprint: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    filename: Mapped[str] = mapped_column(String(255))
    user_id: Mapped[str] = mapped_column(String(64), default="installer")
    current_step: Mapped[int] = mapped_column(Integer, default=0)
    max_step: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    modified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class RunState(str, enum.Enum):
    running = "running"
    finished = "finished"
    reset = "reset"


class InstallRun(Base):
    __tablename__ = "install_runs"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    filename: Mapped[str] = mapped_column(String(255), index=True)
    fingerprint: Mapped[str] = mapped_column(String(64), index=True)
    user_id: Mapped[str] = mapped_column(String(64), default="installer")
    # Completed steps / asset types finished inside the running step
    progress: Mapped[int] = mapped_column(Integer, default=0)
    subprogress: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[int] = mapped_column(Integer, default=0)
    state: Mapped[RunState] = mapped_column(
        SAEnum(RunState, name="install_run_state"), default=RunState.running
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    modified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (Index("ix_install_runs_filename_created", "filename", "created_at"),)


# --- Target platform tables ---


class CourseCategory(Base):
    __tablename__ = "course_categories"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    parent: Mapped[int] = mapped_column(Integer, default=0)
    path: Mapped[str] = mapped_column(String(255), default="")
    visible: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Course(Base):
    __tablename__ = "courses"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category: Mapped[int] = mapped_column(Integer, index=True, default=0)
    shortname: Mapped[str] = mapped_column(String(255), unique=True)
    fullname: Mapped[str] = mapped_column(String(255))
    format: Mapped[str] = mapped_column(String(32), default="topics")
    visible: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Module(Base):
    __tablename__ = "modules"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), unique=True)


class CourseModule(Base):
    __tablename__ = "course_modules"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course: Mapped[int] = mapped_column(Integer, index=True)
    module: Mapped[int] = mapped_column(Integer)
    instance: Mapped[int] = mapped_column(Integer)


class AdaptiveQuiz(Base):
    __tablename__ = "adaptivequiz"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course: Mapped[int] = mapped_column(Integer, index=True)
    name: Mapped[str] = mapped_column(String(255))


class Quiz(Base):
    __tablename__ = "quiz"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course: Mapped[int] = mapped_column(Integer, index=True)
    name: Mapped[str] = mapped_column(String(255))


class Url(Base):
    __tablename__ = "url"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course: Mapped[int] = mapped_column(Integer, index=True)
    name: Mapped[str] = mapped_column(String(255))
    externalurl: Mapped[str] = mapped_column(Text, default="")


class ConfigPlugin(Base):
    __tablename__ = "config_plugins"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plugin: Mapped[str] = mapped_column(String(100), index=True)
    name: Mapped[str] = mapped_column(String(100))
    value: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (UniqueConstraint("plugin", "name", name="ux_config_plugins_plugin_name"),)


class CustomFieldCategory(Base):
    __tablename__ = "customfield_category"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    component: Mapped[str] = mapped_column(String(100))
    area: Mapped[str] = mapped_column(String(100))
    name: Mapped[str] = mapped_column(String(255))


class CustomField(Base):
    __tablename__ = "customfield_field"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    categoryid: Mapped[int] = mapped_column(Integer, index=True)
    shortname: Mapped[str] = mapped_column(String(100), unique=True)
    name: Mapped[str] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(32), default="text")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    configdata: Mapped[dict] = mapped_column(JSON, default=dict)


class Question(Base):
    __tablename__ = "question"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    courseid: Mapped[int] = mapped_column(Integer, index=True)
    category: Mapped[str] = mapped_column(String(255), default="Default")
    name: Mapped[str] = mapped_column(String(255))
    qtype: Mapped[str] = mapped_column(String(32))
    questiontext: Mapped[str] = mapped_column(Text, default="")
    idnumber: Mapped[str | None] = mapped_column(String(100), nullable=True)
    defaultmark: Mapped[float] = mapped_column(Float, default=1.0)


class CatScale(Base):
    __tablename__ = "catscales"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    parentid: Mapped[int] = mapped_column(Integer, default=0)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class CatTest(Base):
    __tablename__ = "cat_tests"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    componentid: Mapped[int] = mapped_column(Integer)
    component: Mapped[str] = mapped_column(String(100))
    courseid: Mapped[int] = mapped_column(Integer, index=True)
    catscaleid: Mapped[int] = mapped_column(Integer)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    json: Mapped[str | None] = mapped_column(Text, nullable=True)


class ItemParam(Base):
    __tablename__ = "item_params"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    componentid: Mapped[int] = mapped_column(Integer, index=True)
    componentname: Mapped[str] = mapped_column(String(100), default="question")
    model: Mapped[str] = mapped_column(String(32))
    difficulty: Mapped[float | None] = mapped_column(Float, nullable=True)
    discrimination: Mapped[float | None] = mapped_column(Float, nullable=True)
    guessing: Mapped[float | None] = mapped_column(Float, nullable=True)
    timecreated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class LearningPath(Base):
    __tablename__ = "learning_paths"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    json: Mapped[str | None] = mapped_column(Text, nullable=True)


class LearningPathActivity(Base):
    __tablename__ = "learning_path_activities"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course: Mapped[int] = mapped_column(Integer, index=True)
    name: Mapped[str] = mapped_column(String(255))
    learningpathid: Mapped[int] = mapped_column(Integer, index=True)
