"""SQLAlchemy ORM models for the relational store.

- Repository: a source repository registered by the surrounding product
- RepositoryFile: one row per analysed file of the current generation
- CodeEntity: functions, classes, interfaces... found in a file
- AnalysisJob: one row per analysis run, mutated only by the orchestrator
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, Float, Text, TIMESTAMP, ForeignKey,
    Index, TypeDecorator, UniqueConstraint, Enum,
)
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.dialects.postgresql import UUID as PostgreSQL_UUID

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL's UUID type when available, otherwise stores as String(36).
    Values are always handed back to Python as ``str``.
    """
    impl = String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PostgreSQL_UUID(as_uuid=False))
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        return str(value)


def _new_id():
    return str(uuid.uuid4())


class AnalysisStatus(str, enum.Enum):
    """Job state machine: PENDING -> CLONING -> ANALYSING -> COMPLETED | FAILED."""

    PENDING = "PENDING"
    CLONING = "CLONING"
    ANALYSING = "ANALYSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (AnalysisStatus.COMPLETED, AnalysisStatus.FAILED)


ACTIVE_STATUSES = (AnalysisStatus.PENDING, AnalysisStatus.CLONING, AnalysisStatus.ANALYSING)


class Repository(Base):
    """Source repository; owned by the project layer, read by the engine."""
    __tablename__ = "repositories"

    id = Column(UUID(), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    full_name = Column(String(512))
    repository_url = Column(String(2048), nullable=False)
    default_branch = Column(String(255), nullable=True)
    created_at = Column(TIMESTAMP, default=utcnow, nullable=False)
    updated_at = Column(TIMESTAMP, default=utcnow, onupdate=utcnow, nullable=False)

    files = relationship("RepositoryFile", back_populates="repository", cascade="all, delete-orphan")
    analysis_jobs = relationship("AnalysisJob", back_populates="repository", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Repository(id={self.id}, name='{self.name}')>"


class RepositoryFile(Base):
    """One analysed file; deleted and recreated on every analysis run."""
    __tablename__ = "repository_files"
    __table_args__ = (
        Index('idx_repository_files_repository', 'repository_id'),
        Index('idx_repository_files_file_type', 'file_type'),
        Index('idx_repository_files_node_id', 'neo4j_node_id'),
        UniqueConstraint('repository_id', 'file_path', name='uq_repository_file_path'),
    )

    id = Column(UUID(), primary_key=True, default=_new_id)
    repository_id = Column(UUID(), ForeignKey("repositories.id", ondelete="CASCADE"), nullable=False)
    file_path = Column(String(1024), nullable=False)    # repository-relative
    file_name = Column(String(255), nullable=False)
    file_type = Column(String(50), nullable=False)
    lines_of_code = Column(Integer, default=0, nullable=False)
    neo4j_node_id = Column(String(2048))                # cross-store key
    annotations = Column(Text)                          # JSON: imports/exports, user annotations
    ai_summary = Column(Text)
    created_at = Column(TIMESTAMP, default=utcnow, nullable=False)
    updated_at = Column(TIMESTAMP, default=utcnow, onupdate=utcnow, nullable=False)

    repository = relationship("Repository", back_populates="files")
    code_entities = relationship(
        "CodeEntity", back_populates="repository_file",
        cascade="all, delete-orphan", order_by="CodeEntity.start_line",
    )

    def __repr__(self):
        return f"<RepositoryFile(id={self.id}, path='{self.file_path}')>"


class CodeEntity(Base):
    """A function/class/interface inside a file; carries its cross-store key in annotations."""
    __tablename__ = "code_entities"
    __table_args__ = (
        Index('idx_code_entities_file', 'repository_file_id'),
    )

    id = Column(UUID(), primary_key=True, default=_new_id)
    repository_file_id = Column(UUID(), ForeignKey("repository_files.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(512), nullable=False)
    type = Column(String(50), nullable=False)
    start_line = Column(Integer, nullable=False)
    end_line = Column(Integer, nullable=False)
    annotations = Column(Text)                          # JSON: {"neo4jNodeId": ...}
    created_at = Column(TIMESTAMP, default=utcnow, nullable=False)
    updated_at = Column(TIMESTAMP, default=utcnow, onupdate=utcnow, nullable=False)

    repository_file = relationship("RepositoryFile", back_populates="code_entities")

    def __repr__(self):
        return f"<CodeEntity(id={self.id}, name='{self.name}', type='{self.type}')>"


class AnalysisJob(Base):
    """One analysis run of a repository."""
    __tablename__ = "analysis_jobs"
    __table_args__ = (
        Index('idx_analysis_jobs_repository', 'repository_id'),
        Index('idx_analysis_jobs_status', 'status'),
    )

    id = Column(UUID(), primary_key=True, default=_new_id)
    repository_id = Column(UUID(), ForeignKey("repositories.id", ondelete="CASCADE"), nullable=False)
    status = Column(Enum(AnalysisStatus, name="analysis_status"), default=AnalysisStatus.PENDING, nullable=False)
    progress = Column(Float, default=0, nullable=False)
    files_analysed = Column(Integer, default=0, nullable=False)
    total_files = Column(Integer, nullable=True)
    error_message = Column(Text)
    error_details = Column(Text)
    started_at = Column(TIMESTAMP)
    completed_at = Column(TIMESTAMP)
    created_at = Column(TIMESTAMP, default=utcnow, nullable=False)
    updated_at = Column(TIMESTAMP, default=utcnow, onupdate=utcnow, nullable=False)

    repository = relationship("Repository", back_populates="analysis_jobs")

    def __repr__(self):
        return f"<AnalysisJob(id={self.id}, status={self.status}, progress={self.progress})>"
