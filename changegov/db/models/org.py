import uuid
from sqlalchemy import Column, String, DateTime, JSON, Boolean, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship

from changegov.db.base import Base, utcnow


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    settings = Column(JSON, default=dict)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    projects = relationship("Project", back_populates="organization")
    approvers = relationship("OrganisationApprover", back_populates="organization")
    approval_groups = relationship("ApprovalGroup", back_populates="organization")
    approval_rules = relationship("ApprovalRule", back_populates="organization")


class Project(Base):
    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # Nullable: projects created before organisations were introduced have none
    organisation_id = Column(Uuid, ForeignKey("organizations.id"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    project_code = Column(String(50), nullable=True, unique=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    organization = relationship("Organization", back_populates="projects")
    members = relationship("ProjectMember", back_populates="project", cascade="all, delete-orphan")
    change_requests = relationship("ChangeRequest", back_populates="project")


class ProjectMember(Base):
    """Membership of a user in a project with an owner/editor/viewer role."""
    __tablename__ = "project_members"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="viewer")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    project = relationship("Project", back_populates="members")
    user = relationship("User", back_populates="memberships")

    def __repr__(self) -> str:
        return f"<ProjectMember {self.user_id} [{self.role}]>"
