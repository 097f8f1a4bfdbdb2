"""Pytest configuration and shared fixtures.

Every test gets its own in-memory SQLite database built from the model
metadata. The engine commits for real, so isolation comes from the fresh
database rather than from a wrapping transaction.
"""

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import changegov.db.models  # noqa: F401  (registers tables on Base.metadata)
from changegov.core.governance.engine import DecisionEngine
from changegov.db.base import Base

from tests import factories


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite does not emit BEGIN itself; take over so SAVEPOINT works
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    session = sessionmaker(bind=db_engine, autoflush=False)()
    yield session
    session.close()


# ---------------------------------------------------------------------------
# Seeded organisation, project and people
# ---------------------------------------------------------------------------


@pytest.fixture
def org(db_session):
    org = factories.create_organization(db_session, name="Acme Delivery")
    db_session.commit()
    return org


@pytest.fixture
def project(db_session, org):
    project = factories.create_project(db_session, org=org, title="Warehouse Upgrade")
    db_session.commit()
    return project


def _member(db_session, project, role, name):
    user = factories.create_user(db_session, name=name)
    factories.add_member(db_session, project=project, user=user, role=role)
    db_session.commit()
    return user


@pytest.fixture
def owner(db_session, project):
    return _member(db_session, project, "owner", "Olivia Owner")


@pytest.fixture
def editor(db_session, project):
    return _member(db_session, project, "editor", "Eddie Editor")


@pytest.fixture
def viewer(db_session, project):
    return _member(db_session, project, "viewer", "Vic Viewer")


@pytest.fixture
def approver(db_session, project):
    """Project viewer who is named directly by an approval rule."""
    return _member(db_session, project, "viewer", "Ada Approver")


@pytest.fixture
def sponsor(db_session, project):
    """Project viewer who approves through a group."""
    return _member(db_session, project, "viewer", "Sam Sponsor")


@pytest.fixture
def outsider(db_session):
    user = factories.create_user(db_session, name="Nora Outsider")
    db_session.commit()
    return user


@pytest.fixture
def standard_rules(db_session, org, approver, sponsor):
    """
    Two-step policy for change requests:
      step 1 "Finance Review" - approver directly, band [0, 10000]
      step 2 "Sponsor Sign-off" - sponsor group, band [5000, unbounded)
    """
    group = factories.create_group(db_session, org=org, name="Sponsors")
    factories.add_group_approver(db_session, group=group, user=sponsor)
    finance = factories.create_rule(
        db_session, org=org, step=1, role="Finance Review",
        user=approver, min_amount=0, max_amount=10000,
    )
    sponsors = factories.create_rule(
        db_session, org=org, step=2, role="Sponsor Sign-off",
        group=group, min_amount=5000, max_amount=None,
    )
    db_session.commit()
    return {"finance": finance, "sponsors": sponsors, "group": group}


@pytest.fixture
def decision_engine(db_session):
    return DecisionEngine(db_session)
