# ---------- backlink_analyzer/db.py ----------
"""
Database helpers: engine, session factory, and CRUD functions.

Every helper takes an explicit session as its first argument; the app
builds one session factory per store and hands sessions to request
handlers, so tests can point the whole service at a throwaway database.

Each mutation is a single statement followed by a commit. Nothing here
wraps a compound operation in a transaction.
"""
import functools
import logging
from typing import List, Optional, Tuple

from sqlalchemy import create_engine, event, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import NotFoundError, PersistenceError
from .models import Base, Group, Project, Backlink, DEFAULT_GROUP_COLOR
from .schemas import BacklinkRecord, FollowFilter

logger = logging.getLogger(__name__)


def make_engine(database_url: str):
    if not database_url.startswith('sqlite'):
        return create_engine(database_url, pool_pre_ping=True)

    kwargs = {'connect_args': {'check_same_thread': False}}
    if ':memory:' in database_url or database_url.rstrip('/') == 'sqlite:':
        # one shared connection, otherwise every checkout sees an empty db
        kwargs['poolclass'] = StaticPool
    engine = create_engine(database_url, **kwargs)

    @event.listens_for(engine, 'connect')
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

    return engine


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine):
    Base.metadata.create_all(bind=engine)


def store_call(fn):
    """Turn store failures into PersistenceError and leave the session usable."""
    @functools.wraps(fn)
    def wrapper(db, *args, **kwargs):
        try:
            return fn(db, *args, **kwargs)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("%s failed: %s", fn.__name__, e)
            raise PersistenceError(f'{fn.__name__} failed', error=str(e.orig if getattr(e, 'orig', None) else e))
    return wrapper

# -----------------------
# Groups
# -----------------------

@store_call
def create_group(db, name: str, description: Optional[str] = None, color: Optional[str] = None):
    group = Group(name=name, description=description or '', color=color or DEFAULT_GROUP_COLOR)
    db.add(group)
    db.commit()
    db.refresh(group)
    logger.info("Created group %s (id=%d)", group.name, group.id)
    return group


@store_call
def list_groups(db) -> List[Tuple[Group, int]]:
    """All groups, newest first, each paired with its project count."""
    return (
        db.query(Group, func.count(Project.id))
        .outerjoin(Project, Project.group_id == Group.id)
        .group_by(Group.id)
        .order_by(Group.created_at.desc(), Group.id.desc())
        .all()
    )


@store_call
def get_group(db, group_id: int):
    group = db.get(Group, group_id)
    if group is None:
        raise NotFoundError(f'Group {group_id} not found')
    return group


@store_call
def update_group(db, group_id: int, name: str, description: Optional[str] = None, color: Optional[str] = None):
    group = get_group(db, group_id)
    group.name = name
    group.description = description or ''
    group.color = color or DEFAULT_GROUP_COLOR
    db.commit()
    db.refresh(group)
    return group


@store_call
def delete_group(db, group_id: int) -> int:
    """Detach the group's projects, then drop the group. Returns how many projects were detached."""
    get_group(db, group_id)
    detached = (
        db.query(Project)
        .filter(Project.group_id == group_id)
        .update({Project.group_id: None}, synchronize_session=False)
    )
    db.commit()
    db.query(Group).filter(Group.id == group_id).delete(synchronize_session=False)
    db.commit()
    db.expire_all()
    logger.info("Deleted group %d, %d projects moved to No Group", group_id, detached)
    return detached

# -----------------------
# Projects
# -----------------------

@store_call
def create_or_get_project(db, name: str, description: Optional[str] = None, group_id: Optional[int] = None):
    """
    Look the project up by its unique name and create it when missing.

    A supplied group_id that differs from the stored one reassigns the
    project. Not atomic: two concurrent first uploads of the same name both
    miss the lookup and the loser gets the unique-constraint error.
    """
    project = db.query(Project).filter_by(name=name).first()
    if project is not None:
        if group_id is not None and project.group_id != group_id:
            project.group_id = group_id
            db.commit()
            db.refresh(project)
            logger.info("Moved project %s to group %d", name, group_id)
        return project

    project = Project(name=name, description=description or '', group_id=group_id)
    db.add(project)
    db.commit()
    db.refresh(project)
    logger.info("Created project %s (id=%d)", project.name, project.id)
    return project


@store_call
def get_project(db, project_id: int):
    project = db.get(Project, project_id)
    if project is None:
        raise NotFoundError(f'Project {project_id} not found')
    return project


@store_call
def delete_project(db, project_id: int) -> int:
    """Delete the project's backlinks, then the project. Returns the number of backlinks removed."""
    get_project(db, project_id)
    removed = db.query(Backlink).filter(Backlink.project_id == project_id).delete(synchronize_session=False)
    db.commit()
    db.query(Project).filter(Project.id == project_id).delete(synchronize_session=False)
    db.commit()
    db.expire_all()
    logger.info("Deleted project %d with %d backlinks", project_id, removed)
    return removed

# -----------------------
# Backlinks
# -----------------------

@store_call
def insert_backlink(db, project_id: int, record: BacklinkRecord):
    # no lookup against rows already stored for this project
    backlink = Backlink(project_id=project_id, **record.model_dump())
    db.add(backlink)
    db.commit()
    db.refresh(backlink)
    return backlink


@store_call
def get_backlinks_for_project(db, project_id: int, follow: FollowFilter = FollowFilter.ALL):
    q = db.query(Backlink).filter(Backlink.project_id == project_id)
    if follow == FollowFilter.FOLLOW:
        q = q.filter(Backlink.is_nofollow.is_(False))
    elif follow == FollowFilter.NOFOLLOW:
        q = q.filter(Backlink.is_nofollow.is_(True))
    return q.order_by(Backlink.created_at.desc(), Backlink.id.desc()).all()


@store_call
def get_backlinks_for_group(db, group_id: Optional[int]) -> List[Tuple[Backlink, str]]:
    """Backlinks of every project in the group (None = projects without a group), with project names."""
    q = db.query(Backlink, Project.name).join(Project, Backlink.project_id == Project.id)
    if group_id is None:
        q = q.filter(Project.group_id.is_(None))
    else:
        q = q.filter(Project.group_id == group_id)
    return q.order_by(Backlink.id).all()


@store_call
def list_backlinks(db):
    return db.query(Backlink).order_by(Backlink.created_at.desc(), Backlink.id.desc()).all()
# ---------- end of backlink_analyzer/db.py ----------
