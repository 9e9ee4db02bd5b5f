# ---------- backlink_analyzer/models.py ----------
"""
SQLAlchemy models for groups, projects and backlinks.
"""
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Date, DateTime, ForeignKey
)
from sqlalchemy.orm import declarative_base, relationship

DEFAULT_GROUP_COLOR = '#3b82f6'

Base = declarative_base()

class Group(Base):
    __tablename__ = 'groups'
    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, default='')
    color = Column(String, default=DEFAULT_GROUP_COLOR)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    projects = relationship('Project', back_populates='group', passive_deletes=True)

class Project(Base):
    __tablename__ = 'projects'
    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, default='')
    # weak reference: nulled, never cascaded, when the group goes away
    group_id = Column(Integer, ForeignKey('groups.id', ondelete='SET NULL'), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    group = relationship('Group', back_populates='projects')
    backlinks = relationship('Backlink', back_populates='project', passive_deletes=True)

class Backlink(Base):
    __tablename__ = 'backlinks'
    id = Column(Integer, primary_key=True)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True)
    source_url = Column(Text, nullable=False)
    source_domain = Column(String, nullable=False, index=True)
    target_url = Column(Text, nullable=False, default='')
    page_ascore = Column(Integer, default=0)
    external_links = Column(Integer, default=0)
    is_nofollow = Column(Boolean, default=False)
    first_seen = Column(Date)
    last_seen = Column(Date)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    project = relationship('Project', back_populates='backlinks')
# ---------- end of backlink_analyzer/models.py ----------
