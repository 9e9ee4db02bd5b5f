"""
Pydantic types shared by the ingest pipeline and the HTTP layer.

Closed tag sets (upload type, follow filter, canonical CSV fields) are
enumerations so they are checked once at the request boundary and carried
as typed values afterwards.
"""
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

HEX_COLOR_PATTERN = r'^#[0-9a-fA-F]{6}$'


class UploadType(str, Enum):
    BACKLINKS = 'backlinks'


class FollowFilter(str, Enum):
    ALL = 'all'
    FOLLOW = 'follow'
    NOFOLLOW = 'nofollow'


class BacklinkField(str, Enum):
    SOURCE_URL = 'source_url'
    TARGET_URL = 'target_url'
    PAGE_ASCORE = 'page_ascore'
    EXTERNAL_LINKS = 'external_links'
    IS_NOFOLLOW = 'is_nofollow'
    FIRST_SEEN = 'first_seen'
    LAST_SEEN = 'last_seen'


class BacklinkRecord(BaseModel):
    """One normalized CSV row, ready to be attached to a project."""
    source_url: str
    source_domain: str
    target_url: str = ''
    page_ascore: int = 0
    external_links: int = 0
    is_nofollow: bool = False
    first_seen: Optional[date] = None
    last_seen: Optional[date] = None


class GroupIn(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)


class GroupUpdateIn(GroupIn):
    id: Optional[int] = None


class ProjectIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    description: Optional[str] = None
    group_id: Optional[int] = Field(default=None, alias='groupId')
