"""
Runtime settings read from the environment (and a local .env file).

    export DATABASE_URL="sqlite:///./backlink_analyzer.db"
    export SPAM_EXTERNAL_LINKS_THRESHOLD=3000
    export DEDUP_PREFER_FEWER_EXTERNAL_LINKS=true
"""
import os
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from .models import DEFAULT_GROUP_COLOR

load_dotenv()

_TRUTHY = {'1', 'true', 'yes', 'on'}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    database_url: str = 'sqlite:///./backlink_analyzer.db'
    # rows with more outbound links than this are treated as link-farm noise
    spam_external_links_threshold: int = Field(default=3000, ge=0)
    # on an authority tie, keep the row with fewer external links
    dedup_prefer_fewer_external_links: bool = True
    default_group_color: str = DEFAULT_GROUP_COLOR
    log_level: str = 'INFO'
    cors_allow_origins: List[str] = ['*']

    @classmethod
    def from_env(cls):
        origins = os.getenv('CORS_ALLOW_ORIGINS', '*')
        return cls(
            database_url=os.getenv('DATABASE_URL', cls.model_fields['database_url'].default),
            spam_external_links_threshold=int(os.getenv('SPAM_EXTERNAL_LINKS_THRESHOLD', '3000')),
            dedup_prefer_fewer_external_links=_env_bool('DEDUP_PREFER_FEWER_EXTERNAL_LINKS', True),
            default_group_color=os.getenv('DEFAULT_GROUP_COLOR', DEFAULT_GROUP_COLOR),
            log_level=os.getenv('LOG_LEVEL', 'INFO'),
            cors_allow_origins=[o.strip() for o in origins.split(',') if o.strip()],
        )
