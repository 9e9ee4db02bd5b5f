"""
Read-side aggregates, computed on every request and never cached.

Per-project numbers come straight from SQL; group numbers are folded in
Python over the backlinks of every project in the group, including the
virtual "No Group" bucket for projects whose group_id is NULL.
"""
import csv
import io
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import case, func

from .db import store_call, get_backlinks_for_group, get_group
from .models import Backlink, Group, Project

NO_GROUP_ID = 0
NO_GROUP_NAME = 'No Group'
NO_GROUP_COLOR = '#6b7280'

EXPORT_HEADERS = ['Source URL', 'Domain', 'Authority Score']


def _avg(total, count) -> Optional[float]:
    return total / count if count else None


def summarize_backlinks(backlinks: Iterable[Backlink]) -> Dict:
    """Count, average authority and follow/nofollow split of a set of backlinks."""
    count = 0
    score_total = 0
    external_total = 0
    follow = 0
    for b in backlinks:
        count += 1
        score_total += b.page_ascore or 0
        external_total += b.external_links or 0
        if not b.is_nofollow:
            follow += 1
    return {
        'backlinks_count': count,
        'avg_authority': _avg(score_total, count),
        'avg_external_links': _avg(external_total, count),
        'follow_links_count': follow,
        'nofollow_links_count': count - follow,
    }


@store_call
def project_summaries(db) -> List[Dict]:
    """Every project with its group label and backlink aggregates."""
    follow = func.coalesce(func.sum(case((Backlink.is_nofollow.is_(False), 1), else_=0)), 0)
    nofollow = func.coalesce(func.sum(case((Backlink.is_nofollow.is_(True), 1), else_=0)), 0)
    rows = (
        db.query(
            Project,
            Group.name,
            Group.color,
            func.count(Backlink.id),
            func.avg(Backlink.page_ascore),
            func.avg(Backlink.external_links),
            follow,
            nofollow,
        )
        .outerjoin(Group, Project.group_id == Group.id)
        .outerjoin(Backlink, Backlink.project_id == Project.id)
        .group_by(Project.id, Group.name, Group.color)
        .order_by(Group.name.asc(), Project.created_at.desc(), Project.id.desc())
        .all()
    )
    out = []
    for project, group_name, group_color, count, avg_score, avg_ext, follow_count, nofollow_count in rows:
        out.append({
            'id': project.id,
            'name': project.name,
            'description': project.description,
            'group_id': project.group_id,
            'group_name': group_name,
            'group_color': group_color,
            'created_at': project.created_at.isoformat() if project.created_at else None,
            'backlinks_count': count,
            'avg_authority': float(avg_score) if avg_score is not None else None,
            'avg_external_links': float(avg_ext) if avg_ext is not None else None,
            'follow_links_count': int(follow_count),
            'nofollow_links_count': int(nofollow_count),
        })
    return out


def unique_source_urls(pairs: Iterable[Tuple[Backlink, str]]) -> List[Dict]:
    """
    Collapse (backlink, project name) pairs by source_url.

    Each entry keeps the highest page_ascore seen for the URL, the domain of
    that row and the names of all projects that reference the URL. Sorted by
    score, highest first.
    """
    by_url: Dict[str, Dict] = {}
    for backlink, project_name in pairs:
        entry = by_url.get(backlink.source_url)
        if entry is None:
            entry = by_url[backlink.source_url] = {
                'url': backlink.source_url,
                'domain': backlink.source_domain,
                'max_score': backlink.page_ascore or 0,
                'projects': [],
            }
        elif (backlink.page_ascore or 0) > entry['max_score']:
            entry['max_score'] = backlink.page_ascore or 0
            entry['domain'] = backlink.source_domain
        if project_name not in entry['projects']:
            entry['projects'].append(project_name)
    return sorted(by_url.values(), key=lambda e: e['max_score'], reverse=True)


def duplicated_source_urls(pairs: Iterable[Tuple[Backlink, str]], min_count: int = 2) -> List[Dict]:
    """Source URLs that appear at least `min_count` times across the group."""
    counts: Dict[str, Dict] = {}
    for backlink, _ in pairs:
        entry = counts.setdefault(backlink.source_url, {
            'url': backlink.source_url,
            'domain': backlink.source_domain,
            'count': 0,
            'max_score': 0,
        })
        entry['count'] += 1
        entry['max_score'] = max(entry['max_score'], backlink.page_ascore or 0)
    repeated = [e for e in counts.values() if e['count'] >= min_count]
    return sorted(repeated, key=lambda e: e['count'], reverse=True)


def group_statistics(db, group_id: Optional[int]) -> Dict:
    """Aggregate one group; group_id None or 0 means the virtual No Group bucket."""
    if group_id in (None, NO_GROUP_ID):
        group_id = None
        label = {'id': NO_GROUP_ID, 'name': NO_GROUP_NAME, 'color': NO_GROUP_COLOR}
        project_filter = Project.group_id.is_(None)
    else:
        group = get_group(db, group_id)
        label = {'id': group.id, 'name': group.name, 'color': group.color}
        project_filter = Project.group_id == group_id

    total_projects = _count_projects(db, project_filter)
    pairs = get_backlinks_for_group(db, group_id)
    summary = summarize_backlinks(b for b, _ in pairs)

    return {
        'group': label,
        'total_projects': total_projects,
        'total_backlinks': summary['backlinks_count'],
        'avg_authority': summary['avg_authority'],
        'follow_links_count': summary['follow_links_count'],
        'nofollow_links_count': summary['nofollow_links_count'],
        'unique_source_urls': unique_source_urls(pairs),
        'duplicated_source_urls': duplicated_source_urls(pairs),
    }


@store_call
def _count_projects(db, project_filter) -> int:
    return db.query(func.count(Project.id)).filter(project_filter).scalar() or 0


def export_unique_source_urls_csv(rollup: Iterable[Dict]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator='\n')
    writer.writerow(EXPORT_HEADERS)
    for entry in rollup:
        writer.writerow([entry['url'], entry['domain'], entry['max_score']])
    return buf.getvalue()
