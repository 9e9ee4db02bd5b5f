"""
FastAPI app for uploading backlink CSV exports and browsing the results.

To run locally:
    export DATABASE_URL="sqlite:///./backlink_analyzer.db"
    uvicorn backlink_analyzer.api:app --reload --host 0.0.0.0 --port 8000

"""

import logging
import re
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .config import Settings
from .csv_ingest import decode_upload, parse_backlinks_csv
from .db import (
    make_engine, make_session_factory, init_db,
    create_group, list_groups, update_group, delete_group,
    create_or_get_project, get_project, delete_project,
    insert_backlink, get_backlinks_for_project, list_backlinks,
)
from .errors import BacklinkAnalyzerError, ValidationError
from .logging_setup import configure_logging
from .schemas import FollowFilter, GroupIn, GroupUpdateIn, ProjectIn, UploadType
from .stats import export_unique_source_urls_csv, group_statistics, project_summaries

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/api/backlink-analyzer')


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _parse_id(raw: Optional[str], what: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {what} ID')


def _backlink_out(b):
    return {
        'id': b.id,
        'project_id': b.project_id,
        'source_url': b.source_url,
        'source_domain': b.source_domain,
        'target_url': b.target_url,
        'page_ascore': b.page_ascore,
        'external_links': b.external_links,
        'is_nofollow': b.is_nofollow,
        'first_seen': b.first_seen.isoformat() if b.first_seen else None,
        'last_seen': b.last_seen.isoformat() if b.last_seen else None,
        'created_at': b.created_at.isoformat() if b.created_at else None,
    }


def _group_out(g, projects_count=None):
    out = {
        'id': g.id,
        'name': g.name,
        'description': g.description,
        'color': g.color,
        'created_at': g.created_at.isoformat() if g.created_at else None,
        'updated_at': g.updated_at.isoformat() if g.updated_at else None,
    }
    if projects_count is not None:
        out['projects_count'] = projects_count
    return out


def _project_out(p):
    return {
        'id': p.id,
        'name': p.name,
        'description': p.description,
        'group_id': p.group_id,
        'created_at': p.created_at.isoformat() if p.created_at else None,
    }


@router.get('/health')
def health():
    return {"status": "ok"}


# -----------------------
# Upload
# -----------------------

def ingest_upload(db, settings: Settings, project_name: str, group_id: Optional[int], raw: bytes):
    """Create or reuse the project, then parse the export and store the surviving rows."""
    project = create_or_get_project(db, project_name, '', group_id)
    logger.info("Using project %s (id=%d)", project.name, project.id)

    text = decode_upload(raw)
    logger.info("CSV file size: %d characters", len(text))
    batch = parse_backlinks_csv(
        text,
        threshold=settings.spam_external_links_threshold,
        prefer_fewer_external_links=settings.dedup_prefer_fewer_external_links,
    )

    # one round trip per row; a failure leaves earlier rows in place
    processed = 0
    for record in batch:
        insert_backlink(db, project.id, record)
        processed += 1
    logger.info("Processed %d backlinks into project %s", processed, project.name)
    return project.id, processed


@router.post('/upload')
async def upload_backlinks(
    file: Optional[UploadFile] = File(None),
    upload_type: Optional[str] = Form(None, alias='type'),
    project_name: Optional[str] = Form(None, alias='projectName'),
    group_id: Optional[str] = Form(None, alias='groupId'),
    db=Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    if file is None:
        raise ValidationError('No file received')
    if not project_name or not project_name.strip():
        raise ValidationError('Please enter project name')
    try:
        UploadType(upload_type)
    except ValueError:
        raise ValidationError('Invalid file type')
    group_id_number = _parse_id(group_id, 'group') if group_id and group_id.strip() else None

    raw = await file.read()
    try:
        # parsing and the store calls are blocking, keep them off the event loop
        project_id, processed = await run_in_threadpool(
            ingest_upload, db, settings, project_name.strip(), group_id_number, raw)
    except BacklinkAnalyzerError:
        raise
    except Exception as e:
        logger.exception("File processing failed")
        raise BacklinkAnalyzerError('File processing failed', error=str(e))

    return {
        "success": True,
        "message": f"Successfully processed {processed} backlink records",
        "processedCount": processed,
        "projectId": project_id,
    }


# -----------------------
# Groups
# -----------------------

@router.get('/groups')
def groups_list(db=Depends(get_db)):
    return {"success": True, "data": [_group_out(g, count) for g, count in list_groups(db)]}


@router.post('/groups')
def groups_create(payload: GroupIn, db=Depends(get_db), settings: Settings = Depends(get_settings)):
    if not payload.name or not payload.name.strip():
        raise ValidationError('Group name is required')
    description = payload.description.strip() if payload.description else None
    group = create_group(db, payload.name.strip(), description, payload.color or settings.default_group_color)
    return {"success": True, "data": _group_out(group), "message": "Group created successfully"}


@router.put('/groups')
def groups_update(payload: GroupUpdateIn, db=Depends(get_db), settings: Settings = Depends(get_settings)):
    if not payload.id or not payload.name or not payload.name.strip():
        raise ValidationError('Group ID and name are required')
    description = payload.description.strip() if payload.description else None
    group = update_group(db, payload.id, payload.name.strip(), description, payload.color or settings.default_group_color)
    return {"success": True, "data": _group_out(group), "message": "Group updated successfully"}


@router.delete('/groups')
def groups_delete(id: Optional[str] = None, db=Depends(get_db)):
    if not id:
        raise ValidationError('Group ID is required')
    detached = delete_group(db, _parse_id(id, 'group'))
    return {"success": True, "message": "Group deleted successfully", "detachedProjects": detached}


@router.get('/groups/{group_id}/statistics')
def groups_statistics(group_id: str, db=Depends(get_db)):
    return {"success": True, "data": group_statistics(db, _parse_id(group_id, 'group'))}


@router.get('/groups/{group_id}/export')
def groups_export(group_id: str, db=Depends(get_db)):
    stats = group_statistics(db, _parse_id(group_id, 'group'))
    filename = re.sub(r'[^a-zA-Z0-9]', '_', stats['group']['name']) + '_source_urls.csv'
    return Response(
        content=export_unique_source_urls_csv(stats['unique_source_urls']),
        media_type='text/csv; charset=utf-8',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )


# -----------------------
# Projects
# -----------------------

@router.get('/projects')
def projects_list(db=Depends(get_db)):
    return {"success": True, "data": project_summaries(db)}


@router.post('/projects')
def projects_create(payload: ProjectIn, db=Depends(get_db)):
    if not payload.name or not payload.name.strip():
        raise ValidationError('Project name is required')
    description = payload.description.strip() if payload.description else None
    project = create_or_get_project(db, payload.name.strip(), description, payload.group_id)
    return {"success": True, "data": _project_out(project)}


@router.get('/projects/{project_id}')
def projects_backlinks(project_id: str, follow: FollowFilter = FollowFilter.ALL, db=Depends(get_db)):
    project = get_project(db, _parse_id(project_id, 'project'))
    backlinks = get_backlinks_for_project(db, project.id, follow)
    return {"success": True, "project": _project_out(project), "data": [_backlink_out(b) for b in backlinks]}


@router.delete('/projects/{project_id}')
def projects_delete(project_id: str, db=Depends(get_db)):
    removed = delete_project(db, _parse_id(project_id, 'project'))
    return {
        "success": True,
        "message": "Project and all related data deleted successfully",
        "deletedBacklinks": removed,
    }


@router.get('/data')
def all_backlinks(db=Depends(get_db)):
    return {"success": True, "data": {"backlinks": [_backlink_out(b) for b in list_backlinks(db)]}}


# -----------------------
# App factory
# -----------------------

async def _handle_app_error(request: Request, exc: BacklinkAnalyzerError):
    body = {"success": False, "message": exc.message}
    if exc.error is not None:
        body["error"] = exc.error
    return JSONResponse(status_code=exc.status_code, content=body)


async def _handle_request_validation(request: Request, exc: RequestValidationError):
    errors = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"success": False, "message": "Invalid request", "error": errors})


def create_app(settings: Optional[Settings] = None, engine=None) -> FastAPI:
    """Build the app around its own store handle; tests pass their own settings or engine."""
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    engine = engine or make_engine(settings.database_url)

    @asynccontextmanager
    async def lifespan(app):
        init_db(engine)
        yield
        engine.dispose()

    app = FastAPI(title='Backlink Analyzer', lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(BacklinkAnalyzerError, _handle_app_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.include_router(router)

    return app


app = create_app()
