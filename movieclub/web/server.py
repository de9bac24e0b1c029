"""FastAPI boundary layer for the ranking engine.

Authentication is out of scope: the caller's id arrives in the `X-User-Id`
header. Session ownership is checked here, never inside the engine.
"""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from movieclub.app.errors import (
    CatalogUnavailable,
    ConflictError,
    NotFoundError,
    PreconditionViolation,
    RankingError,
    UnauthorizedError,
    ValidationError,
)
from movieclub.app.services import Services, build_services
from movieclub.ranking.sessions import ComparisonSession
from movieclub.storage.dao import Movie, RankedEntry

logger = logging.getLogger("movieclub.web")

_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (ConflictError, 409),
    (UnauthorizedError, 403),
    (ValidationError, 400),
    (CatalogUnavailable, 503),
    (PreconditionViolation, 500),
)


_NON_NULLABLE_FIELDS = ("rewatchable", "is_public")


class StartRankingRequest(BaseModel):
    tmdb_id: int
    category: str


class CompareRequest(BaseModel):
    session_id: str
    preference: str


class UpdateRankingRequest(BaseModel):
    category: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[list[str]] = None
    watch_date: Optional[str] = None
    rewatchable: Optional[bool] = None
    is_public: Optional[bool] = None


def _movie_card(movie: Movie) -> dict:
    return {
        "id": movie.id,
        "tmdb_id": movie.tmdb_id,
        "title": movie.title,
        "poster_path": movie.poster_path,
        "release_date": movie.release_date,
    }


def _ranking_payload(entry: RankedEntry, movie: Optional[Movie] = None) -> dict:
    payload = {
        "id": entry.id,
        "category": entry.category,
        "rank": entry.position,
        "rating": entry.rating,
        "notes": entry.notes,
        "tags": [t for t in entry.tags.split(",") if t],
        "watch_date": entry.watch_date,
        "rewatchable": entry.rewatchable,
        "is_public": entry.is_public,
        "ranking_date": entry.ranked_at,
    }
    if movie is not None:
        payload["movie"] = _movie_card(movie)
    return payload


def _status_for(exc: RankingError) -> int:
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return status
    return 500


def create_app(services: Optional[Services] = None) -> FastAPI:
    services = services or build_services()
    engine = services.engine
    ranking_service = services.ranking_service
    catalog = services.catalog

    app = FastAPI(title="Movie Club Ranker")
    router = APIRouter()

    @app.exception_handler(RankingError)
    async def ranking_error_handler(request: Request, exc: RankingError):
        status = _status_for(exc)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse(
            status_code=status,
            content={"success": False, "error": {"code": exc.code, "message": exc.message}},
        )

    def _owned_session(session_id: str, user_id: str) -> ComparisonSession:
        session = engine.get_session(session_id)
        if session is None:
            raise NotFoundError("Session not found or expired", code="SESSION_NOT_FOUND")
        if session.user_id != user_id:
            raise UnauthorizedError("Unauthorized access to session")
        return session

    def _session_response(session: ComparisonSession) -> dict:
        """Auto-commit a resolved session, otherwise describe the next pair."""
        if session.completed:
            entry = engine.complete_ranking(session.id)
            if session.completed_comparisons == 0:
                message = (
                    f'This is your first "{entry.category}" movie, '
                    f"so it's automatically ranked #1!"
                )
            else:
                message = f'Movie ranked at position #{entry.position} in "{entry.category}" category'
            return {
                "status": "completed",
                "message": message,
                "ranking": _ranking_payload(entry),
            }

        new_movie, existing_movie = engine.get_comparison_movies(session)
        return {
            "status": "in_progress",
            "session_id": session.id,
            "comparison": {
                "movie1": _movie_card(new_movie),
                "movie2": _movie_card(existing_movie),
            },
            "estimated_remaining_comparisons": engine.estimate_remaining_comparisons(session),
            "completed_comparisons": session.completed_comparisons,
        }

    @router.post("/start")
    def start_ranking(body: StartRankingRequest, user_id: str = Header(..., alias="X-User-Id")):
        session = engine.start_comparison_session(user_id, body.tmdb_id, body.category)
        return _session_response(session)

    @router.post("/compare")
    def compare(body: CompareRequest, user_id: str = Header(..., alias="X-User-Id")):
        _owned_session(body.session_id, user_id)
        session = engine.submit_comparison(body.session_id, body.preference)
        return _session_response(session)

    @router.get("/sessions/{session_id}")
    def get_session(session_id: str, user_id: str = Header(..., alias="X-User-Id")):
        session = _owned_session(session_id, user_id)
        return {
            "session_id": session.id,
            "category": session.category,
            "completed": session.completed,
            "final_position": session.final_position,
            "estimated_remaining_comparisons": engine.estimate_remaining_comparisons(session),
            "completed_comparisons": session.completed_comparisons,
        }

    @router.post("/cancel/{session_id}")
    def cancel(session_id: str, user_id: str = Header(..., alias="X-User-Id")):
        _owned_session(session_id, user_id)
        engine.cancel_session(session_id)
        return {"message": "Ranking session cancelled"}

    def _user_rankings(target_user_id: str, requesting_user_id: str) -> dict:
        is_own = target_user_id == requesting_user_id
        grouped = ranking_service.get_user_rankings(target_user_id, public_only=not is_own)
        return {
            "user_id": target_user_id,
            "is_own_rankings": is_own,
            "rankings": {
                category: [_ranking_payload(e, catalog.get_movie(e.movie_id)) for e in entries]
                for category, entries in grouped.items()
            },
            "stats": {
                "total": sum(len(e) for e in grouped.values()),
                **{category: len(entries) for category, entries in grouped.items()},
            },
        }

    @router.get("/user")
    def my_rankings(user_id: str = Header(..., alias="X-User-Id")):
        return _user_rankings(user_id, user_id)

    @router.get("/user/{target_user_id}")
    def user_rankings(target_user_id: str, user_id: str = Header(..., alias="X-User-Id")):
        return _user_rankings(target_user_id, user_id)

    @router.get("/category/{category}")
    def category_rankings(category: str, user_id: str = Header(..., alias="X-User-Id")):
        listing = ranking_service.get_category_rankings(user_id, category)
        return {
            "category": listing.category,
            "rankings": [
                _ranking_payload(e, catalog.get_movie(e.movie_id)) for e in listing.entries
            ],
            "count": len(listing.entries),
            "rating_range": {
                "top": listing.range.top,
                "bottom": listing.range.bottom,
                "description": listing.range.description,
            },
        }

    @router.put("/{ranking_id}")
    def update_ranking(
        ranking_id: str,
        body: UpdateRankingRequest,
        user_id: str = Header(..., alias="X-User-Id"),
    ):
        changes = body.model_dump(exclude_unset=True)
        category = changes.pop("category", None)
        # null means "leave as is" for columns that cannot be NULL
        for key in _NON_NULLABLE_FIELDS:
            if key in changes and changes[key] is None:
                del changes[key]
        if "tags" in changes:
            changes["tags"] = ",".join(changes["tags"] or [])
        entry = ranking_service.update_ranking(user_id, ranking_id, category=category, **changes)
        return {"message": "Ranking updated successfully", "ranking": _ranking_payload(entry)}

    @router.delete("/{ranking_id}")
    def delete_ranking(ranking_id: str, user_id: str = Header(..., alias="X-User-Id")):
        ranking_service.delete_ranking(user_id, ranking_id)
        return {"message": "Ranking deleted successfully"}

    app.include_router(router, prefix="/api/rankings", tags=["rankings"])

    @app.on_event("startup")
    async def start_session_sweeper():
        interval = services.settings.session_sweep_interval_s
        app.state.sweeper = asyncio.create_task(_sweep_sessions(services, interval))

    @app.on_event("shutdown")
    async def stop_session_sweeper():
        sweeper = getattr(app.state, "sweeper", None)
        if sweeper is not None:
            sweeper.cancel()

    return app


async def _sweep_sessions(services: Services, interval_s: int) -> None:
    """Periodic advisory cleanup of idle ranking sessions."""
    max_age_minutes = services.settings.session_ttl_minutes
    while True:
        await asyncio.sleep(interval_s)
        try:
            await asyncio.to_thread(services.engine.cleanup_expired_sessions, max_age_minutes)
        except Exception:
            logger.exception("Session sweep failed")
