"""CLI entry point for Movie Club Ranker."""
import argparse
import sys

from movieclub.app.config import get_settings
from movieclub.app.logging import setup_logging
from movieclub.app.paths import ensure_dirs
from movieclub.app.services import build_services
from movieclub.ranking.categories import CATEGORIES


def cmd_serve(args):
    """Start the web server."""
    import uvicorn
    from movieclub.web.server import create_app

    settings = get_settings()
    port = args.port or settings.web_port
    host = settings.web_host

    app = create_app(build_services(settings))
    print(f"Starting server at http://{host}:{port}")
    uvicorn.run(app, host=host, port=port)


def cmd_init_db(args):
    """Create the database schema."""
    services = build_services()
    print(f"Database ready at {services.db.db_path}")


def cmd_list(args):
    """Print a user's rankings, best first."""
    services = build_services()
    grouped = services.ranking_service.get_user_rankings(args.user)
    categories = [args.category] if args.category else CATEGORIES

    for category in categories:
        entries = grouped[category]
        print(f"{category} ({len(entries)})")
        for entry in entries:
            movie = services.catalog.get_movie(entry.movie_id)
            title = movie.title if movie else f"tmdb:{entry.tmdb_id}"
            print(f"  #{entry.position:<3} {entry.rating:5.2f}  {title}")
        print()


def cmd_recalc(args):
    """Recompute ratings for every category of a user."""
    services = build_services()
    written = services.ranking_service.recalculate_all(args.user)
    for category, count in written.items():
        print(f"  {category}: {count} ratings")


def cmd_sweep(args):
    """Purge idle ranking sessions."""
    services = build_services()
    max_age = args.max_age or services.settings.session_ttl_minutes
    purged = services.engine.cleanup_expired_sessions(max_age)
    print(f"Purged {purged} sessions older than {max_age} minutes.")


def main(argv=None):
    setup_logging()
    ensure_dirs()

    parser = argparse.ArgumentParser(
        prog="movieclub",
        description="Movie Club Ranker: rank movies by pairwise comparison",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # serve
    p_serve = subparsers.add_parser("serve", help="Start web server")
    p_serve.add_argument("--port", type=int, default=None)
    p_serve.set_defaults(func=cmd_serve)

    # init-db
    p_init = subparsers.add_parser("init-db", help="Create the database schema")
    p_init.set_defaults(func=cmd_init_db)

    # list
    p_list = subparsers.add_parser("list", help="List a user's rankings")
    p_list.add_argument("--user", required=True)
    p_list.add_argument("--category", default=None, choices=list(CATEGORIES))
    p_list.set_defaults(func=cmd_list)

    # recalc
    p_recalc = subparsers.add_parser("recalc", help="Recompute a user's ratings")
    p_recalc.add_argument("--user", required=True)
    p_recalc.set_defaults(func=cmd_recalc)

    # sweep
    p_sweep = subparsers.add_parser("sweep", help="Purge expired ranking sessions")
    p_sweep.add_argument("--max-age", type=int, default=None, help="Idle minutes before purge")
    p_sweep.set_defaults(func=cmd_sweep)

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    sys.exit(main())
