#!/usr/bin/env python3
"""
PL Predictor Management CLI

Command-line access to match sync, score processing and database setup.
"""

import logging
import secrets

import click
from flask.cli import with_appcontext
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app import create_app, db, get_run_stats
from app.models import Match, Prediction, User
from app.utils.football_api import FootballDataClient, FootballDataError
from app.utils.match_sync import MatchSync
from app.utils.score_processor import (
    ScoreProcessor,
    get_processing_stats,
    has_unprocessed_matches,
)


def _print_errors(errors):
    for error in errors:
        click.echo(f"   ⚠️  {error}")


@click.group()
def cli():
    """PL Predictor Management CLI"""
    pass


# Data Sync Commands
@cli.group()
def sync():
    """Match data synchronization commands"""
    pass


@sync.command()
@click.option(
    "--date-from",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="Window start (YYYY-MM-DD)",
)
@click.option(
    "--date-to",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="Window end (YYYY-MM-DD)",
)
@with_appcontext
def matches(date_from, date_to):
    """Sync match data from football-data.org"""
    if bool(date_from) != bool(date_to):
        raise click.UsageError("--date-from and --date-to must be given together")

    date_from = date_from.date() if date_from else None
    date_to = date_to.date() if date_to else None
    if date_from and date_from > date_to:
        raise click.UsageError("--date-from must not be after --date-to")

    click.echo("Syncing match data...")
    result = MatchSync(run_stats=get_run_stats()).sync_match_data(
        date_from=date_from, date_to=date_to
    )

    if result.failed:
        click.echo("❌ Match sync failed")
        _print_errors(result.errors)
        raise SystemExit(1)

    click.echo(
        f"✅ Synced {result.total_matches} matches: "
        f"{result.new_matches} new, {result.updated_matches} updated"
    )
    _print_errors(result.errors)


@sync.command()
@with_appcontext
def test_connection():
    """Check the football-data.org API key and connectivity"""
    client = FootballDataClient.from_app_config()
    try:
        competition = client.get_competition()
    except FootballDataError as e:
        click.echo(f"❌ API connection failed: {e}")
        raise SystemExit(1)

    season = competition.get("currentSeason") or {}
    click.echo(f"✅ Connected: {competition.get('name', 'Unknown competition')}")
    if season:
        click.echo(
            f"   Current season: {season.get('startDate')} to {season.get('endDate')} "
            f"(matchday {season.get('currentMatchday')})"
        )


# Score Processing Commands
@cli.group()
def scores():
    """Score processing commands"""
    pass


@scores.command()
@with_appcontext
def process():
    """Award points for all finished matches"""
    click.echo("Processing scores for finished matches...")
    result = ScoreProcessor(run_stats=get_run_stats()).process_all_finished_matches()

    if result.failed:
        click.echo("❌ Score processing failed")
        _print_errors(result.errors)
        raise SystemExit(1)

    click.echo(
        f"✅ Processed {result.processed_matches} matches: "
        f"{result.total_predictions_processed} predictions, "
        f"{result.total_points_awarded} points awarded"
    )
    _print_errors(result.errors)


@scores.command()
@with_appcontext
def stats():
    """Show score processing statistics"""
    processing = get_processing_stats()

    click.echo("📊 Score Processing")
    click.echo(
        f"   Matches: {processing['finished_matches']}/{processing['total_matches']} finished"
    )
    click.echo(f"   Processed predictions: {processing['processed_predictions']}")
    click.echo(f"   Unprocessed predictions: {processing['unprocessed_predictions']}")
    click.echo(f"   Points awarded: {processing['total_points_awarded']}")
    if has_unprocessed_matches():
        click.echo("   ⏳ Finished matches are waiting to be processed")


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command()
@with_appcontext
def init_db():
    """Initialize database tables"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")
        logging.error(f"Database initialization failed: {e}")
        raise SystemExit(1)


@db_cmd.command()
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt")
@with_appcontext
def reset(yes):
    """⚠️  DANGER: Drop and recreate all tables"""
    if not yes and not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    try:
        db.drop_all()
        db.create_all()
        click.echo("✅ Database reset successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error resetting database: {str(e)}")
        logging.error(f"Database reset failed: {e}")
        raise SystemExit(1)


# Info Commands
@cli.command()
def generate_secrets():
    """Print fresh SECRET_KEY and CRON_SECRET values for .env"""
    click.echo(f"SECRET_KEY={secrets.token_urlsafe(32)}")
    click.echo(f"CRON_SECRET={secrets.token_urlsafe(32)}")
    click.echo("# Keep these out of version control")


@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("⚽ PL Predictor Application Status")
    click.echo("=" * 40)

    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    sync_status = Match.get_sync_status()
    breakdown = sync_status["status_breakdown"]
    click.echo(f"⚽ Matches: {sync_status['total_matches']}")
    for match_status, count in sorted(breakdown.items()):
        click.echo(f"   {match_status}: {count}")
    if sync_status["last_updated"]:
        click.echo(f"   Last updated: {sync_status['last_updated']}")

    click.echo(f"👥 Users: {User.query.count()}")
    click.echo(f"📝 Predictions: {Prediction.query.count()}")
    click.echo(f"⏳ Unprocessed predictions: {Prediction.count_unprocessed()}")


if __name__ == "__main__":
    app = create_app()
    with app.app_context():
        cli()
