"""Command-line interface for swisscut."""

import logging

import click

from swisscut import __version__


def _open_engine(ctx):
    """Build a TournamentEngine from the group options."""
    from swisscut.config_loader import ConfigError, load_settings
    from swisscut.engine import TournamentEngine
    from swisscut.storage import DatabaseManager

    settings = None
    if ctx.obj["config"]:
        try:
            settings = load_settings(ctx.obj["config"])
        except ConfigError as e:
            click.echo(f"[ERROR] Configuration Error: {e}", err=True)
            raise click.Abort()

    db = DatabaseManager(ctx.obj["db"])
    db.create_tables()
    return TournamentEngine.from_session(db.get_session(), settings=settings)


def _fail(error):
    click.echo(f"[ERROR] {error}", err=True)
    raise click.Abort()


@click.group()
@click.version_option(version=__version__)
@click.option("--db", default=None, help="Path to SQLite database (default: .swisscut/swisscut.sqlite)")
@click.option("--config", default=None, help="Path to config YAML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, db: str, config: str, verbose: bool):
    """swisscut - Swiss pairings, top-cut brackets and standings for tournaments."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["db"] = db
    ctx.obj["config"] = config


@cli.command()
@click.pass_context
def init_db(ctx):
    """Create the database tables.

    Example:
        swisscut init-db
    """
    from swisscut.storage import DatabaseManager

    db = DatabaseManager(ctx.obj["db"])
    db.create_tables()
    click.echo(f"[SUCCESS] Database ready at {db.db_path}")


@cli.command()
@click.option("--event", "event_id", required=True, help="Event ID")
@click.option("--id", "participant_id", required=True, help="Participant ID")
@click.option("--name", required=True, help="Display name")
@click.option(
    "--kind",
    type=click.Choice(["registered", "email", "guest"]),
    default="registered",
    help="How the participant joined",
)
@click.pass_context
def add_participant(ctx, event_id: str, participant_id: str, name: str, kind: str):
    """Add a participant to an event roster.

    Example:
        swisscut add-participant --event spring-open --id p1 --name "Ana Ruiz"
    """
    from swisscut.errors import EngineError
    from swisscut.models import Participant, ParticipantKind

    engine = _open_engine(ctx)
    try:
        participant = engine.participants.add(
            event_id, Participant(id=participant_id, name=name, kind=ParticipantKind(kind))
        )
    except EngineError as e:
        _fail(e)
    click.echo(f"[SUCCESS] Added {participant} to {event_id}")


@cli.command()
@click.option("--event", "event_id", required=True, help="Event ID")
@click.option("--name", required=True, help="Phase name")
@click.option("--kind", type=click.Choice(["swiss", "bracket"]), required=True)
@click.option("--format", "match_format", type=click.Choice(["BO1", "BO2", "BO3", "BO5"]), default="BO3")
@click.option("--rounds", type=int, default=None, help="Number of rounds (Swiss)")
@click.option("--top-cut", type=int, default=None, help="Participants admitted (bracket)")
@click.option("--require-confirmation/--no-require-confirmation", default=None)
@click.pass_context
def add_phase(ctx, event_id, name, kind, match_format, rounds, top_cut, require_confirmation):
    """Append a phase to an event.

    Example:
        swisscut add-phase --event spring-open --name Swiss --kind swiss --rounds 5
        swisscut add-phase --event spring-open --name "Top 8" --kind bracket --top-cut 8
    """
    from swisscut.errors import EngineError
    from swisscut.models import BracketConfig, SwissConfig

    if kind == "swiss":
        if rounds is None:
            _fail("--rounds is required for a Swiss phase")
        config = SwissConfig(round_count=rounds)
    else:
        if top_cut is None:
            _fail("--top-cut is required for a bracket phase")
        config = BracketConfig(top_cut=top_cut)

    engine = _open_engine(ctx)
    try:
        phase = engine.add_phase(event_id, name, match_format, config, require_confirmation)
    except EngineError as e:
        _fail(e)
    click.echo(f"[SUCCESS] {phase}")
    click.echo(f"[INFO] Phase ID: {phase.id}")


@cli.command()
@click.option("--event", "event_id", required=True, help="Event ID")
@click.pass_context
def phases(ctx, event_id: str):
    """List the phases of an event."""
    engine = _open_engine(ctx)
    current = engine.get_current_phase(event_id)
    event_phases = engine.list_phases(event_id)
    if not event_phases:
        click.echo(f"[INFO] No phases for event {event_id}")
        return
    for phase in event_phases:
        marker = "*" if current and current.id == phase.id else " "
        click.echo(f"{marker} {phase}  id={phase.id}")


@cli.command()
@click.option("--phase", "phase_id", required=True, help="Phase ID")
@click.option("--status", type=click.Choice(["in_progress", "completed"]), required=True)
@click.pass_context
def set_status(ctx, phase_id: str, status: str):
    """Move a phase to its next status."""
    from swisscut.errors import EngineError

    engine = _open_engine(ctx)
    try:
        phase = engine.update_phase_status(phase_id, status)
    except EngineError as e:
        _fail(e)
    click.echo(f"[SUCCESS] {phase}")


@cli.command()
@click.option("--phase", "phase_id", required=True, help="Phase ID")
@click.pass_context
def set_current(ctx, phase_id: str):
    """Mark a phase as the current phase of its event."""
    from swisscut.errors import EngineError

    engine = _open_engine(ctx)
    try:
        phase = engine.set_current_phase(phase_id)
    except EngineError as e:
        _fail(e)
    click.echo(f"[SUCCESS] Current phase of {phase.event_id}: {phase.name}")


@cli.command()
@click.option("--phase", "phase_id", required=True, help="Phase ID")
@click.option("--allow-rematches", is_flag=True, help="Accept rematches when unavoidable (Swiss)")
@click.pass_context
def generate_round(ctx, phase_id: str, allow_rematches: bool):
    """Generate the next round of a phase.

    Swiss phases get new pairings; bracket phases are seeded on the first
    call and advanced afterwards.

    Example:
        swisscut generate-round --phase 3f2a...
    """
    from swisscut.errors import EngineError

    engine = _open_engine(ctx)
    try:
        phase = engine.get_phase(phase_id)
        if phase.is_swiss:
            result = engine.generate_swiss_round(phase_id, allow_rematches=allow_rematches)
        elif not engine.get_matches(phase_id):
            result = engine.generate_bracket_round1(phase_id)
        else:
            result = engine.generate_next_bracket_round(phase_id)
    except EngineError as e:
        _fail(e)

    if not result.created:
        click.echo(f"[INFO] Round {result.round} already exists")
    else:
        click.echo(f"[SUCCESS] Round {result.round}: {len(result.matches)} match(es)")
    for warning in result.warnings:
        click.echo(f"[WARNING] {warning}")
    for match in result.matches:
        label = f"{match.bracket_slot}: " if match.bracket_slot else ""
        click.echo(f"  {label}{match.player1_id} vs {match.player2_id or 'BYE'}  id={match.match_id}")


@cli.command()
@click.option("--match", "match_id", required=True, help="Match ID")
@click.option("--p1", "player1_score", type=int, required=True, help="Games won by player 1")
@click.option("--p2", "player2_score", type=int, required=True, help="Games won by player 2")
@click.option("--reporter", required=True, help="Participant ID of the reporter")
@click.pass_context
def report(ctx, match_id: str, player1_score: int, player2_score: int, reporter: str):
    """Report a match result as one of its players."""
    from swisscut.errors import EngineError

    engine = _open_engine(ctx)
    try:
        match = engine.report_result(match_id, player1_score, player2_score, reporter)
    except EngineError as e:
        _fail(e)
    click.echo(f"[SUCCESS] {match} [{match.status.value}]")


@cli.command()
@click.option("--match", "match_id", required=True, help="Match ID")
@click.option("--by", "confirmer", required=True, help="Participant ID of the confirming opponent")
@click.pass_context
def confirm(ctx, match_id: str, confirmer: str):
    """Confirm a result reported by the opponent."""
    from swisscut.errors import EngineError

    engine = _open_engine(ctx)
    try:
        match = engine.confirm_result(match_id, confirmer)
    except EngineError as e:
        _fail(e)
    click.echo(f"[SUCCESS] {match} [{match.status.value}]")


@cli.command()
@click.option("--phase", "phase_id", required=True, help="Phase ID")
@click.pass_context
def standings(ctx, phase_id: str):
    """Show the standings of a phase."""
    from swisscut.errors import EngineError

    engine = _open_engine(ctx)
    try:
        table = engine.get_standings(phase_id)
    except EngineError as e:
        _fail(e)

    click.echo(f"{'#':>3}  {'Participant':<20} {'Pts':>4} {'W-L-D':>8} {'OMW%':>7} {'GD':>4}")
    for s in table:
        record = f"{s.wins}-{s.losses}-{s.draws}"
        click.echo(
            f"{s.rank:>3}  {s.player_id:<20} {s.match_points:>4} {record:>8} "
            f"{s.opponent_match_win_percentage:>7.2%} {s.games_diff:>4}"
        )


@cli.command()
@click.option("--phase", "phase_id", required=True, help="Phase ID")
@click.option("--round", "round_number", type=int, required=True, help="Round to delete (must be the latest)")
@click.pass_context
def delete_round(ctx, phase_id: str, round_number: int):
    """Delete the latest round of a phase."""
    from swisscut.errors import EngineError

    engine = _open_engine(ctx)
    try:
        count = engine.delete_round(phase_id, round_number)
    except EngineError as e:
        _fail(e)
    click.echo(f"[SUCCESS] Deleted {count} match(es) from round {round_number}")


if __name__ == "__main__":
    cli()
