from flask import Flask, current_app
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from kniffel.config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)


def sheet_services():
    """The services bundle attached to the running app."""
    return current_app.extensions['kniffel']


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from kniffel.services.sheets.dispatch import WriteDispatcher
    from kniffel.services.sheets.feed import SnapshotHub
    from kniffel.services.sheets.lifecycle import SheetManager
    from kniffel.services.sheets.penalties import PenaltyLedger, PenaltyTrigger
    from kniffel.services.sheets.store import MemberRoster, SqlSheetStore

    def _report_write_failure(pending, error):
        sheet_id = getattr(error, 'sheet_id', None)
        if not sheet_id:
            # billing failures go back to the caller as a warning only
            flask_app.logger.warning(f"[write-failed] {pending.description} error={error}")
            return
        socketio.emit(
            'write_failed',
            {'sheet_id': sheet_id, 'write': pending.description, 'error': str(error)},
            to=f"sheet:{sheet_id}",
            namespace='/ws',
        )

    def _broadcast_snapshot(snapshot):
        socketio.emit(
            'sheet_snapshot',
            {'sheet_id': snapshot.sheet_id, 'sheet': snapshot.document, 'deleted': snapshot.deleted},
            to=f"sheet:{snapshot.sheet_id}",
            namespace='/ws',
        )

    hub = SnapshotHub()
    dispatcher = WriteDispatcher.for_app(flask_app, on_error=_report_write_failure)
    manager = SheetManager(
        SqlSheetStore(hub),
        dispatcher=dispatcher,
        min_players=int(flask_app.config.get('MIN_PLAYERS', 2)),
        create_deadline=flask_app.config.get('SHEET_CREATE_DEADLINE_SEC'),
        cache_size=int(flask_app.config.get('SHEET_CACHE_SIZE', 256)),
    )
    # Committed writes from this process reconcile the local copies, then go out to clients
    hub.add_listener(manager.apply_snapshot)
    hub.add_listener(_broadcast_snapshot)
    flask_app.extensions['kniffel'] = {
        'hub': hub,
        'sheets': manager,
        'roster': MemberRoster(),
        'penalties': PenaltyTrigger(
            PenaltyLedger(),
            dispatcher=dispatcher,
            amount=int(flask_app.config.get('PENALTY_AMOUNT', 1)),
        ),
    }

    # Import and register blueprints here
    from kniffel.api.members import members
    flask_app.register_blueprint(members, url_prefix='/api/members')

    from kniffel.api.sheets import sheets
    flask_app.register_blueprint(sheets, url_prefix='/api/sheets')

    from kniffel.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    @click.argument('names', nargs=-1)
    def db_reset_command(names):
        """Drops, recreates, and seeds the member roster."""
        from kniffel.models import ClubMember
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            for idx, name in enumerate(names or ('Anna', 'Ben', 'Carla', 'Dieter'), start=1):
                db.session.add(ClubMember(id=f"m{idx}", name=name))

            db.session.commit()
            click.echo('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
