"""Database configuration and initialization."""
from sqlalchemy import create_engine, event, text, BigInteger, Integer
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

# Create SQLAlchemy base
Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer(), 'sqlite')

# Global session and engine
engine = None
db_session = scoped_session(sessionmaker(autocommit=False, autoflush=False))


def _configure_sqlite(engine):
    """
    Make SQLite behave like the production database for our purposes:
    enforce foreign keys and take the write lock when a transaction begins,
    so concurrent writers serialize the way SELECT ... FOR UPDATE does on Postgres.
    """
    @event.listens_for(engine, 'connect')
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

    @event.listens_for(engine, 'begin')
    def _on_begin(conn):
        conn.exec_driver_sql('BEGIN IMMEDIATE')


def init_db(app):
    """Initialize database connection."""
    global engine

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    if database_uri.startswith('sqlite'):
        engine = create_engine(
            database_uri,
            echo=app.config.get('SQLALCHEMY_ECHO', False),
            connect_args={'check_same_thread': False, 'timeout': 30},
        )
        _configure_sqlite(engine)
    else:
        engine = create_engine(
            database_uri,
            echo=app.config.get('SQLALCHEMY_ECHO', False),
            pool_pre_ping=True,  # Enable connection health checks
            pool_size=10,
            max_overflow=20
        )

    db_session.remove()
    db_session.configure(bind=engine)

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_all():
    """Create all tables (used by `flask init-db` and the test suite)."""
    import livestage.models  # noqa: F401  register mappers
    Base.metadata.create_all(bind=engine)


def drop_all():
    """Drop all tables."""
    import livestage.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)


def ping():
    """Return True when the database answers a trivial query."""
    row = db_session.execute(text('SELECT 1')).fetchone()
    return bool(row and row[0] == 1)


def get_session():
    """Get database session."""
    return db_session


# Alias for easier imports
db = db_session
