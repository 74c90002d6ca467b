# Database Module - SQLAlchemy Core (Procedural, No ORM Classes)
from typing import Dict, List, Optional
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, BigInteger, String, DateTime, UniqueConstraint, select, update, insert
from sqlalchemy.sql import func
from posture_coach import config
from posture_coach import logger

# Create engine - Convert postgresql:// to postgresql+psycopg:// for psycopg3
database_url = config.DATABASE_URL
if database_url.startswith("postgresql://"):
    database_url = database_url.replace("postgresql://", "postgresql+psycopg://", 1)

connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
engine = create_engine(database_url, echo=False, pool_pre_ping=True, connect_args=connect_args)
metadata = MetaData()

# Table Definitions

# Daily Posture Stats (one row per subject per local calendar date)
posture_stats_table = Table(
    'posture_stats',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(64), nullable=False, index=True),
    Column('date', String(10), nullable=False),  # YYYY-MM-DD
    Column('total_ms', BigInteger, default=0),
    Column('good_ms', BigInteger, default=0),
    Column('bad_ms', BigInteger, default=0),
    Column('longest_streak_ms', BigInteger, default=0),  # Merged with max(), never overwritten
    Column('alert_count', Integer, default=0),
    Column('updated_at', DateTime, server_default=func.now(), onupdate=func.now()),
    UniqueConstraint('user_id', 'date', name='uq_posture_stats_user_date')  # For efficient upserts
)


# Database Initialization Functions

def init_database():
    """Create all tables if they don't exist"""
    try:
        metadata.create_all(engine)
        logger.log_db("Tables Ready", {"tables": ", ".join(metadata.tables.keys())})
        return True
    except Exception as e:
        logger.log_error("Database Initialization Failed", e)
        return False


def test_connection():
    """Test database connectivity"""
    try:
        with engine.connect() as conn:
            conn.execute(select(1))
        return True
    except Exception as e:
        logger.log_error("Database Connection Failed", e)
        return False


def get_connection():
    """Get a database connection"""
    return engine.connect()


def _row_to_dict(row) -> Dict:
    data = dict(row._mapping)
    return {
        "subject_id": data["user_id"],
        "date_key": data["date"],
        "total_ms": data["total_ms"] or 0,
        "good_ms": data["good_ms"] or 0,
        "bad_ms": data["bad_ms"] or 0,
        "longest_streak_ms": data["longest_streak_ms"] or 0,
        "alert_count": data["alert_count"] or 0,
        "updated_at": data["updated_at"].isoformat() if data.get("updated_at") else None
    }


# Stats Operations

def _dialect_upsert(conn, values: Dict, dialect: str):
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
        greatest = func.greatest
    else:
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
        greatest = func.max  # two-argument max() is scalar in SQLite

    stmt = dialect_insert(posture_stats_table).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=['user_id', 'date'],
        set_={
            'total_ms': stmt.excluded.total_ms,
            'good_ms': stmt.excluded.good_ms,
            'bad_ms': stmt.excluded.bad_ms,
            'longest_streak_ms': greatest(posture_stats_table.c.longest_streak_ms, stmt.excluded.longest_streak_ms),
            'alert_count': stmt.excluded.alert_count,
            'updated_at': func.now()
        }
    )
    conn.execute(stmt)


def _generic_upsert(conn, values: Dict):
    query = select(posture_stats_table.c.longest_streak_ms).where(
        (posture_stats_table.c.user_id == values['user_id']) &
        (posture_stats_table.c.date == values['date'])
    )
    existing = conn.execute(query).first()

    if existing is None:
        conn.execute(insert(posture_stats_table).values(**values))
        return

    merged = dict(values)
    merged['longest_streak_ms'] = max(existing[0] or 0, values['longest_streak_ms'])
    conn.execute(update(posture_stats_table).where(
        (posture_stats_table.c.user_id == values['user_id']) &
        (posture_stats_table.c.date == values['date'])
    ).values(**merged))


def upsert_daily_stats(subject_id: str, date_key: str, total_ms: float, good_ms: float,
                       bad_ms: float, longest_streak_ms: float, alert_count: int) -> bool:
    """
    Insert or update one subject's stats for a date

    Latest snapshot overwrites every field except longest_streak_ms,
    which keeps the larger of stored and incoming values.

    Returns:
        True if successful, False otherwise
    """
    values = {
        'user_id': str(subject_id),
        'date': date_key,
        'total_ms': int(total_ms),
        'good_ms': int(good_ms),
        'bad_ms': int(bad_ms),
        'longest_streak_ms': int(longest_streak_ms),
        'alert_count': int(alert_count)
    }

    conn = None
    try:
        conn = get_connection()
        dialect = engine.dialect.name
        if dialect in ("postgresql", "sqlite"):
            _dialect_upsert(conn, values, dialect)
        else:
            _generic_upsert(conn, values)
        conn.commit()

        logger.log_db("Stats Upserted", {
            "subject_id": subject_id,
            "date_key": date_key,
            "total_ms": values['total_ms'],
            "alert_count": values['alert_count']
        })
        return True

    except Exception as e:
        if conn:
            conn.rollback()
        logger.log_error("Stats Upsert Failed", e, {
            "subject_id": subject_id,
            "date_key": date_key
        })
        return False
    finally:
        if conn:
            conn.close()


def fetch_daily_stats(subject_id: str, date_key: str) -> Optional[Dict]:
    """
    Get one subject's stats for a date

    Returns:
        Stats dict or None if not found (or on error)
    """
    conn = None
    try:
        conn = get_connection()
        query = select(posture_stats_table).where(
            (posture_stats_table.c.user_id == str(subject_id)) &
            (posture_stats_table.c.date == date_key)
        )
        row = conn.execute(query).first()
        return _row_to_dict(row) if row else None

    except Exception as e:
        logger.log_error("Stats Fetch Failed", e, {"subject_id": subject_id, "date_key": date_key})
        return None
    finally:
        if conn:
            conn.close()


def list_daily_stats(subject_id: str, limit: int = 30) -> List[Dict]:
    """Stats history for a subject, newest date first"""
    conn = None
    try:
        conn = get_connection()
        query = select(posture_stats_table).where(
            posture_stats_table.c.user_id == str(subject_id)
        ).order_by(posture_stats_table.c.date.desc()).limit(limit)
        return [_row_to_dict(row) for row in conn.execute(query).fetchall()]

    except Exception as e:
        logger.log_error("Stats History Fetch Failed", e, {"subject_id": subject_id})
        return []
    finally:
        if conn:
            conn.close()
