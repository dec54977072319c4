"""
Database models for the rathole panel.

Uses Peewee ORM with SQLite. Keeps a history of installed rathole releases
and of every rathole run started through the panel.
"""

from datetime import datetime

from peewee import (
    AutoField,
    CharField,
    DatabaseProxy,
    DateTimeField,
    IntegerField,
    Model,
    SqliteDatabase,
    TextField,
)

from .config import config

database = DatabaseProxy()


def initialize_db(path=None):
    """Initialize database connection and create tables."""
    db_path = str(path or config.db_path)
    db = SqliteDatabase(
        db_path,
        pragmas={
            "journal_mode": "wal",
            "cache_size": -16 * 1000,
            "busy_timeout": 5000,
        },
        check_same_thread=False,
    )
    database.initialize(db)
    database.create_tables([Installation, Run], safe=True)
    return db


class BaseModel(Model):
    """Base model with common configuration."""

    class Meta:
        database = database


class Installation(BaseModel):
    """A rathole release installed into the data directory."""

    id = AutoField()
    version = CharField()
    target = CharField()
    path = TextField()
    installed_at = DateTimeField(default=datetime.now, index=True)

    class Meta:
        table_name = "installations"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "version": self.version,
            "target": self.target,
            "path": self.path,
            "installed_at": self.installed_at.isoformat() if self.installed_at else None,
        }


class Run(BaseModel):
    """One rathole process started by the panel."""

    id = AutoField()
    pid = IntegerField()
    role = CharField()  # server, client
    config_path = TextField()
    started_at = DateTimeField(default=datetime.now, index=True)
    stopped_at = DateTimeField(null=True)
    stop_reason = CharField(null=True)  # stopped, exited, shutdown

    class Meta:
        table_name = "runs"

    @classmethod
    def latest_open(cls):
        """The most recent run that has no stop time yet."""
        return (
            cls.select()
            .where(cls.stopped_at.is_null())
            .order_by(cls.started_at.desc())
            .first()
        )

    def close(self, reason: str):
        self.stopped_at = datetime.now()
        self.stop_reason = reason
        self.save()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pid": self.pid,
            "role": self.role,
            "config_path": self.config_path,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "stopped_at": self.stopped_at.isoformat() if self.stopped_at else None,
            "stop_reason": self.stop_reason,
        }
