from __future__ import annotations

from ..extensions import db


class StoredCollection(db.Model):
    """
    One namespaced record collection, stored as a JSON document.

    The record store overwrites the whole payload on every save; there are
    no per-record rows. version_id guards concurrent writers: a save based
    on a stale read raises StaleDataError and is retried by the caller.
    """
    __tablename__ = "ledger_collections"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True, index=True)
    payload = db.Column(db.Text, nullable=False, default="[]")

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StoredCollection name={self.name!r} version={self.version_id}>"
