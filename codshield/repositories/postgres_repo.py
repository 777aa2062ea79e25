"""Risk configuration repository using SQLAlchemy Core."""

import json
from typing import Any, Dict, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool

from codshield.utils.clock import utc_now

SCHEMA = """
CREATE TABLE IF NOT EXISTS store_risk_config (
    store_id VARCHAR(255) PRIMARY KEY,
    config_json TEXT NOT NULL,
    updated_at VARCHAR(64) NOT NULL
)
"""


def build_engine(db_url: str) -> Engine:
    """SQLAlchemy engine sized for Lambda reuse."""
    if db_url.startswith("sqlite"):
        return create_engine(db_url)
    return create_engine(
        db_url,
        poolclass=QueuePool,
        pool_size=1,
        max_overflow=2,
        pool_pre_ping=True,
        pool_recycle=300,
    )


class RiskConfigRepository:
    """Per-store configuration documents, stored as validated JSON."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def ensure_schema(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(text(SCHEMA))

    def fetch(self, store_id: str) -> Optional[Dict[str, Any]]:
        """Raw configuration document for a store, or None."""
        stmt = text("SELECT config_json FROM store_risk_config WHERE store_id = :store_id")
        with self.engine.connect() as conn:
            row = conn.execute(stmt, {"store_id": store_id}).fetchone()
        return json.loads(row._mapping["config_json"]) if row else None

    def upsert(self, store_id: str, document: Dict[str, Any]) -> None:
        params = {
            "store_id": store_id,
            "config_json": json.dumps(document, sort_keys=True),
            "updated_at": utc_now().isoformat(),
        }
        with self.engine.begin() as conn:
            result = conn.execute(
                text(
                    """
                    UPDATE store_risk_config
                    SET config_json = :config_json, updated_at = :updated_at
                    WHERE store_id = :store_id
                    """
                ),
                params,
            )
            if result.rowcount == 0:
                conn.execute(
                    text(
                        """
                        INSERT INTO store_risk_config (store_id, config_json, updated_at)
                        VALUES (:store_id, :config_json, :updated_at)
                        """
                    ),
                    params,
                )

    def delete(self, store_id: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                text("DELETE FROM store_risk_config WHERE store_id = :store_id"),
                {"store_id": store_id},
            )
        return result.rowcount > 0
