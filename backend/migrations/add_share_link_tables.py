"""
Migration: Add share link tables.

Creates the tables behind public share links:
1. share_access_tokens - issued links (secret, scope, expiry)
2. versioned_records - append-only fact history written through links

Enum types mirror the SQLAlchemy SQLEnum columns, which store member names.
Versioned records carry two unique indexes: one per (key, version) and a
partial one allowing a single current row per (sub_resource_id, fact_kind).

Assumes operators, projects and employers already exist (init_db creates them).
"""
from sqlalchemy import create_engine, text
import os

# Use same DB URL pattern as main app
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/share_links"
)

ENUM_TYPES = {
    "resourcetype": ("MAPPING_SHEET", "AUDIT_COMPLIANCE"),
    "durationclass": ("HOURS_24", "HOURS_48", "HOURS_72", "DAYS_7"),
    "factkind": (
        "CBUS", "INCOLINK", "UNION_RESPECT", "SAFETY", "SUBCONTRACTOR",
        "CONTRACTOR_ROLE", "TRADE_ASSIGNMENT",
    ),
}


def table_exists(conn, table_name: str) -> bool:
    """Check if a table exists in the database."""
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM information_schema.tables
            WHERE table_name = :table_name
        )
    """), {"table_name": table_name})
    return result.fetchone()[0]


def type_exists(conn, type_name: str) -> bool:
    """Check if a Postgres enum type exists."""
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM pg_type WHERE typname = :type_name
        )
    """), {"type_name": type_name})
    return result.fetchone()[0]


def run_migration():
    """Create share link enum types and tables."""
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        for type_name, labels in ENUM_TYPES.items():
            if type_exists(conn, type_name):
                print(f"{type_name} type already exists")
                continue
            quoted = ", ".join(f"'{label}'" for label in labels)
            conn.execute(text(f"CREATE TYPE {type_name} AS ENUM ({quoted})"))
            print(f"Created {type_name} type")

        # =================================================================
        # TABLE 1: share_access_tokens
        # =================================================================
        if table_exists(conn, "share_access_tokens"):
            print("share_access_tokens table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE share_access_tokens (
                    id VARCHAR(36) PRIMARY KEY,
                    secret VARCHAR(128) NOT NULL UNIQUE,
                    resource_type resourcetype NOT NULL,
                    parent_resource_id VARCHAR(36) NOT NULL,
                    scope_allow_list JSON NOT NULL,
                    duration_class durationclass NOT NULL,
                    created_by VARCHAR(36) REFERENCES operators(id) ON DELETE SET NULL,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    expires_at TIMESTAMP NOT NULL,
                    last_used_at TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE INDEX idx_share_tokens_parent ON share_access_tokens(parent_resource_id)
            """))
            conn.execute(text("""
                CREATE INDEX idx_share_tokens_creator ON share_access_tokens(created_by)
            """))
            print("Created share_access_tokens table")

        # =================================================================
        # TABLE 2: versioned_records
        # =================================================================
        if table_exists(conn, "versioned_records"):
            print("versioned_records table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE versioned_records (
                    id VARCHAR(36) PRIMARY KEY,
                    sub_resource_id VARCHAR(36) NOT NULL,
                    fact_kind factkind NOT NULL,
                    version INTEGER NOT NULL,
                    payload JSON NOT NULL,
                    is_current BOOLEAN NOT NULL DEFAULT TRUE,
                    superseded_at TIMESTAMP,
                    parent_resource_id VARCHAR(36),
                    created_via VARCHAR(36) REFERENCES share_access_tokens(id),
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT uq_versioned_records_version UNIQUE (sub_resource_id, fact_kind, version)
                )
            """))
            conn.execute(text("""
                CREATE UNIQUE INDEX uq_versioned_records_current
                ON versioned_records(sub_resource_id, fact_kind)
                WHERE is_current
            """))
            conn.execute(text("""
                CREATE INDEX idx_versioned_records_sub_resource ON versioned_records(sub_resource_id)
            """))
            conn.execute(text("""
                CREATE INDEX idx_versioned_records_created_via ON versioned_records(created_via)
            """))
            print("Created versioned_records table")

        conn.commit()
        print("\nShare link migration completed successfully!")


if __name__ == "__main__":
    run_migration()
