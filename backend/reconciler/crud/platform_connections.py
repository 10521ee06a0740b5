from typing import Any

from sqlalchemy.orm import Session

from reconciler.core.crypto import decrypt_json, encrypt_json
from reconciler.core.platforms import sort_by_platform, validate_credentials, validate_platform
from reconciler.core.time import utcnow
from reconciler.models.platform_connections import PlatformConnection


def create_connection(
    db: Session,
    app_id: int,
    platform: str,
    credentials: dict[str, Any],
    *,
    is_active: bool = True,
) -> PlatformConnection:
    platform = validate_platform(platform)
    validate_credentials(platform, credentials)
    connection = PlatformConnection(
        app_id=app_id,
        platform=platform,
        credentials_encrypted=encrypt_json(credentials),
        is_active=is_active,
    )
    db.add(connection)
    db.commit()
    db.refresh(connection)
    return connection


def get_connection(db: Session, connection_id: int) -> PlatformConnection | None:
    return db.query(PlatformConnection).filter(PlatformConnection.id == connection_id).first()


def list_active_connections(
    db: Session,
    app_id: int,
    *,
    platform: str | None = None,
) -> list[PlatformConnection]:
    """Active connections for an app in sync priority order."""
    query = db.query(PlatformConnection).filter(
        PlatformConnection.app_id == app_id,
        PlatformConnection.is_active.is_(True),
    )
    if platform:
        query = query.filter(PlatformConnection.platform == validate_platform(platform))
    return sort_by_platform(query.order_by(PlatformConnection.id.asc()).all())


def get_credentials(connection: PlatformConnection) -> dict[str, Any]:
    credentials = decrypt_json(connection.credentials_encrypted)
    return validate_credentials(connection.platform, credentials)


def update_credentials(db: Session, connection_id: int, credentials: dict[str, Any]) -> PlatformConnection | None:
    connection = get_connection(db, connection_id)
    if not connection:
        return None
    validate_credentials(connection.platform, credentials)
    connection.credentials_encrypted = encrypt_json(credentials)
    db.commit()
    db.refresh(connection)
    return connection


def mark_synced(db: Session, connection_id: int) -> PlatformConnection | None:
    connection = get_connection(db, connection_id)
    if not connection:
        return None
    connection.last_sync_at = utcnow()
    db.commit()
    db.refresh(connection)
    return connection


def reset_last_sync(db: Session, app_id: int, *, platform: str | None = None) -> int:
    """Clear ``last_sync_at`` so the next sync runs a full historical pass."""
    query = db.query(PlatformConnection).filter(PlatformConnection.app_id == app_id)
    if platform:
        query = query.filter(PlatformConnection.platform == validate_platform(platform))
    connections = query.all()
    for connection in connections:
        connection.last_sync_at = None
    if connections:
        db.commit()
    return len(connections)
