from sqlalchemy.orm import Session

from reconciler.core.config import settings
from reconciler.core.currency import normalize_currency
from reconciler.models.apps import App


def create_app(db: Session, name: str, *, slug: str | None = None, currency: str | None = None) -> App:
    app = App(
        name=name,
        slug=slug,
        currency=normalize_currency(currency, settings.DEFAULT_CURRENCY),
    )
    db.add(app)
    db.commit()
    db.refresh(app)
    return app


def get_app(db: Session, app_id: int) -> App | None:
    return db.query(App).filter(App.id == app_id).first()


def get_app_by_slug(db: Session, slug: str) -> App | None:
    return db.query(App).filter(App.slug == slug).first()


def list_apps(db: Session) -> list[App]:
    return db.query(App).order_by(App.id.asc()).all()


def get_app_currency(db: Session, app_id: int) -> str:
    app = get_app(db, app_id)
    if app is None:
        return settings.DEFAULT_CURRENCY
    return normalize_currency(app.currency, settings.DEFAULT_CURRENCY)


def update_app_currency(db: Session, app_id: int, currency: str) -> App | None:
    app = get_app(db, app_id)
    if not app:
        return None
    app.currency = normalize_currency(currency, settings.DEFAULT_CURRENCY)
    db.commit()
    db.refresh(app)
    return app
