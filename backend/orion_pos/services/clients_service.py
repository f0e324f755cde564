# Overview: Service-layer operations for clients; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Client, Sale
from ..validation import NotFoundError, ValidationError
from .concurrency import run_with_retry, unit_of_work


CLIENT_MUTABLE_FIELDS = {"name", "phone", "email", "address"}


def _require_client(client_id: int) -> Client:
    client = db.session.query(Client).filter_by(id=client_id).first()
    if client is None:
        raise NotFoundError("Client not found")
    return client


def list_clients(search: str | None = None) -> list[Client]:
    q = db.session.query(Client)
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(db.or_(Client.name.ilike(term), Client.phone.ilike(term)))
    return q.order_by(Client.name.asc(), Client.id.asc()).all()


def get_client_with_sales(client_id: int) -> dict:
    """Client card plus its purchase history, newest first."""
    client = _require_client(client_id)
    sales = (
        db.session.query(Sale)
        .options(selectinload(Sale.items))
        .filter(Sale.client_id == client_id)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .all()
    )

    history = []
    for sale in sales:
        data = sale.to_dict()
        data["items_summary"] = ", ".join(f"{i.product_name} x{i.quantity}" for i in sale.items)
        history.append(data)

    result = client.to_dict()
    result["sales"] = history
    return result


def create_client_inner(name: str, phone: str | None = None, **extra) -> Client:
    """Insert without committing (used by checkout)."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    client = Client(name=name, phone=(phone or "").strip() or None)
    for k, v in extra.items():
        if k in CLIENT_MUTABLE_FIELDS:
            setattr(client, k, v)
    db.session.add(client)
    db.session.flush()
    return client


def create_client(patch: dict) -> Client:
    def _op():
        with unit_of_work():
            extra = {k: v for k, v in patch.items() if k not in ("name", "phone")}
            client = create_client_inner(patch.get("name"), patch.get("phone"), **extra)
        return client

    return run_with_retry(_op)


def update_client(client_id: int, patch: dict) -> Client:
    if "name" in patch and not (patch["name"] or "").strip():
        raise ValidationError("name cannot be blank")

    def _op():
        with unit_of_work():
            client = _require_client(client_id)
            for k, v in patch.items():
                if k in CLIENT_MUTABLE_FIELDS:
                    setattr(client, k, v)
        return client

    return run_with_retry(_op)


def delete_client(client_id: int) -> None:
    """Delete a client; its sales are kept with client_id nulled."""
    def _op():
        with unit_of_work():
            client = _require_client(client_id)
            db.session.query(Sale).filter(Sale.client_id == client_id).update(
                {Sale.client_id: None}, synchronize_session=False
            )
            db.session.delete(client)

    run_with_retry(_op)
