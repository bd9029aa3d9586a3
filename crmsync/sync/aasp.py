"""AASP intimação sync job.

One run fetches the tenant's pending intimações, inserts the ones not seen
before and, when anything new arrived, sends a single WhatsApp summary.
The ``(organization_id, external_id)`` unique constraint makes the job
idempotent; notification is gated on rows inserted by this run only.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable

import httpx
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..http.retry import fetch_json_with_retry
from ..models.aasp import AASPConfig, AASPIntimacao
from ..schemas.sync import SyncResult
from ..services.audit_svc import NullSyncAudit, SyncAudit
from ..services.notify_svc import mask_phone, notify_new_intimacoes
from .upsert import insert_ignore

logger = logging.getLogger(__name__)

JORNAIS_PATH = "/api/Associado/intimacao/GetJornaisComIntimacoes/json"
INTIMACOES_PATH = "/api/Associado/intimacao/json"
FETCH_RETRIES = 2


# -- Response shapes -------------------------------------------------------

def from_root_array(data: Any) -> list | None:
    return data if isinstance(data, list) else None


def _from_key(key: str) -> Callable[[Any], list | None]:
    def adapter(data: Any) -> list | None:
        if isinstance(data, dict) and isinstance(data.get(key), list):
            return data[key]
        return None
    return adapter


from_intimacoes_key = _from_key("Intimacoes")
from_lowercase_key = _from_key("intimacoes")
from_items_key = _from_key("Items")

SHAPES: dict[str, Callable[[Any], list | None]] = {
    "root_array": from_root_array,
    "intimacoes_key": from_intimacoes_key,
    "lowercase_key": from_lowercase_key,
    "items_key": from_items_key,
}


def extract_intimacoes(data: Any, shape: str = "auto") -> tuple[list, str]:
    """Return ``(records, shape_name)``; unknown bodies yield ``([], "empty")``."""
    if shape != "auto":
        adapter = SHAPES.get(shape)
        found = adapter(data) if adapter else None
        return (found, shape) if found is not None else ([], "empty")

    for name, adapter in SHAPES.items():
        found = adapter(data)
        if found is not None:
            return found, name
    return [], "empty"


def normalize_intimacoes(data: Any, shape: str = "auto") -> list:
    """Record list from an upstream body, ``[]`` when no known shape matches."""
    return extract_intimacoes(data, shape)[0]


# -- Record normalization --------------------------------------------------

_ISO_DATE = re.compile(r"^(\d{4}-\d{2}-\d{2})")
_BR_DATE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})")


def _pick(item: dict, *keys: str) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value)


def parse_date(value: Any) -> date | None:
    """ISO (``YYYY-MM-DD``, optional time part) or ``DD/MM/YYYY``."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if m := _ISO_DATE.match(text):
        return date.fromisoformat(m.group(1))
    if m := _BR_DATE.match(text):
        day, month, year = (int(g) for g in m.groups())
        return date(year, month, day)
    raise ValueError(f"Unrecognized date: {value!r}")


def derive_external_id(item: dict) -> str:
    # Falsy ids (0, False, "") fall through to the next candidate.
    external_id = item.get("Id") or item.get("id") or item.get("CodigoIntimacao")
    if external_id:
        return str(external_id)
    return f"{item.get('Processo') or ''}_{item.get('DataPublicacao') or ''}"


def normalize_record(item: Any) -> dict[str, Any]:
    """Map one upstream item onto ``AASPIntimacao`` columns."""
    if not isinstance(item, dict):
        raise ValueError(f"Intimação must be an object, got {type(item).__name__}")

    return {
        "external_id": derive_external_id(item),
        "jornal": _text(_pick(item, "Jornal", "jornal")),
        "data_publicacao": parse_date(_pick(item, "DataPublicacao", "dataPublicacao")),
        "data_disponibilizacao": parse_date(
            _pick(item, "DataDisponibilizacao", "dataDisponibilizacao")
        ),
        "caderno": _text(_pick(item, "Caderno", "caderno")),
        "pagina": _text(_pick(item, "Pagina", "pagina")),
        "comarca": _text(_pick(item, "Comarca", "comarca")),
        "vara": _text(_pick(item, "Vara", "vara")),
        "processo": _text(_pick(item, "Processo", "processo", "NumeroProcesso")),
        "tipo": _text(_pick(item, "Tipo", "tipo")),
        "conteudo": _text(_pick(item, "Conteudo", "conteudo", "Texto", "texto")),
        "partes": _text(_pick(item, "Partes", "partes")),
        "advogados": _text(_pick(item, "Advogados", "advogados")),
        "raw_data": item,
    }


# -- Job -------------------------------------------------------------------

def _preview(data: Any, limit: int = 500) -> Any:
    if isinstance(data, str):
        return data[:limit]
    return data


async def sync_aasp(
    db: AsyncSession,
    config: AASPConfig,
    *,
    client: httpx.AsyncClient | None = None,
    audit: SyncAudit | None = None,
) -> SyncResult:
    """Run one sync for the tenant owning ``config``."""
    audit = audit or NullSyncAudit("aasp")

    # Rollbacks below expire ORM state; read everything we need up front.
    org_id: uuid.UUID = config.organization_id
    api_token = config.api_token
    notify_phone = config.notify_phone
    connection_id = config.connection_id

    base_url = settings.aasp_base_url.rstrip("/")
    headers = {"Authorization": f"Bearer {api_token}", "Accept": "application/json"}

    await audit.record("info", "sync.start", {
        "has_notify_phone": bool(notify_phone),
        "has_connection_id": bool(connection_id),
    })

    try:
        jornais = await fetch_json_with_retry(
            base_url + JORNAIS_PATH, headers=headers,
            retries=FETCH_RETRIES, label="aasp-jornais", client=client,
        )
        if not jornais.ok:
            await audit.record("error", "sync.jornais_failed", {
                "status": jornais.status, "data": _preview(jornais.data),
            })
            return SyncResult(success=False, error=f"API retornou status {jornais.status}")

        resp = await fetch_json_with_retry(
            base_url + INTIMACOES_PATH, headers=headers,
            retries=FETCH_RETRIES, label="aasp-intimacoes", client=client,
        )
        if not resp.ok:
            await audit.record("error", "sync.intimacoes_failed", {"status": resp.status})
            return SyncResult(success=False, error=f"API retornou status {resp.status}")

        items, shape = extract_intimacoes(resp.data, settings.aasp_response_shape)
        await audit.record("info", "sync.parsed_intimacoes", {
            "count": len(items), "extractedFrom": shape,
        })

        new_ids: list[uuid.UUID] = []
        insert_errors = 0
        for item in items:
            try:
                values = normalize_record(item)
                values["organization_id"] = org_id
                new_id = await insert_ignore(
                    db, AASPIntimacao, values, ["organization_id", "external_id"]
                )
                await db.commit()
                if new_id is not None:
                    new_ids.append(new_id)
            except Exception as exc:
                await db.rollback()
                insert_errors += 1
                keys = list(item)[:20] if isinstance(item, dict) else None
                logger.warning(
                    "AASP insert failed for org %s: %s", org_id, exc,
                    extra={"event": "aasp.sync.insert_error"},
                )
                await audit.record("error", "sync.insert_error", {
                    "message": str(exc), "itemKeys": keys,
                })

        await db.execute(
            update(AASPConfig)
            .where(AASPConfig.organization_id == org_id)
            .values(last_sync_at=datetime.now(timezone.utc))
        )
        await db.commit()

        new_count = len(new_ids)
        notified = False
        if new_count > 0 and notify_phone:
            logger.info(
                "Notifying %s about %d new intimações", mask_phone(notify_phone), new_count,
                extra={"event": "aasp.sync.sending_notification"},
            )
            notified = await notify_new_intimacoes(
                db, connection_id, notify_phone, new_count, org_id, client=client
            )
            if notified:
                await db.execute(
                    update(AASPIntimacao)
                    .where(AASPIntimacao.id.in_(new_ids))
                    .values(notified=True)
                )
                await db.commit()

        await audit.record("info", "sync.complete", {
            "newCount": new_count, "total": len(items), "insertErrors": insert_errors,
        })
        return SyncResult(
            success=True,
            new_count=new_count,
            total=len(items),
            insert_errors=insert_errors,
            notified=notified,
        )
    except Exception as exc:
        logger.exception("AASP sync failed for org %s", org_id)
        await db.rollback()
        await audit.record("error", "sync.error", {"message": str(exc)[:300]})
        return SyncResult(success=False, error=str(exc))
