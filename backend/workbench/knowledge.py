import logging
import os
from functools import reduce
from operator import and_, or_
from typing import Any, Dict, List, Optional, Sequence

import requests
from bs4 import BeautifulSoup
from django.contrib.postgres.search import SearchQuery, SearchVector
from django.db import connection, transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from .models import KbChunk, KbSource, Org, Playbook
from .scope import NotFoundError, WorkbenchError, as_uuid

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1200
SEARCH_LIMIT = 8
PLAYBOOK_SEARCH_LIMIT = 20
SEARCH_CONFIG = "english"
INGEST_USER_AGENT = "AI-Workbench/0.1"


class IngestError(WorkbenchError):
    status_code = 502


def _ingest_timeout() -> float:
    try:
        return float(os.environ.get("WORKBENCH_INGEST_TIMEOUT_SECONDS") or 30)
    except ValueError:
        return 30.0


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return " ".join(soup.get_text(separator=" ").split())


def chunk_text(text: str, size: int = CHUNK_SIZE) -> List[str]:
    if not text:
        return []
    return [text[start : start + size] for start in range(0, len(text), size)]


def register_source(*, org: Org, url: str) -> KbSource:
    source = KbSource.objects.create(org=org, url=url)
    logger.info("kb_source_registered", extra={"source_id": str(source.id), "org_id": str(org.id)})
    return source


def get_source(source_id: Any) -> KbSource:
    key = as_uuid(source_id)
    source = KbSource.objects.filter(id=key).first() if key else None
    if not source:
        raise NotFoundError("not found")
    return source


def fetch_source_text(url: str) -> str:
    response = requests.get(url, headers={"User-Agent": INGEST_USER_AGENT}, timeout=_ingest_timeout())
    response.raise_for_status()
    return html_to_text(response.text)


def ingest_source(source_id: Any) -> int:
    source = get_source(source_id)
    try:
        text = fetch_source_text(source.url)
    except requests.RequestException as exc:
        source.status = "failed"
        source.save(update_fields=["status"])
        logger.warning("kb_ingest_fetch_failed", extra={"source_id": str(source.id), "error": str(exc)})
        raise IngestError(f"fetch failed: {exc}") from exc
    chunks = chunk_text(text)
    with transaction.atomic():
        source.chunks.all().delete()
        KbChunk.objects.bulk_create(
            [KbChunk(source=source, url=source.url, text=chunk, position=index) for index, chunk in enumerate(chunks)]
        )
        source.status = "ingested"
        source.ingested_at = timezone.now()
        source.save(update_fields=["status", "ingested_at"])
    logger.info("kb_source_ingested", extra={"source_id": str(source.id), "chunks": len(chunks)})
    return len(chunks)


def _uses_postgres() -> bool:
    return connection.vendor == "postgresql"


def _query_terms(query: str) -> List[str]:
    return [term for term in str(query or "").split() if term]


def _text_search(qs: QuerySet, fields: Sequence[str], query: str) -> QuerySet:
    """Plain-text query where every term must match.

    PostgreSQL uses ``plainto_tsquery`` against a ``to_tsvector`` of ``fields``.
    Other engines require each term as a case-insensitive substring of any field.
    """
    if _uses_postgres():
        return qs.annotate(search=SearchVector(*fields, config=SEARCH_CONFIG)).filter(
            search=SearchQuery(query, search_type="plain", config=SEARCH_CONFIG)
        )
    clauses = [reduce(or_, [Q(**{f"{field}__icontains": term}) for field in fields]) for term in _query_terms(query)]
    return qs.filter(reduce(and_, clauses))


def search_chunks(*, org: Org, query: str, limit: int = SEARCH_LIMIT) -> List[Dict[str, Any]]:
    if not _query_terms(query):
        return []
    qs = KbChunk.objects.filter(source__org=org).order_by()
    qs = _text_search(qs, ["text"], query)
    return [
        {"id": str(chunk["id"]), "url": chunk["url"], "text": chunk["text"]}
        for chunk in qs.values("id", "url", "text")[:limit]
    ]


def create_playbook(*, org: Org, title: str, tags: Optional[List[str]] = None, body_md: str = "") -> Playbook:
    return Playbook.objects.create(org=org, title=title, tags=list(tags or []), body_md=body_md or "")


def search_playbooks(*, query: str, org: Optional[Org] = None, limit: int = PLAYBOOK_SEARCH_LIMIT) -> List[Playbook]:
    if not _query_terms(query):
        return []
    qs = Playbook.objects.all()
    if org is not None:
        qs = qs.filter(org=org)
    qs = _text_search(qs, ["title", "tags_text", "body_md"], query)
    return list(qs.order_by("-created_at")[:limit])
