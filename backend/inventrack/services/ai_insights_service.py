"""
AI stock-pattern analysis and integration status checks.

Calls the OpenAI chat-completions API over HTTP (requests). Each call is
independent; the only thing kept is the stored query/insight row.
"""
import json
import logging
import time
import uuid
from datetime import date, datetime, timezone
from typing import Optional

import requests
from sqlalchemy.orm import Session

from inventrack.config import settings
from inventrack.models import TenantTables
from inventrack.services.snapshot_service import load_snapshots
from inventrack.services.stock_summary_service import compute_stock_summary
from inventrack.utils.quantities import json_safe

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 30
PROMPT_HISTORY_ROWS = 10
CURRENT_STOCK_LIMIT = 100
PROMPT_STOCK_ROWS = 50
TEMPERATURE = 0.7
MAX_TOKENS = 1000

SYSTEM_PROMPT = """You are an expert inventory analyst. Analyze the stock data and provide insights based on the user's query.

Current Context:
- Historical data spans {history_count} snapshots
- Current stock includes {stock_count} items
- Analysis date: {analysis_date}

Provide actionable insights focusing on:
1. Stock level trends
2. Consumption patterns
3. Potential stockouts or overstock situations
4. Recommendations for inventory optimization

Keep responses concise and data-driven."""

USER_PROMPT = """User Query: {query}

Historical Data (last {history_rows} snapshots):
{history}

Current Stock Summary (top {stock_rows} items):
{stock}

Applied Filters: {filters}

Please analyze this data and provide insights relevant to the user's query."""


class AIConfigurationError(RuntimeError):
    """OpenAI key missing."""


class AIAnalysisError(RuntimeError):
    def __init__(self, message: str, details: Optional[str] = None):
        self.details = details
        super().__init__(message)


def _openai_headers() -> dict:
    return {
        "Authorization": f"Bearer {settings.OPENAI_API_KEY}",
        "Content-Type": "application/json",
    }


def _chat_completion(system_prompt: str, user_prompt: str) -> str:
    url = f"{settings.OPENAI_BASE_URL.rstrip('/')}/chat/completions"
    payload = {
        "model": settings.OPENAI_MODEL,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "temperature": TEMPERATURE,
        "max_tokens": MAX_TOKENS,
    }
    try:
        response = requests.post(url, json=payload, headers=_openai_headers(), timeout=settings.OPENAI_TIMEOUT_SECONDS)
    except requests.RequestException as e:
        raise AIAnalysisError("AI analysis failed", str(e)) from e
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not response.ok:
        details = (body.get("error") or {}).get("message") if isinstance(body, dict) else None
        logger.error("OpenAI API error %s: %s", response.status_code, details)
        raise AIAnalysisError("AI analysis failed", details or "Unknown error")
    try:
        return body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise AIAnalysisError("AI analysis failed", "Unexpected response from AI service") from e


def analyze_stock_patterns(
    db: Session,
    tables: TenantTables,
    query: str,
    user_id=None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    filters: Optional[dict] = None,
) -> dict:
    if not settings.OPENAI_API_KEY:
        raise AIConfigurationError("OpenAI API key not configured")
    started = time.monotonic()
    logger.info("Analyzing stock patterns for query: %s (range %s..%s)", query, start, end)

    history = json_safe(load_snapshots(db, tables, start=start, end=end, limit=HISTORY_LIMIT))
    current = compute_stock_summary(db, tables)[:CURRENT_STOCK_LIMIT]
    analysis_date = datetime.now(timezone.utc).isoformat()

    system_prompt = SYSTEM_PROMPT.format(
        history_count=len(history), stock_count=len(current[:PROMPT_STOCK_ROWS]), analysis_date=analysis_date,
    )
    user_prompt = USER_PROMPT.format(
        query=query,
        history_rows=PROMPT_HISTORY_ROWS,
        history=json.dumps(history[:PROMPT_HISTORY_ROWS], indent=2),
        stock_rows=PROMPT_STOCK_ROWS,
        stock=json.dumps(current[:PROMPT_STOCK_ROWS], indent=2),
        filters=json.dumps(filters or {}, indent=2),
    )
    insight = _chat_completion(system_prompt, user_prompt)

    metadata = {
        "historical_records": len(history),
        "current_stock_items": len(current[:PROMPT_STOCK_ROWS]),
        "analysis_date": analysis_date,
    }
    query_id = uuid.uuid4()
    db.execute(
        tables.stock_analytics_queries.insert().values(
            id=query_id,
            user_id=user_id,
            query_text=query,
            query_type="ai_analysis",
            query_result={"insight": insight, "context": metadata},
            filters=filters or {},
            date_range_start=start,
            date_range_end=end,
            execution_time_ms=int((time.monotonic() - started) * 1000),
        )
    )
    db.commit()
    return {"success": True, "insight": insight, "metadata": {**metadata, "query_id": str(query_id)}}


def api_status() -> dict:
    return {
        "openai": {
            "configured": bool(settings.OPENAI_API_KEY),
            "name": "OpenAI",
            "description": "AI-powered features and analytics",
        },
        "email": {
            "configured": bool(settings.SMTP_HOST),
            "name": "Email Service",
            "description": "Send notifications and reports via email",
        },
    }


def check_api_connection(service: str) -> dict:
    if service != "openai":
        return {"success": False, "message": "Unknown service", "configured": False}
    if not settings.OPENAI_API_KEY:
        return {"success": False, "message": "OpenAI API key not configured", "configured": False}
    try:
        response = requests.get(
            f"{settings.OPENAI_BASE_URL.rstrip('/')}/models",
            headers=_openai_headers(),
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        logger.warning("OpenAI connection test failed: %s", e)
        return {"success": False, "message": "OpenAI API connection failed - network error", "configured": True}
    if response.ok:
        return {"success": True, "message": "OpenAI API connection successful", "configured": True}
    return {
        "success": False,
        "message": "OpenAI API connection failed - invalid key or network error",
        "configured": True,
    }
