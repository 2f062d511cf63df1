# Sends assembled SQL to the analytics webhook (an n8n workflow) and returns its text response.
import logging
from typing import Any, Dict, NamedTuple, Optional

import requests

from .settings import Settings

logger = logging.getLogger(__name__)


class WebhookResponse(NamedTuple):
    ok: bool
    text: str
    status_code: Optional[int] = None


def post_query(
    query: str,
    settings: Settings,
    tool_label: str,
    extra_headers: Optional[Dict[str, str]] = None,
    extra_payload: Optional[Dict[str, Any]] = None,
) -> WebhookResponse:
    """
    POSTs `{"query": ...}` to the configured webhook. Single attempt; every
    failure comes back as descriptive text instead of an exception.
    """
    if not settings.webhook_url:
        return WebhookResponse(False, "Error: Analytics webhook URL is not configured (set ANALYTICS_WEBHOOK_URL).")

    agent_name = tool_label.title().replace(" ", "-")
    headers = {
        "Content-Type": "application/json",
        "User-Agent": f"{settings.user_agent_prefix}-{agent_name}/1.0",
    }
    if extra_headers:
        headers.update(extra_headers)

    payload: Dict[str, Any] = {"query": query}
    if extra_payload:
        payload.update(extra_payload)

    logger.info("Submitting %s query (%d characters)", tool_label, len(query))
    try:
        response = requests.post(
            settings.webhook_url,
            headers=headers,
            json=payload,
            timeout=settings.webhook_timeout,
        )
    except requests.exceptions.Timeout:
        logger.error("Webhook timed out after %ss for %s", settings.webhook_timeout, tool_label)
        return WebhookResponse(
            False, f"Error: Request to analytics webhook timed out ({settings.webhook_timeout:g}s limit)."
        )
    except requests.exceptions.RequestException as e:
        logger.error("Webhook request failed for %s: %s", tool_label, e)
        return WebhookResponse(False, f"Error: HTTP request to analytics webhook failed: {str(e)}")

    if not response.ok:
        logger.warning("Webhook returned %s %s for %s", response.status_code, response.reason, tool_label)
        return WebhookResponse(
            False,
            f"Error: Failed to execute {tool_label}. Status: {response.status_code} {response.reason}",
            response.status_code,
        )

    return WebhookResponse(True, response.text, response.status_code)


def submit_query(query: str, settings: Settings, tool_label: str, **kwargs) -> str:
    return post_query(query, settings, tool_label, **kwargs).text
