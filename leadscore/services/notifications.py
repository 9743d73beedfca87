"""
Notifications — Slack webhook integration for scoring job events.

Notification failure never blocks a job.
"""
import logging
import requests

from leadscore import config

logger = logging.getLogger('services.notifications')


def notify_sync_complete(result, duration_s=None):
    """Post fleet-wide sync summary to Slack."""
    webhook = config.SLACK_WEBHOOK_URL
    if not webhook:
        return

    try:
        failed = [r for r in result.client_results if not r.get('success')]
        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": "Conversion Rate Sync Completed",
                }
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Clients:* {result.processed_clients}"},
                    {"type": "mrkdwn", "text": f"*Failed clients:* {len(failed)}"},
                    {"type": "mrkdwn", "text": f"*Rates updated:* {result.total_updated_rates}"},
                    {"type": "mrkdwn", "text": f"*Leads rescored:* {result.total_updated_leads}"},
                    {"type": "mrkdwn", "text": f"*Leads processed:* {result.total_processed_leads}"},
                ]
            },
        ]

        if result.errors:
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": "*Errors:* ```" + "\n".join(result.errors[:10])[:1500] + "```"}
            })

        if duration_s is not None:
            blocks.append({
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"Duration: {duration_s:.1f}s"}]
            })

        requests.post(webhook, json={"blocks": blocks}, timeout=10)
        logger.info("Sync completion notification sent")

    except Exception:
        logger.error("Failed to send sync notification", exc_info=True)


def notify_job_failed(job_name, error, client_id=None):
    """Post scoring job failure alert to Slack."""
    webhook = config.SLACK_WEBHOOK_URL
    if not webhook:
        return

    try:
        fields = [{"type": "mrkdwn", "text": f"*Job:* {job_name}"}]
        if client_id:
            fields.append({"type": "mrkdwn", "text": f"*Client:* {client_id}"})

        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": f"Scoring Job FAILED — {job_name}"}
            },
            {"type": "section", "fields": fields},
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Error:* ```{str(error)[:500]}```"}
            },
        ]

        requests.post(webhook, json={"blocks": blocks}, timeout=10)
        logger.info("Failure notification sent for %s", job_name)

    except Exception:
        logger.error("Failed to send failure notification for %s", job_name, exc_info=True)
