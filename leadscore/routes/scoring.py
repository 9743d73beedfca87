"""
Scoring routes — health, conversion rates, job triggers, lead status updates.
"""
import logging

from flask import Blueprint, request, jsonify

from leadscore import jobs
from leadscore.errors import LeadNotFoundError, PersistenceError, StatusConflictError, ValidationError
from leadscore.scoring.status import update_lead_status
from leadscore.services.client_settings import get_pixel_credentials
from leadscore.services.conversion_events import FacebookConversionNotifier
from leadscore.services.job_log import recent_job_logs
from leadscore.services.lead_store import SqlLeadStore
from leadscore.services.rate_store import SqlConversionRateStore

logger = logging.getLogger('routes.scoring')

bp = Blueprint('scoring', __name__)


@bp.route('/health')
def health():
    return jsonify({'status': 'ok'})


# ── Conversion rates ─────────────────────────────────────────────────────────

@bp.route('/api/clients/<client_id>/conversion-rates')
def list_conversion_rates(client_id):
    """Stored conversion-rate rows for a client, optionally narrowed by key_field."""
    filter = {'client_id': client_id}
    if request.args.get('key_field'):
        filter['key_field'] = request.args['key_field']
    try:
        rows = SqlConversionRateStore().get_rates(filter)
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except PersistenceError as e:
        logger.error("Failed to load rates for client %s", client_id, exc_info=True)
        return jsonify({'error': str(e)}), 500
    return jsonify({'client_id': client_id, 'conversion_rates': [row.to_dict() for row in rows]})


@bp.route('/api/clients/<client_id>/conversion-rates/recompute', methods=['POST'])
def recompute_client(client_id):
    try:
        job = jobs.enqueue_full_recompute(client_id, trigger='manual')
        return jsonify({'client_id': client_id, 'job_id': job.id, 'status': 'queued'}), 202
    except Exception as e:
        logger.error("Failed to enqueue recompute for %s", client_id, exc_info=True)
        return jsonify({'error': str(e)}), 500


@bp.route('/api/conversion-rates/sync', methods=['POST'])
def sync_all():
    try:
        job = jobs.enqueue_fleet_sync(trigger='manual')
        return jsonify({'job_id': job.id, 'status': 'queued'}), 202
    except Exception as e:
        logger.error("Failed to enqueue fleet sync", exc_info=True)
        return jsonify({'error': str(e)}), 500


@bp.route('/api/scoring/jobs')
def list_jobs():
    limit = request.args.get('limit', 50, type=int)
    logs = recent_job_logs(
        limit=max(1, min(limit, 200)),
        job_name=request.args.get('job_name'),
        client_id=request.args.get('client_id'),
    )
    return jsonify({'jobs': logs})


# ── Lead status ──────────────────────────────────────────────────────────────

@bp.route('/api/leads/<lead_id>/status', methods=['PATCH'])
def patch_lead_status(lead_id):
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if not status:
        return jsonify({'error': 'status is required'}), 400

    try:
        result = update_lead_status(
            SqlLeadStore(),
            lead_id,
            status,
            unqualified_lead_reason=data.get('unqualified_lead_reason'),
            proposal_amount=data.get('proposal_amount'),
            job_booked_amount=data.get('job_booked_amount'),
            notifier=FacebookConversionNotifier(),
            credentials_lookup=get_pixel_credentials,
        )
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except LeadNotFoundError as e:
        return jsonify({'error': str(e)}), 404
    except StatusConflictError as e:
        return jsonify({'error': str(e)}), 409
    except PersistenceError as e:
        logger.error("Failed to update status of lead %s", lead_id, exc_info=True)
        return jsonify({'error': str(e)}), 500

    return jsonify(result.to_dict())
