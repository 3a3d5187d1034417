"""Jobs API - submit a recording and retrieve its artifacts."""
from flask import Blueprint, Response, jsonify, request, send_file, url_for
import logging

from models.artifact import ArtifactKind
from stream_app import get_processing_service
from utils.exceptions import InputValidationError, NotFoundError

bp = Blueprint('jobs', __name__)
logger = logging.getLogger(__name__)

TRUE_VALUES = ('1', 'true', 'yes', 'on')


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUE_VALUES


def _job_payload(job):
    payload = job.to_dict()
    payload['downloads'] = {
        kind.value: url_for('jobs.download_artifact', job_id=job.id, kind=kind.value)
        for kind in list(job.artifacts)
    }
    payload['transcript'] = job.transcript
    return payload


@bp.route('', methods=['POST'])
def create_job():
    """Convert a recording to audio and optionally transcribe it.

    Accepts application/json or form data:
      videoInput: class session URL or numeric recording ID
      sbatId: explicit recording ID (overrides videoInput)
      manifest_urls: playlist URLs to use instead of the lookup service (JSON only)
      transcribe: also produce a transcript

    Returns:
        201: Job finished; body has job metadata and download links
        400: Invalid input
        502: Upstream (CDN, lookup or speech provider) failure
        500: Merge or conversion failure
    """
    if request.is_json:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise InputValidationError('Request body must be a JSON object')
        manifest_urls = data.get('manifest_urls')
    else:
        data = request.form
        manifest_urls = request.form.getlist('manifest_urls') or None

    service = get_processing_service()
    job = service.submit(
        video_input=data.get('videoInput'),
        reference=data.get('sbatId'),
        manifest_urls=manifest_urls,
        transcribe=_as_bool(data.get('transcribe')),
    )

    logger.info(f"Job {job.id} finished for reference {job.reference}")
    return jsonify(_job_payload(job)), 201


@bp.route('/<job_id>', methods=['GET'])
def get_job(job_id):
    """Get job metadata.

    Returns:
        200: Job metadata
        404: Unknown job
        410: Job expired
    """
    job = get_processing_service().store.get(job_id)
    return jsonify(_job_payload(job)), 200


@bp.route('/<job_id>/artifacts/<kind>', methods=['GET'])
def download_artifact(job_id, kind):
    """Stream one artifact of a ready job as an attachment."""
    try:
        artifact_kind = ArtifactKind(kind)
    except ValueError:
        raise NotFoundError(f"Unknown artifact kind: {kind}") from None

    artifact = get_processing_service().store.get_artifact(job_id, artifact_kind)

    if artifact.path is None:
        return Response(
            artifact.text or '',
            mimetype=artifact.content_type,
            headers={'Content-Disposition': f'attachment; filename={artifact.filename}'},
        )

    logger.info(f"Serving {artifact_kind.value} artifact of job {job_id}")
    return send_file(
        artifact.path,
        mimetype=artifact.content_type,
        as_attachment=True,
        download_name=artifact.filename,
    )
