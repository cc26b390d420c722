"""
Background tasks.

Each inbound MediaJob runs as its own Huey task so that a slow download or
transcode never blocks the process accepting webhooks. Jobs are independent:
no ordering between them and no shared state besides the scratch directory.
"""

import logging

import requests
from huey.contrib.djhuey import task

from pipeline.service.delivery import WhatsAppCloudClient
from pipeline.service.errors import PipelineError
from pipeline.service.jobs import JobKind, MediaJob, StickerMode
from pipeline.service.orchestrator import STICKER_FAILURE_NOTICE, failure_notice_for, process_job
from pipeline.service.scratch import ScratchSet

logger = logging.getLogger(__name__)


def _deliver(job, client):
    """Process a job and render its outcome to the sender."""

    def notify(text):
        client.send_text(job.recipient, text)

    outcome = process_job(
        job,
        client,
        notify=notify if job.recipient else None,
        logger=logger.info,
    )
    failure_notice = outcome.failure_notice

    if job.recipient:
        if outcome.succeeded:
            try:
                client.send_result(job.recipient, outcome.result)
            except requests.RequestException as e:
                # Uploaded but never shown to the sender
                logger.warning('Job %s result could not be sent: %s', job.guid, e)
                failure_notice = failure_notice_for(job)
                client.send_text(job.recipient, failure_notice)
        else:
            client.send_text(job.recipient, failure_notice)

    if outcome.error is not None:
        logger.warning('Job %s failed: %s', job.guid, outcome.error)

    return {
        'guid': job.guid,
        'state': outcome.state.value,
        'history': [state.value for state in outcome.history],
        'media_type': outcome.result.media_type.value if outcome.result else None,
        'failure_notice': failure_notice,
    }


def _inbound_failed(client, recipient):
    client.send_text(recipient, STICKER_FAILURE_NOTICE)
    return {'guid': None, 'state': 'failed', 'failure_notice': STICKER_FAILURE_NOTICE}


@task()
def run_media_job(job_data):
    """
    Run a MediaJob built by the webhook layer.

    Args:
        job_data: MediaJob.to_dict() output

    Returns:
        dict summary of the outcome
    """
    job = MediaJob.from_dict(job_data)
    logger.info('Job %s received: %s %s', job.guid, job.kind.value, job.source_ref)
    return _deliver(job, WhatsAppCloudClient())


@task()
def run_inbound_sticker(media_id, recipient, mode=StickerMode.STANDARD.value, animated=False):
    """
    Fetch an inbound image/video from the channel and turn it into a sticker.

    The fetched blob is handed to the job, which releases it with the rest
    of its scratch files. Anything left over when the task ends is released
    here.
    """
    client = WhatsAppCloudClient()

    try:
        sticker_mode = StickerMode(mode)
    except ValueError:
        logger.warning('Unknown sticker mode %r for inbound media %s', mode, media_id)
        return _inbound_failed(client, recipient)

    with ScratchSet(logger=logger.info) as scratch:
        try:
            blob = client.download_media(media_id, scratch, logger=logger.info)
        except PipelineError as e:
            logger.warning('Inbound media %s could not be fetched: %s', media_id, e)
            return _inbound_failed(client, recipient)

        job = MediaJob(
            kind=JobKind.STICKER,
            source_ref=blob,
            mode=sticker_mode,
            animated=animated,
            recipient=recipient,
        )
        return _deliver(job, client)


def enqueue_job(job):
    """Queue a MediaJob for background processing and return the Huey result handle."""
    return run_media_job(job.to_dict())
