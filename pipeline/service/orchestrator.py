"""
Job orchestrator.

Runs one MediaJob through its states:

    RECEIVED -> CLASSIFIED -> TRANSFORMING -> UPLOADING -> CLEANED -> DONE
                                   |              |
                                   +--> FAILED ---+--> CLEANED -> DONE

Every scratch file the job touches, including the inbound blob, is released
before the outcome is returned, whatever happened on the way.
"""

from pipeline.service.download import acquire_video
from pipeline.service.errors import PipelineError
from pipeline.service.jobs import DeliveryResult, JobKind, JobOutcome, JobState
from pipeline.service.scratch import ScratchSet
from pipeline.service.sticker import transform_sticker

STICKER_NOTICE = 'Criando sticker... 🔥'
STICKER_FAILURE_NOTICE = 'Erro ao criar sticker 😅 Tenta outra mídia.'
VIDEO_FAILURE_NOTICE = 'Erro ao baixar 😅 Tenta outro link ou qualidade.'


def failure_notice_for(job):
    """The single user-facing failure text for a job kind"""
    if job.kind == JobKind.STICKER:
        return STICKER_FAILURE_NOTICE
    return VIDEO_FAILURE_NOTICE


def _run_sticker(job, scratch, notify, invoker, logger):
    if notify:
        notify(STICKER_NOTICE)
    return transform_sticker(
        job.source_ref, job.mode, job.animated, scratch, invoker=invoker, logger=logger
    )


def _run_video(job, scratch, notify, invoker, logger):
    return acquire_video(
        str(job.source_ref), job.quality, scratch, notify=notify, invoker=invoker, logger=logger
    )


HANDLERS = {
    JobKind.STICKER: _run_sticker,
    JobKind.VIDEO_DOWNLOAD: _run_video,
}


def process_job(job, uploader, notify=None, invoker=None, scratch_dir=None, logger=None):
    """
    Process one MediaJob end to end.

    Args:
        job: MediaJob
        uploader: Uploader with upload(path, media_type, size_bytes) -> handle
        notify: Optional callable(str) that sends a progress note to the sender
        invoker: Invoker for ffmpeg (default: SubprocessInvoker)
        scratch_dir: Scratch directory (default from settings)
        logger: Optional callable(str) for logging

    Returns:
        JobOutcome with either `result` or `failure_notice` set
    """

    def log(message):
        if logger:
            logger(f'[{job.guid}] {message}')

    outcome = JobOutcome(job=job)
    scratch = ScratchSet(scratch_dir, logger=log)
    if job.kind == JobKind.STICKER:
        # The inbound blob belongs to the job from here on
        scratch.adopt(job.source_ref)

    try:
        handler = HANDLERS[job.kind]
        outcome.advance(JobState.CLASSIFIED)
        log(f'Classified as {job.kind.value}')

        outcome.advance(JobState.TRANSFORMING)
        artifact = handler(job, scratch, notify, invoker, log)

        outcome.advance(JobState.UPLOADING)
        # Size reported to the channel is what is on disk right now
        artifact = artifact.remeasure()
        log(f'Uploading {artifact.path.name} as {artifact.media_type.value} ({artifact.size_bytes} bytes)')
        handle = uploader.upload(artifact.path, artifact.media_type, artifact.size_bytes)

        outcome.result = DeliveryResult(
            remote_handle=handle, media_type=artifact.media_type, note=artifact.note
        )
    except PipelineError as e:
        log(f'Failed: {type(e).__name__}: {e}')
        outcome.error = e
        outcome.failure_notice = failure_notice_for(job)
        outcome.advance(JobState.FAILED)
    except Exception as e:
        log(f'Unexpected error: {type(e).__name__}: {e}')
        outcome.error = e
        outcome.failure_notice = failure_notice_for(job)
        outcome.advance(JobState.FAILED)
    finally:
        removed = scratch.release_all()
        log(f'Cleaned up {removed} scratch file(s)')
        outcome.advance(JobState.CLEANED)

    outcome.advance(JobState.DONE)
    return outcome
