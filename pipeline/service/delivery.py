"""
Delivery channel boundary.

The pipeline only needs upload(path, media_type, size_bytes) -> handle.
WhatsAppCloudClient implements that against the WhatsApp Cloud (Graph) API
and also carries the message calls the background task uses to fetch
inbound media and to render results.
"""

import mimetypes
import shutil
from pathlib import Path

import requests
from django.conf import settings

from pipeline.service.constants import (
    DOCUMENT_FILENAME,
    STICKER_MIME_TYPE,
    VIDEO_MIME_TYPE,
)
from pipeline.service.errors import DownloadFailed, UploadFailed
from pipeline.service.jobs import MediaType

REQUEST_TIMEOUT = 30
UPLOAD_TIMEOUT = 120


def mime_type_for(media_type):
    """MIME type sent with an upload of the given MediaType"""
    if media_type.is_sticker:
        return STICKER_MIME_TYPE
    return VIDEO_MIME_TYPE


class Uploader:
    """
    Interface for anything that can push an artifact to the channel.

    Subclasses return an opaque handle the channel uses to reference the
    uploaded content in a later message.
    """

    def upload(self, path, media_type, size_bytes):
        raise NotImplementedError


class DirectoryUploader(Uploader):
    """
    Uploader that copies artifacts into a local directory.

    Used by the management commands to run the full pipeline without a
    channel. The handle is the path of the copy.
    """

    def __init__(self, outdir, basename=None):
        self.outdir = Path(outdir)
        self.basename = basename

    def upload(self, path, media_type, size_bytes):
        path = Path(path)
        self.outdir.mkdir(parents=True, exist_ok=True)
        name = f'{self.basename}{path.suffix}' if self.basename else path.name
        target = self.outdir / name
        shutil.copy2(path, target)
        return str(target)


class WhatsAppCloudClient(Uploader):
    """Thin requests wrapper around the WhatsApp Cloud API"""

    def __init__(self, token=None, phone_number_id=None, api_version=None, base_url=None,
                 session=None):
        self.token = token if token is not None else settings.WHATSAPP_TOKEN
        self.phone_number_id = (
            phone_number_id if phone_number_id is not None else settings.WHATSAPP_PHONE_NUMBER_ID
        )
        self.api_version = api_version or settings.WHATSAPP_API_VERSION
        self.base_url = (base_url or settings.WHATSAPP_API_BASE).rstrip('/')
        self.session = session or requests.Session()

    @property
    def _auth_headers(self):
        return {'Authorization': f'Bearer {self.token}'}

    def _url(self, *parts):
        return '/'.join([self.base_url, self.api_version] + [str(p) for p in parts])

    # Inbound media

    def download_media(self, media_id, scratch, logger=None):
        """
        Materialize an inbound media item in the scratch directory.

        Args:
            media_id: Channel media id from the webhook payload
            scratch: ScratchSet that will own the file
            logger: Optional callable(str) for logging

        Returns:
            Path to the downloaded blob

        Raises:
            DownloadFailed: If the media can't be resolved or fetched
        """

        def log(message):
            if logger:
                logger(message)

        try:
            meta = self.session.get(
                self._url(media_id), headers=self._auth_headers, timeout=REQUEST_TIMEOUT
            )
            meta.raise_for_status()
            info = meta.json()
            media_url = info['url']
            mime_type = info.get('mime_type', '').split(';')[0].strip()
            extension = mimetypes.guess_extension(mime_type) or '.tmp'

            out_path = scratch.new_path('inbound', extension)
            log(f'Downloading inbound media {media_id} to {out_path.name}')

            response = self.session.get(
                media_url, headers=self._auth_headers, stream=True, timeout=REQUEST_TIMEOUT
            )
            response.raise_for_status()
            with open(out_path, 'wb') as f:
                for chunk in response.iter_content(chunk_size=8192):
                    f.write(chunk)
        except (requests.RequestException, KeyError, ValueError, OSError) as e:
            raise DownloadFailed(f'Could not fetch inbound media {media_id}: {e}') from e

        log(f'Downloaded {out_path.stat().st_size} bytes')
        return out_path

    # Upload

    def upload(self, path, media_type, size_bytes):
        """
        Upload a file and return the channel's media id.

        Raises:
            UploadFailed: If the request fails or no id comes back
        """
        path = Path(path)
        mime_type = mime_type_for(media_type)
        try:
            with open(path, 'rb') as f:
                response = self.session.post(
                    self._url(self.phone_number_id, 'media'),
                    headers=self._auth_headers,
                    data={'messaging_product': 'whatsapp', 'type': mime_type},
                    files={'file': (path.name, f, mime_type)},
                    timeout=UPLOAD_TIMEOUT,
                )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError, OSError) as e:
            raise UploadFailed(f'Upload of {path.name} ({size_bytes} bytes) failed: {e}') from e

        media_id = data.get('id')
        if not media_id:
            raise UploadFailed(f'Upload of {path.name} returned no media id')
        return media_id

    # Outbound messages

    def _send(self, payload):
        body = {'messaging_product': 'whatsapp', **payload}
        response = self.session.post(
            self._url(self.phone_number_id, 'messages'),
            headers={**self._auth_headers, 'Content-Type': 'application/json'},
            json=body,
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        return response.json()

    def send_text(self, to, text):
        return self._send({'to': to, 'type': 'text', 'text': {'body': text}})

    def send_sticker(self, to, media_id):
        return self._send({'to': to, 'type': 'sticker', 'sticker': {'id': media_id}})

    def send_media(self, to, media_id, kind, caption='', filename=''):
        """Send an uploaded video or document, with optional caption and filename."""
        body = {'id': media_id}
        if caption:
            body['caption'] = caption
        if filename:
            body['filename'] = filename
        return self._send({'to': to, 'type': kind, kind: body})

    def send_result(self, to, result):
        """
        Render a DeliveryResult as channel messages.

        Stickers are sent followed by a confirmation text; videos carry their
        note as a caption; documents get a fixed filename and the note as a
        follow-up text.
        """
        if result.media_type.is_sticker:
            self.send_sticker(to, result.remote_handle)
            kind = 'animada' if result.media_type == MediaType.ANIMATED_STICKER else 'estática'
            self.send_text(to, f'Sticker {kind} pronto! Use !fig ou !efig antes da mídia. 😎')
            if result.note:
                self.send_text(to, result.note)
        elif result.media_type == MediaType.VIDEO:
            self.send_media(to, result.remote_handle, 'video', caption=result.note or '')
        else:
            self.send_media(to, result.remote_handle, 'document', filename=DOCUMENT_FILENAME)
            if result.note:
                self.send_text(to, result.note)
