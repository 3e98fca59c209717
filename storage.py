import io
import os
import time
import logging

import cloudinary
import cloudinary.uploader
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

EXTENSIONS = {
    'video/webm': 'webm',
    'video/mp4': 'mp4',
    'video/quicktime': 'mov',
    'video/x-matroska': 'mkv',
}


def media_filename(candidate_id, question_id, mime_type=None, timestamp_ms=None):
    """``<epoch-ms>-<candidateId>-<questionId>.<ext>``"""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    base_type = (mime_type or '').split(';')[0].strip()
    ext = EXTENSIONS.get(base_type, 'webm')
    return secure_filename(f"{timestamp_ms}-{candidate_id}-{question_id}.{ext}")


class LocalVideoStorage:
    """Writes media under ``folder`` and hands back ``<url_prefix>/<name>``."""

    def __init__(self, folder, url_prefix='/uploads/videos'):
        self.folder = folder
        self.url_prefix = url_prefix.rstrip('/')
        os.makedirs(self.folder, exist_ok=True)

    def save(self, data, candidate_id, question_id, mime_type=None):
        timestamp_ms = int(time.time() * 1000)
        filename = media_filename(candidate_id, question_id, mime_type, timestamp_ms)
        path = os.path.join(self.folder, filename)
        # same millisecond, same candidate/question: move to the next free slot
        while os.path.exists(path):
            timestamp_ms += 1
            filename = media_filename(candidate_id, question_id, mime_type, timestamp_ms)
            path = os.path.join(self.folder, filename)

        with open(path, 'wb') as f:
            f.write(data)
        logger.info("Stored %d bytes at %s", len(data), path)
        return f"{self.url_prefix}/{filename}"

    def path_for(self, url):
        return os.path.join(self.folder, os.path.basename(url))

    def delete(self, url):
        path = self.path_for(url)
        if os.path.exists(path):
            os.remove(path)


class CloudinaryVideoStorage:
    def __init__(self, cloud_name, api_key, api_secret, folder='interview_videos'):
        cloudinary.config(
            cloud_name=cloud_name,
            api_key=api_key,
            api_secret=api_secret,
            secure=True,
        )
        self.folder = folder

    def save(self, data, candidate_id, question_id, mime_type=None):
        filename = media_filename(candidate_id, question_id, mime_type)
        public_id = filename.rsplit('.', 1)[0]
        upload_result = cloudinary.uploader.upload(
            io.BytesIO(data),
            resource_type="video",
            folder=self.folder,
            public_id=public_id,
        )
        return upload_result['secure_url']

    def delete(self, url):
        public_id = os.path.basename(url).rsplit('.', 1)[0]
        cloudinary.uploader.destroy(f"{self.folder}/{public_id}", resource_type="video")


def storage_from_config(config):
    if config.get('STORAGE_BACKEND') == 'cloudinary':
        return CloudinaryVideoStorage(
            config['CLOUDINARY_CLOUD_NAME'],
            config['CLOUDINARY_API_KEY'],
            config['CLOUDINARY_API_SECRET'],
            config.get('CLOUDINARY_FOLDER', 'interview_videos'),
        )
    return LocalVideoStorage(config['UPLOAD_FOLDER'], config.get('UPLOAD_URL_PREFIX', '/uploads/videos'))
