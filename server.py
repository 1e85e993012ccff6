#!/usr/bin/env python3

import logging
import os
import threading
from functools import wraps
from socketserver import ThreadingMixIn
from urllib.parse import quote
from wsgiref.simple_server import WSGIServer

from bottle import Bottle, HTTPResponse, Response, abort, redirect, request, response, static_file

from mediacache.config import MediaConfig
from mediacache.errors import AssetNotFound, MediaError
from mediacache.service import MediaService

app = application = Bottle()

config = MediaConfig.from_env()

# Configure logging
level = logging.getLevelName(config.log_level)
logging.basicConfig(level=level, format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')
logger = logging.getLogger('server')

VIDEO_MIME = {
    '.mp4': 'video/mp4',
    '.mov': 'video/quicktime',
    '.mkv': 'video/x-matroska',
    '.webm': 'video/webm',
    '.avi': 'video/x-msvideo',
    '.rm': 'application/vnd.rn-realmedia',
    '.rmvb': 'application/vnd.rn-realmedia-vbr',
}

RANDOM_IMAGE_TRIES = 10

_service = None
_service_lock = threading.Lock()


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """Thread per request, as under uWSGI with threads enabled."""
    daemon_threads = True


def get_service():
    global _service
    with _service_lock:
        if _service is None:
            _service = MediaService(config)
        return _service


def log(msg):
    logger.debug(msg)


def allow_cross_origin(func):
    """Decorate a view function to allow cross domain access."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            result = func(*args, **kwargs)
        except HTTPResponse as r:
            r.set_header('Access-Control-Allow-Origin', '*')
            raise
        (result if isinstance(result, Response) else response) \
            .set_header('Access-Control-Allow-Origin', '*')
        return result
    return wrapper


def media_errors(message):
    """Decorate a view function to map media failures onto HTTP statuses."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except AssetNotFound as e:
                log(f"Not found: {e}")
                abort(404, str(e))
            except MediaError as e:
                logger.error(f"{message}: {e}")
                abort(500, message)
        return wrapper
    return decorator


def serve_path(file_path, mimetype='auto'):
    """static_file wants a root and a name; it also handles Range requests."""
    root, name = os.path.split(file_path)
    return static_file(name, root=root, mimetype=mimetype)


def parse_positive_int(value, default=None):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def start_background_transcode(rel_path):
    service = get_service()
    if service.transcoder.is_pending(rel_path):
        return
    thread = threading.Thread(
        target=service.ensure_transcode,
        args=(rel_path,),
        name=f"transcode:{rel_path}",
        daemon=True,
    )
    thread.start()


@app.route('/api/folders')
@allow_cross_origin
def list_folders():
    """Paginated list of top-level folders."""
    page = parse_positive_int(request.query.page, 1)
    limit = parse_positive_int(request.query.limit, 50)

    folders = get_service().library.list_folders()
    start = (page - 1) * limit
    end = page * limit
    return {
        'folders': folders[start:end],
        'total': len(folders),
        'hasMore': end < len(folders),
    }


@app.route('/api/folders/<path:path>')
@allow_cross_origin
@media_errors('Failed to list content')
def list_folder(path):
    """Images, videos and sub-folders of one folder."""
    listing = get_service().library.list_directory(path)
    return {
        'images': listing.images,
        'videos': listing.videos,
        'folders': listing.folders,
    }


@app.route('/api/thumbnail/<path:path>')
@allow_cross_origin
@media_errors('Error generating thumbnail')
def folder_thumbnail(path):
    """
    Cover for a folder tree: a random image's thumbnail, else a random
    video's poster frame.
    """
    service = get_service()
    image_path = service.library.find_random_image(path)
    if image_path:
        redirect(f"/api/image/{quote(image_path)}?width=300")

    video_path = service.library.find_random_video(path)
    if video_path is None:
        abort(404, 'No media in folder tree')
    thumb = service.ensure_thumbnail(video_path)
    if thumb is None:
        response.status = 204
        return ''
    return serve_path(thumb, mimetype='image/jpeg')


@app.route('/api/random-image')
@allow_cross_origin
def random_image():
    """A random image from a random top-level folder: {folder, image}."""
    library = get_service().library
    folders = library.list_folders()
    if not folders:
        response.status = 404
        return {'error': 'No folders found'}

    for _ in range(RANDOM_IMAGE_TRIES):
        image_path = library.find_random_image(library.rng.choice(folders))
        if image_path:
            folder, _, name = image_path.rpartition('/')
            return {'folder': folder, 'image': name}

    response.status = 404
    return {'error': 'Could not find any images'}


@app.route('/api/image/<path:path>')
@allow_cross_origin
@media_errors('Error processing image')
def image(path):
    """Resized JPEG; ?width=N for a thumbnail, no width for the full view."""
    width = parse_positive_int(request.query.width)
    cached = get_service().ensure_variant(path, width)
    return serve_path(cached, mimetype='image/jpeg')


@app.route('/api/video-thumbnail/<path:path>')
@allow_cross_origin
def video_thumbnail(path):
    """Poster frame, or 204 when none can be produced."""
    thumb = get_service().ensure_thumbnail(path)
    if thumb is None:
        response.status = 204
        return ''
    return serve_path(thumb, mimetype='image/jpeg')


@app.route('/api/video/<path:path>')
@allow_cross_origin
@media_errors('Error serving video')
def video(path):
    """
    The HEVC transcode when it exists; otherwise the original, while a
    transcode is started in the background.
    """
    service = get_service()
    original = service.paths.resolve_original(path)
    if not os.path.isfile(original):
        raise AssetNotFound(f"Video not found: {path}")

    transcoded = service.transcoder.existing(path)
    if transcoded:
        return serve_path(transcoded, mimetype='video/mp4')

    start_background_transcode(path)
    ext = os.path.splitext(original)[1].lower()
    return serve_path(original, mimetype=VIDEO_MIME.get(ext, 'application/octet-stream'))


@app.route('/api/rotate', method='POST')
@allow_cross_origin
@media_errors('Failed to rotate image')
def rotate():
    """Rotate an image 90 degrees clockwise. Body: {folderName, imageName}."""
    body = request.json or {}
    folder = body.get('folderName') or ''
    name = body.get('imageName')
    if not name:
        abort(400, 'imageName is required')
    get_service().rotate(f"{folder}/{name}" if folder else name)
    return {'success': True}


@app.route('/api/original/<path:path>')
@allow_cross_origin
@media_errors('Error serving original file')
def original(path):
    """The untouched original file."""
    original_path = get_service().paths.resolve_original(path)
    if not os.path.isfile(original_path):
        raise AssetNotFound(f"File not found: {path}")
    return serve_path(original_path)


@app.route('/')
def main_page():
    log("Hit root")
    return 'Media cache server'


if __name__ == '__main__':
    from bottle import run
    for problem in config.validate():
        logger.error(problem)
    log("running server...")

    run(app=application,
        host='0.0.0.0',
        port=config.port,
        server='wsgiref',
        server_class=ThreadingWSGIServer,
    )

    log("Exiting.")
