"""
Image fetch for the *-with-images templates.

Remote images are fetched with requests, downscaled with Pillow and handed to
reportlab as an ImageReader. Any failure is logged and returns None so the
renderer draws its "No Image" placeholder instead.

image_url comes from user input, so only two sources are read:
  - http(s) URLs whose host resolves to public addresses only, checked again
    on every redirect hop
  - paths inside MEDIA_DIR (relative, or absolute under it)
"""

import io
import os
import socket
import logging
import ipaddress
from urllib.parse import urljoin, urlparse

import requests
from PIL import Image, UnidentifiedImageError
from reportlab.lib.utils import ImageReader

from proposaldesk.core import paths

log = logging.getLogger("proposaldesk.images")

MAX_DIM = 800
MAX_REDIRECTS = 3
HEADERS = {
    "User-Agent": "ProposalDesk/1.0 (+document renderer)",
    "Accept": "image/*",
}


def _downscale(raw: bytes, max_dim: int) -> ImageReader:
    img = Image.open(io.BytesIO(raw))
    img.load()
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    img.thumbnail((max_dim, max_dim))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    buf.seek(0)
    return ImageReader(buf)


def is_public_host(host: str) -> bool:
    """True when every address ``host`` resolves to is globally routable."""
    if not host:
        return False
    try:
        infos = socket.getaddrinfo(host, None)
    except OSError:
        return False
    for info in infos:
        addr = ipaddress.ip_address(info[4][0].split("%")[0])
        if not addr.is_global:
            return False
    return bool(infos)


def media_path(path: str, media_dir: str = None):
    """Absolute path for ``path`` if it stays inside the media dir, else None."""
    root = os.path.realpath(media_dir or paths.MEDIA_DIR)
    full = os.path.realpath(os.path.join(root, path))
    if os.path.commonpath([root, full]) != root:
        return None
    return full


def _fetch(url: str, timeout: float):
    for _ in range(MAX_REDIRECTS + 1):
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not is_public_host(parsed.hostname):
            log.warning("Image host not allowed: %s", url[:80])
            return None
        resp = requests.get(url, headers=HEADERS, timeout=timeout, allow_redirects=False)
        if resp.is_redirect:
            url = urljoin(url, resp.headers.get("Location", ""))
            continue
        resp.raise_for_status()
        return resp.content
    log.warning("Image fetch gave up after %d redirects: %s", MAX_REDIRECTS, url[:80])
    return None


def load_image(url: str, timeout: float = 10, max_dim: int = MAX_DIM, media_dir: str = None):
    """ImageReader for ``url`` (public http(s) or a file under MEDIA_DIR), or None."""
    if not url:
        return None
    try:
        if url.startswith(("http://", "https://")):
            raw = _fetch(url, timeout)
        else:
            path = media_path(url, media_dir)
            if path is None or not os.path.isfile(path):
                log.warning("Image %s is not a URL or a file under the media dir", url[:80])
                return None
            with open(path, "rb") as f:
                raw = f.read()
        if raw is None:
            return None
        return _downscale(raw, max_dim)
    except requests.exceptions.Timeout:
        log.warning("Image fetch timed out after %ss: %s", timeout, url[:80])
    except (requests.exceptions.RequestException, OSError, UnidentifiedImageError) as e:
        log.warning("Image load failed for %s: %s", url[:80], e)
    return None


def load_images(items, timeout: float = 10, max_dim: int = MAX_DIM) -> dict:
    """{item id: ImageReader | None} for every item that carries an image_url."""
    images = {}
    for item in items or []:
        url = item.get("image_url")
        if url:
            images[str(item.get("id"))] = load_image(url, timeout, max_dim)
    return images
