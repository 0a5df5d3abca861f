import hashlib
from typing import Tuple

import multihash

from imgproxy.originrequest.params import (
    OutputFormat,
    ProxyOptions,
    ScalingMode,
    url_origin,
    url_path
)
from imgproxy.typing import S3Key

# Path of an uploaded image on this service starts with this marker.
UPLOAD_MARKER = 'D'
URL_KEY_PREFIX = 'U'


def is_upload_url(url: str, service_url: str) -> bool:
  if url_origin(url) != url_origin(service_url):
    return False
  return url_path(url)[1:2] == UPLOAD_MARKER


def upload_key(url: str) -> S3Key:
  return S3Key(url_path(url)[1:].split('/')[0])


def url_key(url: str) -> S3Key:
  digest = hashlib.sha1(url.encode('utf-8')).digest()
  return S3Key(URL_KEY_PREFIX + multihash.to_b58_string(multihash.encode(digest, 'sha1')))


def original_key(url: str, service_url: str) -> Tuple[S3Key, bool]:
  if is_upload_url(url, service_url):
    return upload_key(url), True
  return url_key(url), False


def image_key(orig_key: S3Key, options: ProxyOptions) -> S3Key:
  if options.mode == ScalingMode.FIT and options.format == OutputFormat.MATCH:
    # Keys of the former scheme, kept so that stored variants stay reachable.
    return S3Key(f'{orig_key}_{options.width or 0}x{options.height or 0}')

  parts = [orig_key, options.mode.value, options.format.value]
  if options.width:
    parts.append(str(options.width))
  if options.height:
    parts.append(str(options.height))
  return S3Key('_'.join(parts))
