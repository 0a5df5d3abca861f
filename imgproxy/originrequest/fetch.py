import dataclasses
import time
from typing import Callable

import httpx

import imgproxy
from imgproxy.error import APIError, Code
from imgproxy.mime import GIF_MIME, JPEG_MIME, PNG_MIME, WEBP_MIME, sniff

CONNECT_TIMEOUT = 5.0
# Applies to every network read, including the wait for the response headers.
RESPONSE_TIMEOUT = 5.0
READ_TIMEOUT = 60.0
MAX_REDIRECTS = 5

USER_AGENT = f'imgproxy/{imgproxy.version}'

# Image types allowed to be proxied and resized.
ACCEPTED_CONTENT_TYPES = [
    GIF_MIME,
    JPEG_MIME,
    PNG_MIME,
    WEBP_MIME,
]


@dataclasses.dataclass(frozen=True)
class FetchResult:
  data: bytes
  content_type: str


def new_http_client() -> httpx.Client:
  return httpx.Client(
      timeout=httpx.Timeout(RESPONSE_TIMEOUT, connect=CONNECT_TIMEOUT),
      follow_redirects=True,
      max_redirects=MAX_REDIRECTS,
      headers={'user-agent': USER_AGENT})


def declared_length(res: httpx.Response) -> int:
  value = res.headers.get('content-length', '')
  return int(value) if value.isdigit() else 0


def fetch_url(
    client: httpx.Client,
    url: str,
    max_size: int,
    clock: Callable[[], float] = time.monotonic,
) -> FetchResult:
  deadline = clock() + READ_TIMEOUT
  chunks: list[bytes] = []
  size = 0

  try:
    with client.stream('GET', url) as res:
      if max_size < declared_length(res):
        raise APIError(Code.PAYLOAD_TOO_LARGE)

      if not res.is_success:
        raise APIError(Code.INVALID_IMAGE, info={'status': res.status_code})

      for chunk in res.iter_bytes():
        size += len(chunk)
        if max_size < size:
          raise APIError(Code.PAYLOAD_TOO_LARGE)
        if deadline < clock():
          raise APIError(Code.UPSTREAM_ERROR, 'read timeout')
        chunks.append(chunk)
  except httpx.HTTPError as e:
    raise APIError(Code.UPSTREAM_ERROR, cause=e)

  data = b''.join(chunks)
  content_type = sniff(data)
  if content_type not in ACCEPTED_CONTENT_TYPES:
    raise APIError(Code.INVALID_IMAGE, info={'content_type': content_type})

  return FetchResult(data=data, content_type=content_type)
