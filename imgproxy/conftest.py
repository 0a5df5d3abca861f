import base64
from typing import Callable, Optional
from urllib import parse

import pytest
from pyvips import Image  # type: ignore

from imgproxy.store import BlobNotFound
from imgproxy.typing import HttpPath, S3Key

# 1x1 transparent GIF
TINY_GIF = base64.b64decode('R0lGODlhAQABAIAAAP///wAAACH5BAEAAAAALAAAAAABAAEAAAICRAEAOw==')

LOADER_MAP = {
    'gifload_buffer': 'image/gif',
    'jpegload_buffer': 'image/jpeg',
    'pngload_buffer': 'image/png',
    'webpload_buffer': 'image/webp',
}


class MemoryBlobStore:
  """BlobStore keeping objects in a dict and recording every call."""

  def __init__(self, domain_name: str, fail_with: Optional[Exception] = None):
    self.domain_name = domain_name
    self.objects: dict[str, tuple[bytes, str]] = {}
    self.calls: list[tuple[str, str]] = []
    self.fail_with = fail_with

  def record(self, op: str, key: S3Key) -> None:
    self.calls.append((op, key))
    if self.fail_with is not None:
      raise self.fail_with

  def exists(self, key: S3Key) -> bool:
    self.record('exists', key)
    return key in self.objects

  def read(self, key: S3Key) -> bytes:
    self.record('read', key)
    if key not in self.objects:
      raise BlobNotFound(key)
    return self.objects[key][0]

  def write(self, key: S3Key, data: bytes, content_type: str) -> None:
    self.record('write', key)
    self.objects[key] = (data, content_type)

  def uri(self, key: S3Key) -> HttpPath:
    return HttpPath('/' + parse.quote(key))

  def writes(self) -> list[str]:
    return [key for op, key in self.calls if op == 'write']


def create_image(width: int, height: int, suffix: str, alpha: bool = False) -> bytes:
  image = Image.black(width, height, bands=3).copy(interpretation='srgb')
  if alpha:
    image = image.bandjoin(255)
  return image.write_to_buffer(suffix)


def decode_image(data: bytes) -> tuple[tuple[int, int], str]:
  image = Image.new_from_buffer(data, '')
  return ((image.get('width'), image.get('height')), LOADER_MAP[image.get('vips-loader')])


@pytest.fixture
def upload_store() -> MemoryBlobStore:
  return MemoryBlobStore('upload-bucket.s3.us-east-1.amazonaws.com')


@pytest.fixture
def proxy_store() -> MemoryBlobStore:
  return MemoryBlobStore('proxy-bucket.s3.us-east-1.amazonaws.com')


@pytest.fixture
def image_factory() -> Callable[..., bytes]:
  return create_image
