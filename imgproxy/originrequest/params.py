import dataclasses
import re
from enum import Enum
from typing import Optional, Self

import base58
from ada_url import URL

from imgproxy.error import APIError, Code
from imgproxy.mime import GIF_MIME, JPEG_MIME, PNG_MIME, WEBP_MIME

HTTP_PROTOCOLS = ('http:', 'https:')

leading_int_re = re.compile(r'^\s*([+-]?\d+)')


class ScalingMode(Enum):
  # Scale to cover the width x height box, cropping the overflow equally on both sides.
  COVER = 'Cover'
  # Scale to fit into the width x height box.
  FIT = 'Fit'

  @classmethod
  def from_query(cls, value: Optional[str]) -> 'ScalingMode':
    match value:
      case None | 'fit':
        return cls.FIT
      case 'cover':
        return cls.COVER
      case _:
        raise APIError(Code.INVALID_PARAM, 'Invalid scaling mode')


class OutputFormat(Enum):
  MATCH = 'Match'
  JPEG = 'JPEG'
  PNG = 'PNG'
  WEBP = 'WEBP'

  @classmethod
  def from_query(cls, value: Optional[str]) -> 'OutputFormat':
    match value:
      case None | 'match':
        return cls.MATCH
      case 'jpeg' | 'jpg':
        return cls.JPEG
      case 'png':
        return cls.PNG
      case 'webp':
        return cls.WEBP
      case _:
        raise APIError(Code.INVALID_PARAM, 'Invalid output format')

  def mime(self) -> str:
    if self == OutputFormat.JPEG:
      return JPEG_MIME
    if self == OutputFormat.PNG:
      return PNG_MIME
    if self == OutputFormat.WEBP:
      return WEBP_MIME
    raise ValueError('Match has no mime type of its own')


def mime_to_format(mime: str) -> Optional[OutputFormat]:
  match mime:
    case 'image/jpeg':
      return OutputFormat.JPEG
    case 'image/png':
      return OutputFormat.PNG
    case 'image/webp':
      return OutputFormat.WEBP
    case _:
      return None


def is_gif(mime: str) -> bool:
  return mime == GIF_MIME


def parse_url(s: str) -> URL:
  """Parse an absolute http(s) URL the way browsers do (WHATWG URL Standard).

  Raises ValueError for anything that is not a valid absolute http(s) URL.
  """
  # Raises ValueError for invalid input.
  u = URL(s)
  if u.protocol not in HTTP_PROTOCOLS:
    raise ValueError(f'unsupported scheme: {u.protocol!r}')
  return u


def normalize_url(s: str) -> str:
  """Return the WHATWG serialization of an absolute http(s) URL.

  Stored originals are keyed by a hash of this string, so it must not change
  between releases: scheme and host are lower-cased, default ports dropped,
  dot segments resolved and reserved characters percent-encoded.
  """
  return parse_url(s).href


def url_origin(url: str) -> tuple[str, str, str]:
  u = parse_url(url)
  return (u.protocol, u.hostname, u.port)


def url_path(url: str) -> str:
  return parse_url(url).pathname


def decode_url(encoded: str) -> str:
  try:
    return normalize_url(base58.b58decode(encoded).decode('utf-8'))
  except ValueError as e:
    # UnicodeDecodeError is a ValueError too.
    raise APIError(Code.INVALID_PROXY_URL, cause=e)


def parse_size(qs: dict[str, list[str]], name: str) -> Optional[int]:
  values = qs.get(name)
  if not values:
    return None

  m = leading_int_re.match(values[0])
  if m is None:
    return None

  size = int(m[1])
  if size < 0:
    raise APIError(Code.INVALID_PARAM, f'Invalid {name}')

  return size or None


def first(qs: dict[str, list[str]], name: str) -> Optional[str]:
  values = qs.get(name)
  return values[0] if values else None


@dataclasses.dataclass(eq=True, frozen=True)
class ProxyOptions:
  url: str
  width: Optional[int]
  height: Optional[int]
  mode: ScalingMode
  format: OutputFormat

  @classmethod
  def from_request(cls, encoded_url: str, qs: dict[str, list[str]]) -> Self:
    url = decode_url(encoded_url)
    return cls(
        url=url,
        width=parse_size(qs, 'width'),
        height=parse_size(qs, 'height'),
        mode=ScalingMode.from_query(first(qs, 'mode')),
        format=OutputFormat.from_query(first(qs, 'format')))

  @property
  def has_size(self) -> bool:
    return self.width is not None or self.height is not None
