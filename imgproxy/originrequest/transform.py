import dataclasses
from typing import Any, Optional, Tuple

from pyvips import Error as VipsError  # type: ignore
from pyvips import Image  # type: ignore

from imgproxy.error import APIError, Code
from imgproxy.mime import GIF_MIME
from imgproxy.originrequest.params import (
    OutputFormat,
    ProxyOptions,
    ScalingMode,
    is_gif,
    mime_to_format
)

# Requested sizes are clamped to this to bound the processing cost.
MAX_DIMENSION = 8000

JPEG_QUALITY = 85
PNG_COMPRESSION = 9
WEBP_ALPHA_QUALITY = 100

FLATTEN_COLOR = [255.0, 255.0, 255.0]


@dataclasses.dataclass(eq=True, frozen=True)
class Size:
  width: int
  height: int

  @classmethod
  def from_image(cls, image: Image) -> 'Size':
    return cls(image.get('width'), image.get('height'))


@dataclasses.dataclass(frozen=True)
class Area:
  x: int
  y: int
  width: int
  height: int

  def to_size(self) -> Size:
    return Size(self.width, self.height)


@dataclasses.dataclass(frozen=True)
class Encoder:
  extension: str
  mime: str
  options: dict[str, Any]


ENCODERS = {
    OutputFormat.JPEG: Encoder('.jpg', OutputFormat.JPEG.mime(), {'Q': JPEG_QUALITY}),
    OutputFormat.PNG: Encoder('.png', OutputFormat.PNG.mime(), {'compression': PNG_COMPRESSION}),
    OutputFormat.WEBP: Encoder(
        '.webp', OutputFormat.WEBP.mime(), {'alpha_q': WEBP_ALPHA_QUALITY}),
}

GIF_ENCODER = Encoder('.gif', GIF_MIME, {})


def is_passthrough(content_type: str, options: ProxyOptions) -> bool:
  # Resizing an animated GIF leaves only its first frame, so a GIF requested
  # at its original size is served as is.
  return (
      is_gif(content_type) and not options.has_size and options.format == OutputFormat.MATCH and
      options.mode == ScalingMode.FIT)


def clamp(size: Optional[int]) -> Optional[int]:
  return None if size is None else min(size, MAX_DIMENSION)


def ceildiv(a: int, b: int) -> int:
  return -(a // -b)


def rounddiv(a: int, b: int) -> int:
  return (2 * a + b) // (2 * b)


def split_margin(margin: int) -> Tuple[int, int]:
  q, mod = divmod(margin, 2)
  return (q, q + mod)


def scale_to_width(original: Size, width: int) -> Size:
  return Size(width, max(1, rounddiv(original.height * width, original.width)))


def scale_to_height(original: Size, height: int) -> Size:
  return Size(max(1, rounddiv(original.width * height, original.height)), height)


def calc_resize_to(
    original: Size,
    width: Optional[int],
    height: Optional[int],
    mode: ScalingMode,
) -> Tuple[Size, Size]:
  """Return the size to scale the image to and the final size after cropping."""
  match (width, height):
    case (None, None):
      return (original, original)
    case (int() as w, None):
      resized = scale_to_width(original, w)
      return (resized, resized)
    case (None, int() as h):
      resized = scale_to_height(original, h)
      return (resized, resized)
    case (int() as w, int() as h):
      # Whether the box is relatively wider than the image.
      wider = original.width * h <= w * original.height
      if mode == ScalingMode.FIT:
        resized = scale_to_height(original, h) if wider else scale_to_width(original, w)
        return (resized, resized)
      if wider:
        resized = Size(w, max(h, ceildiv(original.height * w, original.width)))
      else:
        resized = Size(max(w, ceildiv(original.width * h, original.height)), h)
      return (resized, Size(w, h))
    case _:
      raise Exception('system error')


def calc_crop(resized: Size, target: Size) -> Area:
  left, _ = split_margin(resized.width - target.width)
  top, _ = split_margin(resized.height - target.height)
  return Area(left, top, target.width, target.height)


def select_encoder(content_type: str, output_format: OutputFormat) -> Encoder:
  if output_format != OutputFormat.MATCH:
    return ENCODERS[output_format]

  if is_gif(content_type):
    return GIF_ENCODER

  source_format = mime_to_format(content_type)
  if source_format is None:
    raise APIError(Code.INVALID_IMAGE, info={'content_type': content_type})
  return ENCODERS[source_format]


def transform_image(data: bytes, content_type: str, options: ProxyOptions) -> Tuple[bytes, str]:
  encoder = select_encoder(content_type, options.format)

  try:
    image: Image = Image.new_from_buffer(data, '')
    original = Size.from_image(image)
    APIError.check(0 < original.width and 0 < original.height, Code.INVALID_IMAGE)

    resized, target = calc_resize_to(
        original, clamp(options.width), clamp(options.height), options.mode)

    if resized != original:
      image = image.resize(
          resized.width / original.width, vscale=resized.height / original.height)

    actual = Size.from_image(image)
    if actual != target:
      croparea = calc_crop(actual, target)
      image = image.extract_area(croparea.x, croparea.y, croparea.width, croparea.height)

    if options.format == OutputFormat.JPEG and image.hasalpha():
      image = image.flatten(background=FLATTEN_COLOR)

    return (image.write_to_buffer(encoder.extension, **encoder.options), encoder.mime)
  except VipsError as e:
    raise APIError(Code.INVALID_IMAGE, cause=e)
