OCTET_STREAM = 'application/octet-stream'

GIF_MIME = 'image/gif'
JPEG_MIME = 'image/jpeg'
PNG_MIME = 'image/png'
WEBP_MIME = 'image/webp'

# Leading bytes of the formats the proxy deals with.
MAGIC_PREFIXES = [
    (b'GIF87a', GIF_MIME),
    (b'GIF89a', GIF_MIME),
    (b'\xff\xd8\xff', JPEG_MIME),
    (b'\x89PNG\r\n\x1a\n', PNG_MIME),
]


def sniff(data: bytes) -> str:
  for prefix, mime in MAGIC_PREFIXES:
    if data.startswith(prefix):
      return mime

  if len(data) >= 12 and data[:4] == b'RIFF' and data[8:12] == b'WEBP':
    return WEBP_MIME

  return OCTET_STREAM
