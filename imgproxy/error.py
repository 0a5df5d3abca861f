from enum import Enum
from http import HTTPStatus
from typing import Any, Optional


class Code(Enum):
  INVALID_METHOD = 'InvalidMethod'
  INVALID_PARAM = 'InvalidParam'
  INVALID_PROXY_URL = 'InvalidProxyUrl'
  BLACKLISTED = 'Blacklisted'
  UPSTREAM_ERROR = 'UpstreamError'
  PAYLOAD_TOO_LARGE = 'PayloadTooLarge'
  INVALID_IMAGE = 'InvalidImage'
  NOT_FOUND = 'NotFound'
  INTERNAL_ERROR = 'InternalError'

  @property
  def status(self) -> HTTPStatus:
    return STATUS_MAP[self]


STATUS_MAP = {
    Code.INVALID_METHOD: HTTPStatus.METHOD_NOT_ALLOWED,
    Code.INVALID_PARAM: HTTPStatus.BAD_REQUEST,
    Code.INVALID_PROXY_URL: HTTPStatus.BAD_REQUEST,
    Code.BLACKLISTED: HTTPStatus.UNAVAILABLE_FOR_LEGAL_REASONS,
    Code.UPSTREAM_ERROR: HTTPStatus.BAD_GATEWAY,
    Code.PAYLOAD_TOO_LARGE: HTTPStatus.REQUEST_ENTITY_TOO_LARGE,
    Code.INVALID_IMAGE: HTTPStatus.BAD_REQUEST,
    Code.NOT_FOUND: HTTPStatus.NOT_FOUND,
    Code.INTERNAL_ERROR: HTTPStatus.INTERNAL_SERVER_ERROR,
}


class APIError(Exception):
  """Failure of a proxy request.

  Every rejection path raises this with a code that decides the HTTP status
  of the generated response. `cause` keeps the underlying exception, if any.
  """

  def __init__(
      self,
      code: Code = Code.INTERNAL_ERROR,
      message: Optional[str] = None,
      cause: Optional[BaseException] = None,
      info: Optional[dict[str, Any]] = None,
  ):
    super().__init__(message or code.value)
    self.code = code
    self.message = message
    self.cause = cause
    self.info = info or {}

  @property
  def status(self) -> HTTPStatus:
    return self.code.status

  @classmethod
  def check(cls, cond: Any, code: Code, message: Optional[str] = None) -> None:
    if not cond:
      raise cls(code, message)

  def to_json(self) -> dict[str, Any]:
    info = dict(self.info)
    if self.message is not None:
      info['msg'] = self.message
    if self.cause is not None:
      info['cause'] = str(self.cause)

    error: dict[str, Any] = {'name': self.code.value}
    if info:
      error['info'] = info
    return {'error': error}


class InvalidConfig(Exception):
  pass
