import base64
import dataclasses
import datetime
import json
import logging
import re
import sys
import time
from http import HTTPStatus
from logging import Logger
from typing import Any, Optional
from urllib import parse

import boto3
import httpx
from pythonjsonlogger.json import JsonFormatter

import imgproxy
from imgproxy.error import APIError, Code, InvalidConfig
from imgproxy.mime import sniff
from imgproxy.originrequest.blacklist import Blacklist
from imgproxy.originrequest.fetch import fetch_url, new_http_client
from imgproxy.originrequest.keys import image_key, original_key
from imgproxy.originrequest.params import ProxyOptions, normalize_url
from imgproxy.originrequest.transform import is_passthrough, transform_image
from imgproxy.store import BlobStore, S3BlobStore
from imgproxy.typing import (
    HttpPath,
    OriginRequestEvent,
    Request,
    ResponseResult,
    S3Key
)

CACHE_CONTROL = 'x-res-cache-control'

DEFAULT_PERM_RESP_MAX_AGE = 29030400
DEFAULT_TEMP_RESP_MAX_AGE = 600

JSON_MIME = 'application/json'

proxy_path_re = re.compile(r'^/proxy(?:/([^/]*))?(?:/[^/]*)?$')


class MyJsonFormatter(JsonFormatter):

  def __init__(self) -> None:
    super().__init__(json_ensure_ascii=False)

  def add_fields(self, log_record: Any, record: Any, message_dict: Any) -> None:
    log_record['_ts'] = datetime.datetime.now(datetime.UTC).strftime('%Y-%m-%dT%H:%M:%S.%fZ')

    if log_record.get('level'):
      log_record['level'] = log_record['level'].upper()
    else:
      log_record['level'] = record.levelname

    log_record['version'] = imgproxy.version

    super().add_fields(log_record, record, message_dict)


def init_logging() -> Logger:
  # https://stackoverflow.com/a/11548754/1160341
  logger = logging.getLogger()
  logger.setLevel(logging.DEBUG)
  for h in logger.handlers:
    logger.removeHandler(h)

  logging.getLogger('botocore').setLevel(logging.WARNING)
  logging.getLogger('httpx').setLevel(logging.INFO)
  logging.getLogger('httpcore').setLevel(logging.INFO)

  log = logging.getLogger(__name__)
  log_handler = logging.StreamHandler()
  log_handler.setFormatter(MyJsonFormatter())
  log_handler.setLevel(logging.DEBUG)
  log_handler.setStream(sys.stderr)
  log.addHandler(log_handler)
  log.propagate = False

  return log


logger = init_logging()


@dataclasses.dataclass(eq=True, frozen=True)
class FieldUpdate:
  reason: str
  res_cache_control: Optional[str] = None
  origin_domain: Optional[str] = None
  uri: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class InstantResponse:
  status: int
  b64_body: Optional[str]
  cache_control: str
  content_type: Optional[str]
  vips_us: Optional[int] = None
  img_size: Optional[int] = None


@dataclasses.dataclass(eq=True, frozen=True)
class XParams:
  region: str
  upload_domain: str
  upload_key_prefix: str
  proxy_domain: str
  proxy_key_prefix: str
  service_url: str
  max_image_size: int
  perm_resp_max_age: int
  temp_resp_max_age: int
  basedir: str
  blacklist: str


def get_header(req: Request, name: str) -> str:
  return req['origin']['s3']['customHeaders'][name][0]['value']


def get_header_or(req: Request, name: str, default: str = '') -> str:
  return (get_header(req, name) if name in req['origin']['s3']['customHeaders'] else default)


def json_dump(obj: Any) -> str:
  return json.dumps(obj, separators=(',', ':'), sort_keys=True)


def encode_body(body: bytes) -> str:
  return base64.b64encode(body).decode()


class ProxyServer:
  instances: dict[XParams, 'ProxyServer'] = {}

  def __init__(
      self,
      log: logging.Logger,
      upload_store: BlobStore,
      proxy_store: BlobStore,
      http: httpx.Client,
      service_url: str,
      max_image_size: int,
      perm_resp_max_age: int,
      temp_resp_max_age: int,
      blacklist: Blacklist,
      basedir: str = '',
  ):
    self.log = log
    self.upload_store = upload_store
    self.proxy_store = proxy_store
    self.http = http
    self.service_url = service_url
    self.max_image_size = max_image_size
    self.perm_resp_max_age = perm_resp_max_age
    self.temp_resp_max_age = temp_resp_max_age
    self.blacklist = blacklist
    self.basedir = basedir
    self.log_context = {'path': '', 'qstr': ''}
    self.cache_control_perm = f'public,max-age={self.perm_resp_max_age},immutable'
    self.cache_control_temp = f'public,max-age={self.temp_resp_max_age}'

  @classmethod
  def from_lambda(cls, log: Logger, req: Request) -> 'ProxyServer':
    try:
      region = get_header(req, 'x-env-region')
      upload_domain = req['origin']['s3']['domainName']
      upload_key_prefix = get_header_or(req, 'x-env-upload-key-prefix')
      proxy_domain = get_header(req, 'x-env-proxy-domain')
      proxy_key_prefix = get_header_or(req, 'x-env-proxy-key-prefix')
      service_url = normalize_url(get_header(req, 'x-env-service-url'))
      max_image_size = int(get_header(req, 'x-env-max-image-size'))
      perm_resp_max_age = int(
          get_header_or(req, 'x-env-perm-resp-max-age', str(DEFAULT_PERM_RESP_MAX_AGE)))
      temp_resp_max_age = int(
          get_header_or(req, 'x-env-temp-resp-max-age', str(DEFAULT_TEMP_RESP_MAX_AGE)))
      basedir = get_header_or(req, 'x-env-basedir')
      blacklist = get_header_or(req, 'x-env-blacklist')
    except KeyError as e:
      log.error({
          'message': 'environment variable not found',
          'key': str(e),
      })
      raise InvalidConfig(f'environment variable not found: {e}') from e
    except ValueError as e:
      log.error({
          'message': 'invalid environment variable',
          'reason': str(e),
      })
      raise InvalidConfig(f'invalid environment variable: {e}') from e

    server_key = XParams(
        region=region,
        upload_domain=upload_domain,
        upload_key_prefix=upload_key_prefix,
        proxy_domain=proxy_domain,
        proxy_key_prefix=proxy_key_prefix,
        service_url=service_url,
        max_image_size=max_image_size,
        perm_resp_max_age=perm_resp_max_age,
        temp_resp_max_age=temp_resp_max_age,
        basedir=basedir,
        blacklist=blacklist)

    if server_key not in cls.instances:
      s3 = boto3.client('s3', region_name=region)
      cls.instances[server_key] = cls(
          log=log,
          upload_store=S3BlobStore(s3, upload_domain, upload_key_prefix),
          proxy_store=S3BlobStore(s3, proxy_domain, proxy_key_prefix),
          http=new_http_client(),
          service_url=service_url,
          max_image_size=max_image_size,
          perm_resp_max_age=perm_resp_max_age,
          temp_resp_max_age=temp_resp_max_age,
          blacklist=Blacklist.load(blacklist),
          basedir=basedir)

    return cls.instances[server_key]

  def log_warning(self, message: str, dict: dict[str, Any]) -> None:
    self.log.warning({
        'message': message,
        **self.log_context,
        **dict,
    })

  def log_debug(self, message: str, dict: dict[str, Any]) -> None:
    self.log.debug({
        'message': message,
        **self.log_context,
        **dict,
    })

  def log_error(self, message: str, dict: dict[str, Any]) -> None:
    self.log.error({
        'message': message,
        **self.log_context,
        **dict,
    })

  def error_response(self, error: APIError) -> InstantResponse:
    return InstantResponse(
        status=error.status,
        b64_body=encode_body(json_dump(error.to_json()).encode()),
        cache_control=self.cache_control_temp,
        content_type=JSON_MIME)

  def image_response(
      self,
      body: bytes,
      content_type: str,
      vips_us: Optional[int] = None,
  ) -> InstantResponse:
    return InstantResponse(
        status=HTTPStatus.OK,
        b64_body=encode_body(body),
        cache_control=self.cache_control_perm,
        content_type=content_type,
        vips_us=vips_us,
        img_size=len(body))

  def url_param(self, path: HttpPath) -> str:
    m = proxy_path_re.match(path)
    if m is None:
      raise APIError(Code.NOT_FOUND)

    encoded = m[1]
    if not encoded:
      raise APIError(Code.INVALID_PARAM, 'Missing parameter: url', info={'param': 'url'})

    return parse.unquote(encoded)

  def read_original(self, store: BlobStore, key: S3Key) -> Optional[tuple[bytes, str]]:
    if not store.exists(key):
      return None

    data = store.read(key)
    return (data, sniff(data))

  def proxy(
      self,
      method: str,
      path: HttpPath,
      qs: dict[str, list[str]],
  ) -> FieldUpdate | InstantResponse:
    APIError.check(method == 'GET', Code.INVALID_METHOD)

    options = ProxyOptions.from_request(self.url_param(path), qs)

    # Refuse to proxy images on the blacklist before touching any store.
    APIError.check(options.url not in self.blacklist, Code.BLACKLISTED)

    orig_key, is_upload = original_key(options.url, self.service_url)
    # Uploads are read from the upload store directly to avoid keeping two copies.
    orig_store = self.upload_store if is_upload else self.proxy_store
    img_key = image_key(orig_key, options)

    if self.proxy_store.exists(img_key):
      self.log_debug('resized found', {'store': 'resized', 'key': img_key})
      return FieldUpdate(
          reason='resized found',
          res_cache_control=self.cache_control_perm,
          origin_domain=self.proxy_store.domain_name,
          uri=self.proxy_store.uri(img_key))

    original = self.read_original(orig_store, orig_key)
    if original is not None:
      self.log_debug('original found', {'store': 'original', 'key': orig_key})
      data, content_type = original
    else:
      APIError.check(not is_upload, Code.NOT_FOUND, 'Upload not found')

      self.log_debug('fetching image', {'store': 'fetch', 'url': options.url})
      fetched = fetch_url(self.http, options.url, self.max_image_size)
      data, content_type = fetched.data, fetched.content_type

      self.log_debug('storing original', {'key': orig_key, 'size': len(data)})
      orig_store.write(orig_key, data, content_type)

    if is_passthrough(content_type, options):
      return self.image_response(data, content_type)

    start_ns = time.time_ns()
    converted, converted_type = transform_image(data, content_type, options)
    vips_us = (time.time_ns() - start_ns) // 1000

    self.log_debug('storing converted', {'key': img_key, 'size': len(converted)})
    self.proxy_store.write(img_key, converted, converted_type)

    return self.image_response(converted, converted_type, vips_us)

  def process(
      self,
      method: str,
      path: HttpPath,
      qs: dict[str, list[str]],
  ) -> FieldUpdate | InstantResponse:
    if self.basedir != '':
      if not path.startswith(self.basedir):
        self.log_error('path without basedir passed', {'basedir': self.basedir})
      else:
        path = HttpPath(path[len(self.basedir):])

    try:
      return self.proxy(method, path, qs)
    except APIError as e:
      self.log_warning(
          'request rejected', {
              'code': e.code.value,
              'reason': str(e),
              'cause': None if e.cause is None else repr(e.cause),
          })
      return self.error_response(e)
    except Exception as e:
      self.log_error('error during process()', {'reason': repr(e)})
      return self.error_response(APIError(Code.INTERNAL_ERROR))

  def set_log_context(self, path: HttpPath, qstr: str) -> None:
    self.log_context = {'path': str(path), 'qstr': qstr}


def lambda_main(event: OriginRequestEvent) -> Request | ResponseResult:
  req = event['Records'][0]['cf']['request']

  # Set default value
  req['headers'][CACHE_CONTROL] = [{'value': ''}]

  server = ProxyServer.from_lambda(logger, req)

  path = req['uri']
  qstr = req['querystring']

  server.set_log_context(path, qstr)
  result = server.process(req['method'], path, parse.parse_qs(qstr, keep_blank_values=True))

  if isinstance(result, FieldUpdate):
    if result.origin_domain is not None:
      req['origin']['s3']['domainName'] = result.origin_domain
      req['headers']['host'] = [{'key': 'Host', 'value': result.origin_domain}]

    if result.uri is not None:
      req['uri'] = HttpPath(result.uri)

    # Drop the proxy parameters, the stored object is addressed by uri alone.
    req['querystring'] = ''

    if result.res_cache_control is not None:
      req['headers'][CACHE_CONTROL] = [
          {
              'value': result.res_cache_control,
          },
      ]

    server.log_debug(
        'done', {
            'uri': req['uri'],
            'origin_domain': req['origin']['s3']['domainName'],
            'res_cache_control': req['headers'][CACHE_CONTROL][0]['value'],
            'reason': result.reason,
        })

    return req
  elif isinstance(result, InstantResponse):
    response_result: ResponseResult = {
        'status': str(int(result.status)),
        'headers': {
            'cache-control': [{
                'value': result.cache_control,
            }],
        },
    }

    if result.content_type is not None:
      response_result['headers']['content-type'] = [{'value': result.content_type}]

    if result.b64_body is not None:
      response_result['body'] = result.b64_body
      response_result['bodyEncoding'] = 'base64'

    server.log_debug(
        'responded', {
            'uri': req['uri'],
            'status': int(result.status),
            'cache_control': result.cache_control,
            'content_type': result.content_type,
            'img_size': result.img_size,
            'vips_us': result.vips_us,
        })

    return response_result
  else:
    raise Exception('system error')
