import datetime
import logging
import sys
from logging import Logger
from typing import Any

from pythonjsonlogger.json import JsonFormatter

import imgproxy
from imgproxy.typing import Request, Response

CACHE_CONTROL = 'x-res-cache-control'
DEFAULT_ERROR_MAX_AGE = '600'


class MyJsonFormatter(JsonFormatter):

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

  log = logging.getLogger(__name__)
  log_handler = logging.StreamHandler()
  log_handler.setFormatter(MyJsonFormatter())
  log_handler.setLevel(logging.DEBUG)
  log_handler.setStream(sys.stderr)
  log.addHandler(log_handler)
  log.propagate = False
  return log


log = init_logging()


def get_header(req: Request, name: str, default: str) -> str:
  if name not in req['headers']:
    return default

  if req['headers'][name][0]['value'] == '':
    return default

  return req['headers'][name][0]['value']


def get_origin_header(req: Request, name: str, default: str) -> str:
  if 'origin' not in req:
    return default

  headers = req['origin']['s3']['customHeaders']
  if name not in headers or headers[name][0]['value'] == '':
    return default

  return headers[name][0]['value']


def new_cache_control(req: Request, res: Response) -> str:
  error_max_age = int(get_origin_header(req, 'x-env-temp-resp-max-age', DEFAULT_ERROR_MAX_AGE))

  if 400 <= int(res['status']) < 600:
    return f'public,max-age={error_max_age}'

  return get_header(req, CACHE_CONTROL, f'public,max-age={error_max_age}')


def lambda_main(req: Request, res: Response) -> Response:
  cache_control = new_cache_control(req, res)
  path = req['uri'][1:]
  log.debug({
      'message': 'new cache-control',
      'cache-control': cache_control,
      'path': path,
      'status': res['status'],
  })
  res['headers']['cache-control'] = [{'key': 'Cache-Control', 'value': cache_control}]
  return res
