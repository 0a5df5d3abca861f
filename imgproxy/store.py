from typing import Protocol
from urllib import parse

from botocore.exceptions import ClientError
from mypy_boto3_s3.client import S3Client

from imgproxy.typing import HttpPath, S3Key


class BlobStore(Protocol):
  """Flat key to bytes namespace.

  `domain_name` and `uri()` locate a stored object as a CloudFront origin so
  that hits can be served without passing the body through the function.
  """

  domain_name: str

  def exists(self, key: S3Key) -> bool:
    ...

  def read(self, key: S3Key) -> bytes:
    ...

  def write(self, key: S3Key, data: bytes, content_type: str) -> None:
    ...

  def uri(self, key: S3Key) -> HttpPath:
    ...


class BlobNotFound(Exception):
  pass


def is_not_found_client_error(exception: ClientError) -> bool:
  if 'Error' not in exception.response:
    return False
  if 'Code' not in exception.response['Error']:
    return False
  return exception.response['Error']['Code'] in ['404', 'NoSuchKey']


class S3BlobStore:

  def __init__(self, s3: S3Client, domain_name: str, key_prefix: str = ''):
    self.s3 = s3
    self.domain_name = domain_name
    self.bucket = domain_name.split('.', 1)[0]
    self.key_prefix = key_prefix

  def s3_key(self, key: S3Key) -> str:
    return f'{self.key_prefix}{key}'

  def exists(self, key: S3Key) -> bool:
    try:
      self.s3.head_object(Bucket=self.bucket, Key=self.s3_key(key))
    except ClientError as e:
      if is_not_found_client_error(e):
        return False
      raise e
    return True

  def read(self, key: S3Key) -> bytes:
    try:
      res = self.s3.get_object(Bucket=self.bucket, Key=self.s3_key(key))
    except ClientError as e:
      if is_not_found_client_error(e):
        raise BlobNotFound(key) from e
      raise e

    return b''.join(res['Body'].iter_chunks())

  def write(self, key: S3Key, data: bytes, content_type: str) -> None:
    self.s3.put_object(
        Body=data,
        Bucket=self.bucket,
        ContentType=content_type,
        Key=self.s3_key(key),
    )

  def uri(self, key: S3Key) -> HttpPath:
    return HttpPath('/' + parse.quote(self.s3_key(key)))
