from aws_lambda_powertools.utilities.typing import LambdaContext

from imgproxy.originrequest import index as originrequest
from imgproxy.originresponse import index as originresponse
from imgproxy.typing import (
    OriginRequestEvent,
    OriginResponseEvent,
    Request,
    Response,
    ResponseResult
)


def origin_request_lambda_handler(
    event: OriginRequestEvent,
    _: LambdaContext,
) -> Request | ResponseResult:
  # # For debugging
  # print('event:')
  # print(json.dumps(event))

  ret = originrequest.lambda_main(event)

  # # For debugging
  # print('return:')
  # print(json.dumps(ret))

  return ret


def origin_response_lambda_handler(
    event: OriginResponseEvent,
    _: LambdaContext,
) -> Response:
  cf = event['Records'][0]['cf']
  return originresponse.lambda_main(cf['request'], cf['response'])
