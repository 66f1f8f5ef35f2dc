"""공통 Pydantic 요청/응답 스키마 정의.

Common Pydantic request/response schema definitions.
Mobile clients speak camelCase JSON, so every schema derives from
`CamelModel`: fields are snake_case in Python and camelCase on the wire.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """camelCase 별칭 기반 모델 (Base model with camelCase aliases).

    populate_by_name=True: 파이썬 필드명으로도 생성 가능
    (Instances can also be built with the snake_case names.)
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageResponse(CamelModel):
    """일반 메시지 응답 스키마.

    Generic success response with a message.

    Attributes:
        success: 성공 여부 (Always True on 2xx)
        message: 응답 메시지 (Response message text)
    """

    success: bool = True
    message: str


class ErrorResponse(CamelModel):
    """세션 오류 응답 — `{"success": false, "message", "code"}`."""

    success: bool = False
    message: str
    code: str
