from __future__ import annotations

from dataclasses import dataclass
from typing import Any

STAGE_TRANSPORT = "transport"
STAGE_PROTOCOL = "protocol"
STAGE_APPLICATION = "application"
STAGE_VALIDATION = "validation"
STAGE_CONFIGURATION = "configuration"

# 같은 요청을 다시 보내면 성공할 수 있는 JSON-RPC 오류 코드예요.
RETRYABLE_SERVER_ERROR_CODES = frozenset({-32603, -32001})


@dataclass(slots=True, frozen=True)
class ErrorEnvelope:
    error_code: str
    message: str
    stage: str
    retryable: bool


class DomainError(Exception):
    stage = STAGE_APPLICATION

    def __init__(self, error_code: str, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.retryable = retryable


class ConfigurationError(DomainError):
    stage = STAGE_CONFIGURATION

    def __init__(self, message: str = "설정이 올바르지 않아요.") -> None:
        super().__init__("CONFIGURATION_ERROR", message, retryable=False)


class TransportError(DomainError):
    """HTTP 전송 단계의 실패예요. 연결 거부, 2xx가 아닌 응답, 시간 초과를 포함해요."""

    stage = STAGE_TRANSPORT

    def __init__(
        self,
        message: str = "MCP 서버와 통신하지 못했어요.",
        *,
        status_code: int | None = None,
        error_code: str = "TRANSPORT_ERROR",
    ) -> None:
        super().__init__(error_code, message, retryable=True)
        self.status_code = status_code


class TimeoutError(TransportError):
    def __init__(self, message: str = "MCP 요청 시간이 초과됐어요.") -> None:
        super().__init__(message, error_code="TIMEOUT")


class MalformedResponseError(DomainError):
    stage = STAGE_PROTOCOL

    def __init__(self, message: str = "MCP 응답 형식이 올바르지 않아요.") -> None:
        super().__init__("MALFORMED_RESPONSE", message, retryable=False)


class InitializationError(DomainError):
    stage = STAGE_PROTOCOL

    def __init__(self, message: str = "MCP 세션 초기화에 실패했어요.") -> None:
        super().__init__("INITIALIZATION_FAILED", message, retryable=False)


class NotInitializedError(DomainError):
    stage = STAGE_PROTOCOL

    def __init__(self, message: str = "MCP 세션이 아직 초기화되지 않았어요.") -> None:
        super().__init__("NOT_INITIALIZED", message, retryable=False)


class ProtocolVersionError(DomainError):
    stage = STAGE_PROTOCOL

    def __init__(self, message: str = "JSON-RPC 버전이 올바르지 않아요.") -> None:
        super().__init__("PROTOCOL_VERSION_MISMATCH", message, retryable=False)


class IdMismatchError(DomainError):
    stage = STAGE_PROTOCOL

    def __init__(self, expected_id: int, actual_id: Any) -> None:
        super().__init__(
            "ID_MISMATCH",
            f"응답 ID가 요청과 달라요. 기대값: {expected_id}, 실제값: {actual_id}",
            retryable=False,
        )
        self.expected_id = expected_id
        self.actual_id = actual_id


class EmptyResultError(DomainError):
    stage = STAGE_PROTOCOL

    def __init__(self, message: str = "MCP 응답에 result가 없어요.") -> None:
        super().__init__("EMPTY_RESULT", message, retryable=False)


class ServerError(DomainError):
    """서버가 JSON-RPC error 객체로 요청을 거절했어요. 호출자가 다음 동작을 결정해요."""

    stage = STAGE_PROTOCOL

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(
            "SERVER_ERROR",
            f"MCP 서버 오류 ({code}): {message}",
            retryable=code in RETRYABLE_SERVER_ERROR_CODES,
        )
        self.code = code
        self.server_message = message
        self.data = data


class ToolExecutionError(DomainError):
    stage = STAGE_APPLICATION

    def __init__(self, message: str = "도구 실행이 실패했어요.", *, tool_name: str | None = None) -> None:
        super().__init__("TOOL_EXECUTION_FAILED", message, retryable=False)
        self.tool_name = tool_name


class InvalidArgumentError(DomainError):
    stage = STAGE_VALIDATION

    def __init__(self, message: str = "인자가 올바르지 않아요.") -> None:
        super().__init__("INVALID_ARGUMENT", message, retryable=False)


class ValidationError(DomainError):
    stage = STAGE_VALIDATION

    def __init__(self, message: str = "검증에 실패했어요.") -> None:
        super().__init__("VALIDATION_FAILED", message, retryable=False)


class NotFoundError(DomainError):
    def __init__(self, message: str = "대상을 찾지 못했어요.") -> None:
        super().__init__("NOT_FOUND", message, retryable=False)


class UnparsableResultError(DomainError):
    stage = STAGE_APPLICATION

    def __init__(self, message: str = "도구 결과를 해석하지 못했어요.") -> None:
        super().__init__("UNPARSABLE_RESULT", message, retryable=False)


def build_error_envelope(error: DomainError) -> ErrorEnvelope:
    return ErrorEnvelope(
        error_code=error.error_code,
        message=error.message,
        stage=error.stage,
        retryable=error.retryable,
    )


def is_retryable(error: Exception) -> bool:
    return isinstance(error, DomainError) and error.retryable
