"""
서비스 결과 / 오류 종류 정의

모든 대여 관련 서비스 함수는 예외 대신 결과 딕셔너리를 반환한다.
- 성공: {'success': True, 'message': ..., ...}
- 실패: {'success': False, 'error': 'ITEM_OCCUPIED', 'message': ...}
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """오류 종류"""
    NOT_FOUND = "NOT_FOUND"
    ITEM_OCCUPIED = "ITEM_OCCUPIED"
    ALREADY_QUEUED = "ALREADY_QUEUED"
    QUEUE_NOT_SUPPORTED = "QUEUE_NOT_SUPPORTED"
    DAILY_CAP_EXCEEDED = "DAILY_CAP_EXCEEDED"
    EXTEND_BLOCKED_BY_WAITERS = "EXTEND_BLOCKED_BY_WAITERS"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"


ERROR_MESSAGES = {
    ErrorKind.NOT_FOUND: '요청한 정보를 찾을 수 없습니다.',
    ErrorKind.ITEM_OCCUPIED: '이미 다른 사람이 대여 중인 아이템입니다.',
    ErrorKind.ALREADY_QUEUED: '이미 해당 아이템의 대기열에 등록되어 있습니다.',
    ErrorKind.QUEUE_NOT_SUPPORTED: '이 아이템은 대기열을 지원하지 않습니다.',
    ErrorKind.DAILY_CAP_EXCEEDED: '오늘 해당 아이템의 최대 대여 횟수를 초과했습니다.',
    ErrorKind.EXTEND_BLOCKED_BY_WAITERS: '대기자가 있어 연장할 수 없습니다.',
    ErrorKind.VALIDATION_ERROR: '입력값이 올바르지 않습니다.',
    ErrorKind.PERSISTENCE_ERROR: '데이터 처리 중 오류가 발생했습니다. 잠시 후 다시 시도해주세요.',
}

HTTP_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.ITEM_OCCUPIED: 409,
    ErrorKind.ALREADY_QUEUED: 409,
    ErrorKind.QUEUE_NOT_SUPPORTED: 400,
    ErrorKind.DAILY_CAP_EXCEEDED: 409,
    ErrorKind.EXTEND_BLOCKED_BY_WAITERS: 409,
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.PERSISTENCE_ERROR: 500,
}


def success_result(message: str, **payload: Any) -> Dict[str, Any]:
    """성공 결과 생성"""
    result = {'success': True, 'message': message}
    result.update(payload)
    return result


def error_result(kind: ErrorKind, message: Optional[str] = None, **payload: Any) -> Dict[str, Any]:
    """실패 결과 생성 (메시지를 생략하면 기본 안내 문구 사용)"""
    result = {
        'success': False,
        'error': kind.value,
        'message': message or ERROR_MESSAGES[kind],
    }
    result.update(payload)
    return result


def http_status_for(result: Dict[str, Any]) -> int:
    """결과 딕셔너리에 대응하는 HTTP 상태 코드"""
    if result.get('success'):
        return 200
    try:
        return HTTP_STATUS[ErrorKind(result.get('error'))]
    except ValueError:
        return 500
