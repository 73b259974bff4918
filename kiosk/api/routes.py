"""
REST API 엔드포인트

키오스크 화면: 물품 상태, 사용자 확인/등록, 바로 대여, 대기열 등록
관리자 화면: 물품 관리, 대기열 승인/취소, 반납/연장, 대여 이력, 운영 설정
"""

from flask import jsonify, request, current_app
from kiosk.api import bp
from kiosk.services.results import ErrorKind, error_result, http_status_for, success_result


def _respond(result):
    """결과 딕셔너리 → JSON 응답 (오류 종류별 상태 코드)"""
    return jsonify(result), http_status_for(result)


def _json_body():
    """요청 본문 JSON (없거나 객체가 아니면 None)"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    return data


def _invalid_body():
    return _respond(error_result(ErrorKind.VALIDATION_ERROR, '요청 본문(JSON)이 올바르지 않습니다.'))


def _flag(name):
    return request.args.get(name, '').lower() in ('1', 'true', 'yes')


def _int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def _record_filters():
    """대여 이력 조회 조건 (쿼리 문자열)"""
    return {
        'user_name': request.args.get('user_name'),
        'item_name': request.args.get('item_name'),
        'start_date': request.args.get('start_date'),
        'end_date': request.args.get('end_date'),
        'page': _int_arg('page', 1),
        'per_page': _int_arg('per_page', 10),
        'sort': request.args.get('sort', 'rental_date'),
        'order': request.args.get('order', 'desc'),
    }


@bp.route('/health')
def health_check():
    """헬스 체크"""
    return jsonify({
        'status': 'healthy',
        'version': '1.0.0',
        'timestamp': current_app.config.get('START_TIME', ''),
        'database': current_app.db_manager.get_database_stats(),
    })


# =====================================================
# 물품
# =====================================================

@bp.route('/items', methods=['GET'])
def list_items():
    """전체 물품 상태 (만료 정리 후)"""
    result = current_app.rental_orchestrator.get_all_item_statuses(include_hidden=_flag('include_hidden'))
    return _respond(result)


@bp.route('/items', methods=['POST'])
def create_item():
    """물품 등록"""
    data = _json_body()
    if data is None:
        return _invalid_body()
    return _respond(current_app.item_service.create_item(data))


@bp.route('/items/<int:item_id>/status', methods=['GET'])
def get_item_status(item_id):
    """물품 상태 (만료 정리 후)"""
    return _respond(current_app.rental_orchestrator.get_item_status(item_id))


@bp.route('/items/names', methods=['GET'])
def get_item_names():
    """이력 필터용 물품명 목록"""
    return _respond(current_app.rental_orchestrator.get_item_names())


@bp.route('/items/<int:item_id>', methods=['PUT'])
def update_item(item_id):
    """물품 수정 (시간제 해제 시 대기열/대여 정리)"""
    data = _json_body()
    if data is None:
        return _invalid_body()
    return _respond(current_app.item_service.update_item(item_id, data))


@bp.route('/items/<int:item_id>', methods=['DELETE'])
def delete_item(item_id):
    """물품 삭제 (소프트 삭제)"""
    return _respond(current_app.item_service.delete_item(item_id))


@bp.route('/items/<int:item_id>/waitings', methods=['GET'])
def get_waiting_list(item_id):
    """물품 대기자 명단"""
    return _respond(current_app.rental_orchestrator.get_waiting_list(item_id))


@bp.route('/items/<int:item_id>/waitings/grant-next', methods=['POST'])
def grant_next_in_queue(item_id):
    """대기열 첫 순번 승인"""
    result = current_app.rental_orchestrator.grant_next_in_queue(item_id)
    if not result['success']:
        current_app.logger.warning(f"대기열 승인 실패: item={item_id}, {result['error']}")
    return _respond(result)


# =====================================================
# 사용자
# =====================================================

@bp.route('/users', methods=['GET'])
def list_users():
    """전체 사용자 목록 (관리자)"""
    return _respond(current_app.rental_orchestrator.get_all_users())


@bp.route('/users', methods=['POST'])
def create_user():
    """사용자 등록"""
    data = _json_body()
    if data is None:
        return _invalid_body()
    return _respond(current_app.user_service.create_user(data))


@bp.route('/users/lookup', methods=['GET'])
def lookup_user():
    """이름 + 전화번호로 사용자 확인"""
    name = request.args.get('name', '')
    phone = request.args.get('phone', '')
    if not name or not phone:
        return _respond(error_result(ErrorKind.VALIDATION_ERROR, '이름과 전화번호를 모두 입력해주세요.'))

    user = current_app.user_service.find_user_by_identity(name, phone)
    if not user:
        return _respond(error_result(ErrorKind.NOT_FOUND, '등록된 사용자를 찾을 수 없습니다.'))
    return _respond(success_result(f'{user.name}님 확인되었습니다.', user=user.to_dict()))


@bp.route('/users/<int:user_id>/items/<int:item_id>/status', methods=['GET'])
def check_user_rental_status(user_id, item_id):
    """사용자의 물품 대여/대기 상태"""
    return _respond(current_app.rental_orchestrator.check_user_rental_status(user_id, item_id))


@bp.route('/users/<int:user_id>/rentals', methods=['GET'])
def get_user_rental_records(user_id):
    """사용자 한 명의 대여 이력 (관리자)"""
    filters = _record_filters()
    filters.pop('user_name')
    return _respond(current_app.rental_orchestrator.get_user_rental_records(user_id, filters))


# =====================================================
# 대여
# =====================================================

@bp.route('/rentals', methods=['POST'])
def rent_now():
    """바로 대여"""
    data = _json_body()
    if data is None:
        return _invalid_body()

    user_id = data.get('user_id')
    item_id = data.get('item_id')
    if not isinstance(user_id, int) or not isinstance(item_id, int):
        return _respond(error_result(ErrorKind.VALIDATION_ERROR, 'user_id와 item_id가 필요합니다.'))

    result = current_app.rental_orchestrator.rent_now(
        user_id, item_id, data.get('male_count', 0), data.get('female_count', 0)
    )
    current_app.logger.info(f"대여 요청: item={item_id}, user={user_id} -> {result.get('error', 'OK')}")
    return _respond(result)


@bp.route('/rentals', methods=['GET'])
def get_rental_records():
    """대여 이력 (관리자)"""
    return _respond(current_app.rental_orchestrator.get_rental_records(_record_filters()))


@bp.route('/rentals/active', methods=['GET'])
def get_active_rentals():
    """미반납 시간제 대여 + 대기 인원"""
    return _respond(current_app.rental_orchestrator.get_active_rentals_with_wait_count())


@bp.route('/rentals/years', methods=['GET'])
def get_available_rental_years():
    """대여 기록이 있는 연도 목록"""
    return _respond(current_app.rental_orchestrator.get_available_rental_years())


@bp.route('/rentals/<int:record_id>/return', methods=['POST'])
def return_item(record_id):
    """반납"""
    return _respond(current_app.rental_orchestrator.return_item(record_id))


@bp.route('/rentals/<int:record_id>/extend', methods=['POST'])
def extend_rental(record_id):
    """대여 연장"""
    return _respond(current_app.rental_orchestrator.extend_rental(record_id))


@bp.route('/rentals/<int:record_id>', methods=['DELETE'])
def delete_rental_record(record_id):
    """대여 기록 삭제"""
    return _respond(current_app.rental_orchestrator.delete_rental_record(record_id))


# =====================================================
# 대기열
# =====================================================

@bp.route('/waitings', methods=['POST'])
def join_queue():
    """대기열 등록"""
    data = _json_body()
    if data is None:
        return _invalid_body()

    user_id = data.get('user_id')
    item_id = data.get('item_id')
    if not isinstance(user_id, int) or not isinstance(item_id, int):
        return _respond(error_result(ErrorKind.VALIDATION_ERROR, 'user_id와 item_id가 필요합니다.'))

    result = current_app.rental_orchestrator.join_queue(
        user_id, item_id, data.get('male_count'), data.get('female_count')
    )
    return _respond(result)


@bp.route('/waitings', methods=['GET'])
def get_waiting_entries():
    """전체 대기열 (관리자)"""
    result = current_app.rental_orchestrator.get_waiting_entries(
        page=_int_arg('page', 1), per_page=_int_arg('per_page', 10)
    )
    return _respond(result)


@bp.route('/waitings/<int:entry_id>/grant', methods=['POST'])
def grant_queue_entry(entry_id):
    """대기열 항목 승인"""
    result = current_app.rental_orchestrator.grant_queue_entry(entry_id)
    if not result['success']:
        current_app.logger.warning(f"대기열 승인 실패: waiting_id={entry_id}, {result['error']}")
    return _respond(result)


@bp.route('/waitings/<int:entry_id>', methods=['DELETE'])
def cancel_queue_entry(entry_id):
    """대기열 항목 취소"""
    return _respond(current_app.rental_orchestrator.cancel_queue_entry(entry_id))


# =====================================================
# 키오스크
# =====================================================

@bp.route('/kiosk/sweep', methods=['POST'])
def run_expiry_sweep():
    """키오스크 대기 화면 복귀 시 만료 정리"""
    expired = current_app.rental_orchestrator.run_expiry_sweep()
    return _respond(success_result(f'만료 대여 {expired}건 정리', expired_count=expired))


# =====================================================
# 운영 설정
# =====================================================

@bp.route('/settings', methods=['GET'])
def get_settings():
    """운영 설정 조회 (시간대, 대기열 자동 대여)"""
    return _respond(current_app.rental_orchestrator.get_settings())


@bp.route('/settings/<key>', methods=['PUT'])
def update_setting(key):
    """운영 설정 변경 (본문: {"value": ...})"""
    data = _json_body()
    if data is None or 'value' not in data:
        return _invalid_body()
    return _respond(current_app.rental_orchestrator.update_setting(key, data['value']))
