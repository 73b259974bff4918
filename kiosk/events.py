"""
WebSocket 이벤트 핸들러
"""

from flask_socketio import emit, join_room, leave_room
from flask import request, current_app
from kiosk import socketio

KIOSK_ROOM = 'kiosk'


@socketio.on('connect')
def handle_connect():
    """클라이언트 연결"""
    client_id = request.sid
    current_app.logger.info(f'클라이언트 연결: {client_id}')

    # 키오스크 방에 참가 (물품 상태 변경 알림 수신)
    join_room(KIOSK_ROOM)

    emit('connected', {
        'status': 'success',
        'client_id': client_id,
        'message': '물품 대여 키오스크에 연결되었습니다.'
    })


@socketio.on('disconnect')
def handle_disconnect():
    """클라이언트 연결 해제"""
    client_id = request.sid
    current_app.logger.info(f'클라이언트 연결 해제: {client_id}')

    leave_room(KIOSK_ROOM)


@socketio.on('kiosk_idle')
def handle_kiosk_idle(data=None):
    """키오스크 대기 화면 복귀 (홍보 화면 루프 재진입)

    만료된 대여를 정리하고 최신 물품 상태를 돌려준다.
    """
    try:
        orchestrator = current_app.rental_orchestrator
        expired = orchestrator.run_expiry_sweep()
        statuses = orchestrator.get_all_item_statuses()

        emit('kiosk_idle_result', {
            'success': statuses['success'],
            'expired_count': expired,
            'items': statuses.get('items', []),
        })

    except Exception as e:
        current_app.logger.error(f'대기 화면 처리 오류: {e}')
        emit('kiosk_idle_result', {
            'success': False,
            'error': 'PERSISTENCE_ERROR',
            'message': '물품 상태를 불러오는 중 오류가 발생했습니다.'
        })


@socketio.on('heartbeat')
def handle_heartbeat():
    """하트비트 (연결 상태 확인)"""
    emit('heartbeat_response', {'status': 'alive'})


def register_change_broadcast(app):
    """변경 알림을 키오스크 방으로 중계

    item_occupancy_changed / queue_changed 이벤트를 {'item_id': n} 형태로 전송한다.
    """
    def broadcast(event_name, item_id):
        socketio.emit(event_name, {'item_id': item_id}, room=KIOSK_ROOM)

    app.notifier.subscribe(broadcast)
    app.logger.info("변경 알림 중계 등록 완료")
