"""
물품 대여 키오스크 Flask 웹 애플리케이션

키오스크 터치스크린 화면과 관리자 화면이 함께 사용하는 API 서버
"""

from flask import Flask
from flask_socketio import SocketIO
import logging
import os
from pathlib import Path
from datetime import datetime

# SocketIO 인스턴스 (전역)
socketio = SocketIO()


def create_app(config_name='default', db_path=None):
    """Flask 애플리케이션 팩토리

    Args:
        config_name: default, development, production, testing
        db_path: 데이터베이스 경로 (None이면 설정 파일/환경변수 값)
    """
    from kiosk.config import load_kiosk_config

    app = Flask(__name__)
    app.json.ensure_ascii = False  # 한글 메시지를 그대로 응답
    kiosk_config = load_kiosk_config()

    # 기본 설정
    app.config.update(
        SECRET_KEY=os.environ.get('SECRET_KEY', 'dev-key-change-in-production'),
        DEBUG=os.environ.get('FLASK_DEBUG', 'False').lower() == 'true',
        TESTING=False,

        DATABASE_PATH=db_path or kiosk_config['database_path'],
        EXPIRY_SWEEP_INTERVAL=kiosk_config['expiry_sweep_interval_sec'],
        LOG_DIR=kiosk_config['log_dir'],
        START_TIME=datetime.now().isoformat(),
    )

    # 환경별 설정 로드
    if config_name == 'development':
        app.config.update(
            DEBUG=True,
        )
    elif config_name == 'production':
        app.config.update(
            DEBUG=False,
            SESSION_COOKIE_SECURE=True,
            SESSION_COOKIE_HTTPONLY=True,
        )
    elif config_name == 'testing':
        app.config.update(
            TESTING=True,
            EXPIRY_SWEEP_INTERVAL=0,
        )

    # 로깅 설정
    setup_logging(app)

    # SocketIO 초기화 (키오스크는 폴링 기반이므로 기본값 threading)
    # 이벤트 핸들러는 init_app 전에 등록되어 있어야 앱마다 다시 연결된다
    from kiosk import events  # noqa: F401
    async_mode = os.environ.get("SOCKETIO_ASYNC_MODE", "threading")
    socketio.init_app(app, cors_allowed_origins="*", async_mode=async_mode)
    app.logger.info(f"SocketIO async_mode={async_mode}")

    # 서비스 초기화
    setup_services(app)

    # 블루프린트 등록
    register_blueprints(app)

    # 에러 핸들러 등록
    register_error_handlers(app)

    # 만료 대여 정리 스케줄러 시작
    setup_expiry_scheduler(app)

    # 종료 시 DB 체크포인트 실행
    setup_shutdown_hook(app)

    app.logger.info("물품 대여 키오스크 웹 애플리케이션 초기화 완료")

    return app


def setup_services(app):
    """DB 연결 및 대여 서비스 생성"""
    from kiosk_db import create_database_manager
    from kiosk.services.notifier import ChangeNotifier
    from kiosk.services.rental_orchestrator import create_rental_orchestrator

    app.db_manager = create_database_manager(app.config['DATABASE_PATH'], initialize=True)
    app.notifier = ChangeNotifier()

    orchestrator = create_rental_orchestrator(app.db_manager, notifier=app.notifier)
    app.rental_orchestrator = orchestrator
    app.item_service = orchestrator.item_service
    app.user_service = orchestrator.user_service
    app.expiry_scheduler = None

    app.logger.info(f"데이터베이스 연결: {app.config['DATABASE_PATH']}")


def setup_expiry_scheduler(app):
    """만료 대여 정리 스케줄러 설정"""
    from kiosk.services.expiry_scheduler import ExpiryScheduler

    interval = app.config.get('EXPIRY_SWEEP_INTERVAL', 0)

    # 테스트 모드가 아니고 간격이 설정된 경우에만 시작
    if app.config.get('TESTING', False) or not interval:
        app.logger.info("만료 정리 스케줄러 비활성화")
        return

    scheduler = ExpiryScheduler(app.rental_orchestrator.sweeper, interval=interval)
    scheduler.start()
    app.expiry_scheduler = scheduler
    app.logger.info(f"만료 정리 스케줄러 시작 ({interval}초 간격)")


def setup_shutdown_hook(app):
    """종료 시 스케줄러 중지 + DB 체크포인트"""
    import atexit
    import sqlite3

    if app.config.get('TESTING', False):
        return

    def cleanup_on_exit():
        """앱 종료 시 정리 작업"""
        scheduler = getattr(app, 'expiry_scheduler', None)
        if scheduler:
            scheduler.stop()
        try:
            app.db_manager.execute_query("PRAGMA wal_checkpoint(TRUNCATE)")
            app.logger.info("DB WAL 체크포인트 완료")
        except sqlite3.Error as e:
            app.logger.error(f"DB 정리 오류: {e}")
        app.db_manager.close()

    atexit.register(cleanup_on_exit)
    app.logger.info("종료 hook 등록 완료")


def setup_logging(app):
    """로깅 설정"""
    if not app.debug and not app.testing:
        # 프로덕션 로깅
        log_dir = Path(app.config.get('LOG_DIR') or 'logs')
        if not log_dir.is_absolute():
            log_dir = Path(__file__).parent.parent / log_dir
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_dir / 'kiosk_system.log', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))

        # app.logger 이름이 'kiosk'이므로 kiosk.services.* 로그도 함께 기록된다
        app.logger.addHandler(file_handler)
        app.logger.setLevel(logging.INFO)

        db_logger = logging.getLogger('kiosk_db')
        db_logger.addHandler(file_handler)
        db_logger.setLevel(logging.INFO)


def register_blueprints(app):
    """블루프린트 등록"""

    # API 라우트
    from kiosk.api import bp as api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    # WebSocket 변경 알림 중계
    from kiosk import events
    events.register_change_broadcast(app)


def register_error_handlers(app):
    """에러 핸들러 등록"""
    from flask import jsonify

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({
            'success': False,
            'error': 'NOT_FOUND',
            'message': '요청한 경로를 찾을 수 없습니다.'
        }), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({
            'success': False,
            'error': 'VALIDATION_ERROR',
            'message': '허용되지 않는 요청 방식입니다.'
        }), 405

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f'서버 오류: {error}')
        return jsonify({
            'success': False,
            'error': 'PERSISTENCE_ERROR',
            'message': '서버 내부 오류가 발생했습니다.'
        }), 500
