"""
키오스크 프로세스 설정 (config/kiosk_config.json)

물품 대여 규칙처럼 운영 중 바뀌는 값은 system_settings 테이블에 두고,
여기에는 프로세스 시작 시 한 번 읽는 값만 둔다.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent.parent / "config" / "kiosk_config.json"

DEFAULT_CONFIG = {
    'database_path': 'instance/kiosk.db',
    'expiry_sweep_interval_sec': 60,
    'log_dir': 'logs',
}


def load_kiosk_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """설정 로드 (파일이 없거나 잘못되면 기본값 사용)

    환경변수 KIOSK_DB_PATH가 있으면 database_path보다 우선한다.

    Args:
        config_path: 설정 파일 경로 (None이면 config/kiosk_config.json)

    Returns:
        설정 딕셔너리
    """
    config = dict(DEFAULT_CONFIG)
    path = Path(config_path) if config_path else CONFIG_PATH

    try:
        with open(path, 'r', encoding='utf-8') as f:
            loaded = json.load(f)
        if isinstance(loaded, dict):
            config.update({key: value for key, value in loaded.items() if key in DEFAULT_CONFIG})
        else:
            logger.warning(f"설정 파일 형식 오류, 기본값 사용: {path}")
    except (OSError, ValueError) as e:
        logger.warning(f"설정 로드 실패, 기본값 사용: {e}")

    env_db_path = os.environ.get('KIOSK_DB_PATH')
    if env_db_path:
        config['database_path'] = env_db_path

    try:
        config['expiry_sweep_interval_sec'] = max(int(config['expiry_sweep_interval_sec']), 0)
    except (TypeError, ValueError):
        logger.warning(f"expiry_sweep_interval_sec 값 오류, 기본값 사용: {config['expiry_sweep_interval_sec']}")
        config['expiry_sweep_interval_sec'] = DEFAULT_CONFIG['expiry_sweep_interval_sec']

    return config
