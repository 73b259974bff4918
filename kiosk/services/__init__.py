"""
대여 키오스크 서비스 레이어
"""
